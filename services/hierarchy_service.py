import logging
from decimal import Decimal, InvalidOperation

from extensions import db
from models import (
    AllocationRow, AttainmentOverride, AttainmentResultRow,
    CourseOffering, MappingEdge, Outcome, ThresholdProfile
)
from models.mapping_edge import CORRELATION_WEIGHTS
from models.outcome import TIER_RANK, TIERS
from services import audit_service, revisions
from services.errors import DuplicateCode, NotFound, TierMismatch, ValidationError
from utils.sorting import outcome_sort_key

logger = logging.getLogger(__name__)


# =========================================================
# HELPERS
# =========================================================

def normalize_tier(tier):
    value = (tier or "").strip().upper()
    if value not in TIERS:
        raise ValidationError(f"Unknown tier {tier!r}, expected one of {', '.join(TIERS)}")
    return value


def get_outcome(outcome_id, tier=None):
    outcome = db.session.get(Outcome, outcome_id)
    if outcome is None:
        raise NotFound(f"Outcome {outcome_id} not found")
    if tier is not None and outcome.tier != tier:
        raise TierMismatch(f"Outcome {outcome.code} is a {outcome.tier}, expected a {tier}")
    return outcome


def _ensure_scope(tier, scope_id):
    if tier == "CLO":
        revisions.get_offering(scope_id)
    else:
        revisions.get_program(scope_id)


def _ensure_unique_code(tier, scope_id, code, exclude_id=None):
    query = Outcome.query.filter_by(tier=tier, scope_id=scope_id, code=code)
    if exclude_id is not None:
        query = query.filter(Outcome.outcome_id != exclude_id)
    if query.first() is not None:
        raise DuplicateCode(
            f"{tier} code {code!r} already exists in scope {scope_id}",
            code=code,
            tier=tier,
            scope_id=scope_id,
        )


def _edge_weight(weight, correlation_level):
    if correlation_level is not None and correlation_level not in CORRELATION_WEIGHTS:
        raise ValidationError("correlation_level must be High, Medium, or Low")
    if weight is None:
        if correlation_level is not None:
            return Decimal(CORRELATION_WEIGHTS[correlation_level])
        return None
    try:
        value = Decimal(str(weight))
    except InvalidOperation:
        raise ValidationError(f"Invalid mapping weight {weight!r}")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Mapping weight must be greater than zero")
    return value


# =========================================================
# OUTCOMES
# =========================================================

def create_outcome(tier, scope_id, code, description=""):
    tier = normalize_tier(tier)
    code = (code or "").strip()
    if not code:
        raise ValidationError("Outcome code is required")

    _ensure_scope(tier, scope_id)
    _ensure_unique_code(tier, scope_id, code)

    outcome = Outcome(
        tier=tier,
        scope_id=scope_id,
        code=code,
        description=(description or "").strip()
    )
    db.session.add(outcome)
    db.session.flush()

    revisions.bump(revisions.scopes_for_outcome(outcome))
    audit_service.record("CREATE", "outcomes", outcome.outcome_id, new_values=outcome.to_dict())
    db.session.commit()

    logger.info("Created %s %s in scope %s", tier, code, scope_id)
    return outcome


def update_outcome(outcome_id, code=None, description=None):
    outcome = get_outcome(outcome_id)
    before = outcome.to_dict()

    if code is not None:
        code = code.strip()
        if not code:
            raise ValidationError("Outcome code is required")
        _ensure_unique_code(outcome.tier, outcome.scope_id, code, exclude_id=outcome.outcome_id)
        outcome.code = code
    if description is not None:
        outcome.description = description.strip()

    revisions.bump(revisions.scopes_for_outcome(outcome))
    audit_service.record("UPDATE", "outcomes", outcome.outcome_id, old_values=before, new_values=outcome.to_dict())
    db.session.commit()
    return outcome


def list_outcomes(tier, scope_id):
    tier = normalize_tier(tier)
    outcomes = Outcome.query.filter_by(tier=tier, scope_id=scope_id).all()
    return sorted(outcomes, key=outcome_sort_key)


def outcomes_for_program(program_id, tier):
    """Outcomes of a tier owned by a program; CLOs are found through its offerings."""
    tier = normalize_tier(tier)
    if tier != "CLO":
        return list_outcomes(tier, program_id)

    offering_ids = [
        row.course_offering_id
        for row in CourseOffering.query.filter_by(program_id=program_id).all()
    ]
    if not offering_ids:
        return []
    outcomes = (
        Outcome.query
        .filter(Outcome.tier == "CLO", Outcome.scope_id.in_(offering_ids))
        .all()
    )
    return sorted(outcomes, key=outcome_sort_key)


def delete_outcome(outcome_id):
    """Delete an outcome and everything that references it.

    Returns the number of mapping edges and allocation rows removed.
    """
    outcome = get_outcome(outcome_id)
    scopes = revisions.scopes_for_outcome(outcome)
    snapshot = outcome.to_dict()

    edges_removed = (
        MappingEdge.query
        .filter((MappingEdge.child_id == outcome_id) | (MappingEdge.parent_id == outcome_id))
        .delete(synchronize_session="fetch")
    )
    allocations_removed = (
        AllocationRow.query
        .filter_by(clo_id=outcome_id)
        .delete(synchronize_session="fetch")
    )

    AttainmentResultRow.query.filter_by(outcome_id=outcome_id).delete(synchronize_session="fetch")
    AttainmentOverride.query.filter_by(outcome_id=outcome_id).delete(synchronize_session="fetch")
    ThresholdProfile.query.filter_by(outcome_id=outcome_id).delete(synchronize_session="fetch")

    db.session.delete(outcome)
    revisions.bump(scopes)

    cascaded = edges_removed + allocations_removed
    snapshot.update({"edges_removed": edges_removed, "allocations_removed": allocations_removed})
    audit_service.record("DELETE", "outcomes", outcome_id, old_values=snapshot)
    db.session.commit()

    logger.info(
        "Deleted %s %s: %s mapping edges, %s allocation rows",
        snapshot["tier"], snapshot["code"], edges_removed, allocations_removed
    )
    return cascaded


# =========================================================
# MAPPINGS
# =========================================================

def set_mapping(child_id, parent_id, present, weight=None, correlation_level=None):
    """Add or remove the edge child -> parent. Repeating a call is a no-op."""
    child = get_outcome(child_id)
    parent = get_outcome(parent_id)

    if TIER_RANK[parent.tier] != TIER_RANK[child.tier] + 1:
        raise TierMismatch(
            f"Cannot map {child.tier} {child.code} to {parent.tier} {parent.code}",
            child_tier=child.tier,
            parent_tier=parent.tier,
        )

    edge_weight = _edge_weight(weight, correlation_level)
    edge = MappingEdge.query.filter_by(child_id=child_id, parent_id=parent_id).first()
    scopes = revisions.scopes_for_outcome(child) + revisions.scopes_for_outcome(parent)

    if not present:
        if edge is None:
            return None
        audit_service.record("DELETE", "mapping_edges", edge.edge_id, old_values=edge.to_dict())
        db.session.delete(edge)
        revisions.bump(scopes)
        db.session.commit()
        logger.info("Unmapped %s from %s", child.code, parent.code)
        return None

    if edge is None:
        edge = MappingEdge(
            child_id=child_id,
            parent_id=parent_id,
            weight=edge_weight if edge_weight is not None else Decimal(1),
            correlation_level=correlation_level
        )
        db.session.add(edge)
        db.session.flush()
        audit_service.record("CREATE", "mapping_edges", edge.edge_id, new_values=edge.to_dict())
    elif edge_weight is not None and (
        Decimal(edge.weight) != edge_weight or edge.correlation_level != correlation_level
    ):
        before = edge.to_dict()
        edge.weight = edge_weight
        edge.correlation_level = correlation_level
        audit_service.record("UPDATE", "mapping_edges", edge.edge_id, old_values=before, new_values=edge.to_dict())
    else:
        return edge

    revisions.bump(scopes)
    db.session.commit()
    logger.info("Mapped %s to %s (weight %s)", child.code, parent.code, edge.weight)
    return edge


def list_children(parent_id):
    get_outcome(parent_id)
    children = (
        db.session.query(Outcome)
        .join(MappingEdge, MappingEdge.child_id == Outcome.outcome_id)
        .filter(MappingEdge.parent_id == parent_id)
        .all()
    )
    return sorted(children, key=outcome_sort_key)


def list_parents(child_id):
    get_outcome(child_id)
    parents = (
        db.session.query(Outcome)
        .join(MappingEdge, MappingEdge.parent_id == Outcome.outcome_id)
        .filter(MappingEdge.child_id == child_id)
        .all()
    )
    return sorted(parents, key=outcome_sort_key)


def edges_into(parent_ids):
    """All edges whose parent is in ``parent_ids``, in one query."""
    if not parent_ids:
        return []
    return MappingEdge.query.filter(MappingEdge.parent_id.in_(list(parent_ids))).all()


def mapping_matrix(program_id, child_tier):
    """Rows are children, columns parents, cells the edge weight or None."""
    child_tier = normalize_tier(child_tier)
    if child_tier == "PEO":
        raise TierMismatch("PEOs have no parent tier")
    parent_tier = "PLO" if child_tier == "CLO" else "PEO"

    revisions.get_program(program_id)
    children = outcomes_for_program(program_id, child_tier)
    parents = outcomes_for_program(program_id, parent_tier)

    weights = {}
    for edge in edges_into([p.outcome_id for p in parents]):
        weights[(edge.child_id, edge.parent_id)] = float(edge.weight)

    return {
        "child_tier": child_tier,
        "parent_tier": parent_tier,
        "columns": [p.to_dict() for p in parents],
        "rows": [
            {
                "outcome": c.to_dict(),
                "cells": [weights.get((c.outcome_id, p.outcome_id)) for p in parents],
            }
            for c in children
        ],
    }
