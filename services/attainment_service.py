import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Optional

from flask import current_app

from extensions import db
from models import (
    AllocationRow, AssessmentItem, AttainmentOverride, CourseOffering,
    MappingEdge, Outcome, ThresholdProfile
)
from services import classifier, revisions
from services.aggregation import AttainmentCalculator, RollupStrategy
from services.errors import ValidationError
from services.hierarchy_service import get_outcome
from services.score_adapter import SqlScoreSource
from utils.sorting import outcome_sort_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subject:
    """Who an attainment figure is about: one student or the whole cohort."""

    student_id: Optional[int] = None

    @classmethod
    def cohort(cls):
        return cls(None)

    @classmethod
    def student(cls, student_id):
        return cls(int(student_id))

    @classmethod
    def parse(cls, key):
        key = (key or "cohort").strip().lower()
        if key == "cohort":
            return cls.cohort()
        if key.startswith("student:"):
            key = key.split(":", 1)[1]
        try:
            return cls.student(key)
        except ValueError:
            raise ValidationError(f"Invalid subject {key!r}, expected 'cohort' or a student id")

    @property
    def is_cohort(self):
        return self.student_id is None

    @property
    def key(self):
        return "cohort" if self.is_cohort else f"student:{self.student_id}"


@dataclass(frozen=True)
class AttainmentResult:
    subject: str
    outcome_id: int
    outcome_code: str
    tier: str
    percentage: Optional[float]
    level: str
    is_attained: Optional[bool]
    students_counted: int
    items_counted: int
    children_counted: int
    rollup_strategy: str
    computed_at: datetime
    overridden: bool = False
    original_percentage: Optional[float] = None

    @property
    def is_undefined(self):
        return self.percentage is None

    def to_dict(self):
        data = asdict(self)
        data["computed_at"] = self.computed_at.isoformat()
        return data


def default_strategy():
    return RollupStrategy.parse(current_app.config.get("OBE_DEFAULT_ROLLUP"))


# =========================================================
# BULK LOADING
# =========================================================

def _collect_subgraph(outcome_ids):
    """Outcome rows and child edges for the targets and every descendant."""
    outcomes = {
        o.outcome_id: o
        for o in Outcome.query.filter(Outcome.outcome_id.in_(list(outcome_ids))).all()
    } if outcome_ids else {}
    children = defaultdict(list)

    frontier = {oid for oid, o in outcomes.items() if o.tier != "CLO"}
    # at most two levels: PEO -> PLO -> CLO
    while frontier:
        edges = MappingEdge.query.filter(MappingEdge.parent_id.in_(list(frontier))).all()
        new_ids = set()
        for edge in edges:
            children[edge.parent_id].append((edge.child_id, edge.weight))
            if edge.child_id not in outcomes:
                new_ids.add(edge.child_id)
        if new_ids:
            for o in Outcome.query.filter(Outcome.outcome_id.in_(list(new_ids))).all():
                outcomes[o.outcome_id] = o
        frontier = {oid for oid in new_ids if outcomes.get(oid) and outcomes[oid].tier != "CLO"}

    return outcomes, children


def load_calculator(outcome_ids, strategy=None, student_ids=None, score_source=None):
    """One query per table and one bulk score read for everything under ``outcome_ids``."""
    strategy = RollupStrategy.parse(strategy, default=current_app.config.get("OBE_DEFAULT_ROLLUP"))
    outcomes, children = _collect_subgraph(set(outcome_ids))
    clo_ids = [oid for oid, o in outcomes.items() if o.tier == "CLO"]

    allocations = defaultdict(list)
    totals = {}
    if clo_ids:
        rows = (
            db.session.query(
                AllocationRow.clo_id,
                AllocationRow.item_id,
                AllocationRow.marks_allocated,
                AssessmentItem.total_marks
            )
            .join(AssessmentItem, AssessmentItem.item_id == AllocationRow.item_id)
            .filter(AllocationRow.clo_id.in_(clo_ids))
            .all()
        )
        for clo_id, item_id, marks, total in rows:
            allocations[clo_id].append((item_id, marks))
            totals[item_id] = total

    source = score_source or SqlScoreSource()
    scores = source.fetch_scores(sorted(totals), student_ids=student_ids)

    calculator = AttainmentCalculator(
        tiers={oid: o.tier for oid, o in outcomes.items()},
        children=children,
        allocations=allocations,
        totals=totals,
        scores=scores,
        strategy=strategy,
    )
    return calculator, outcomes


# =========================================================
# RESULTS
# =========================================================

def make_result(subject_key, outcome, measurement, thresholds, strategy, computed_at):
    percentage = measurement.percentage
    return AttainmentResult(
        subject=subject_key,
        outcome_id=outcome.outcome_id,
        outcome_code=outcome.code,
        tier=outcome.tier,
        percentage=percentage,
        level=classifier.classify(measurement.value, thresholds),
        is_attained=classifier.is_attained(measurement.value, thresholds),
        students_counted=measurement.students,
        items_counted=measurement.items,
        children_counted=measurement.children,
        rollup_strategy=RollupStrategy.parse(strategy).value,
        computed_at=computed_at,
    )


def active_overrides(outcome_ids):
    if not outcome_ids:
        return {}
    rows = AttainmentOverride.query.filter(
        AttainmentOverride.outcome_id.in_(list(outcome_ids)),
        AttainmentOverride.is_active.is_(True)
    ).all()
    return {(row.subject_key, row.outcome_id): row for row in rows}


def apply_override(result, override, thresholds):
    if override is None:
        return result
    value = override.override_percentage
    return replace(
        result,
        percentage=value,
        level=classifier.classify(value, thresholds),
        is_attained=classifier.is_attained(value, thresholds),
        overridden=True,
        original_percentage=result.percentage,
    )


def get_attainment(subject, outcome_id, rollup_strategy=None, apply_overrides=True):
    """Attainment of one outcome for a student or the cohort, always from raw data."""
    outcome = get_outcome(outcome_id)
    strategy = RollupStrategy.parse(rollup_strategy, default=current_app.config.get("OBE_DEFAULT_ROLLUP"))

    student_ids = None if subject.is_cohort else [subject.student_id]
    calculator, _ = load_calculator([outcome_id], strategy, student_ids=student_ids)
    measurement = calculator.attainment(outcome_id, subject.student_id)

    thresholds = classifier.resolve_thresholds(outcome)
    result = make_result(subject.key, outcome, measurement, thresholds, strategy, datetime.utcnow())
    if apply_overrides:
        override = active_overrides([outcome_id]).get((subject.key, outcome_id))
        result = apply_override(result, override, thresholds)
    return result


def scope_outcomes(scope):
    """Outcomes owned by a scope, sorted by tier then natural code order."""
    revisions.ensure_scope_exists(scope)
    if scope.scope_type == "offering":
        outcomes = Outcome.query.filter_by(tier="CLO", scope_id=scope.scope_id).all()
    else:
        offering_ids = [
            o.course_offering_id
            for o in CourseOffering.query.filter_by(program_id=scope.scope_id).all()
        ]
        outcomes = Outcome.query.filter(
            Outcome.tier.in_(["PLO", "PEO"]),
            Outcome.scope_id == scope.scope_id
        ).all()
        if offering_ids:
            outcomes += Outcome.query.filter(
                Outcome.tier == "CLO",
                Outcome.scope_id.in_(offering_ids)
            ).all()
    tier_order = {"CLO": 0, "PLO": 1, "PEO": 2}
    return sorted(outcomes, key=lambda o: (tier_order[o.tier], outcome_sort_key(o)))


def results_for_outcome(calculator, outcome, thresholds, strategy, computed_at, include_students=True):
    """Cohort row first, then one row per student in ascending id order."""
    results = [
        make_result("cohort", outcome, calculator.attainment(outcome.outcome_id), thresholds, strategy, computed_at)
    ]
    if include_students:
        for student_id in sorted(calculator.students_for(outcome.outcome_id)):
            measurement = calculator.attainment(outcome.outcome_id, student_id)
            results.append(
                make_result(f"student:{student_id}", outcome, measurement, thresholds, strategy, computed_at)
            )
    return results


def compute_scope(scope, strategy=None, include_students=True, apply_overrides=False):
    strategy = RollupStrategy.parse(strategy, default=current_app.config.get("OBE_DEFAULT_ROLLUP"))
    outcomes = scope_outcomes(scope)
    if not outcomes:
        return []

    calculator, _ = load_calculator([o.outcome_id for o in outcomes], strategy)
    profiles = ThresholdProfile.query.all()
    overrides = active_overrides([o.outcome_id for o in outcomes]) if apply_overrides else {}
    computed_at = datetime.utcnow()

    results = []
    for outcome in outcomes:
        thresholds = classifier.resolve_thresholds(outcome, profiles)
        for result in results_for_outcome(calculator, outcome, thresholds, strategy, computed_at, include_students):
            results.append(apply_override(result, overrides.get((result.subject, outcome.outcome_id)), thresholds))

    logger.debug("Computed %s results for %s", len(results), scope.key)
    return results
