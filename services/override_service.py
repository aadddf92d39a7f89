import logging

from extensions import db
from models import AttainmentOverride
from services import audit_service
from services.attainment_service import get_attainment
from services.errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


def _check_value(value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid override value {value!r}")
    if not 0 <= value <= 100:
        raise ValidationError("Override value must be between 0 and 100")
    return value


def override_attainment(subject, outcome_id, value, reason, created_by=None):
    """Record a manual correction next to the value the engine computed."""
    value = _check_value(value)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to override an attainment")

    computed = get_attainment(subject, outcome_id, apply_overrides=False)

    previous = AttainmentOverride.query.filter_by(
        subject_key=subject.key, outcome_id=outcome_id, is_active=True
    ).all()
    for row in previous:
        row.is_active = False

    override = AttainmentOverride(
        subject_key=subject.key,
        outcome_id=outcome_id,
        original_percentage=computed.percentage,
        override_percentage=value,
        reason=reason,
        created_by=created_by,
    )
    db.session.add(override)
    db.session.flush()

    audit_service.record(
        "OVERRIDE", "attainment_overrides", override.override_id,
        old_values={"percentage": computed.percentage, "level": computed.level},
        new_values=override.to_dict()
    )
    db.session.commit()

    logger.info(
        "Attainment override for %s on outcome %s: %s -> %s (%s)",
        subject.key, outcome_id, computed.percentage, value, reason
    )
    return override


def clear_override(subject, outcome_id, reason):
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to clear an override")

    rows = AttainmentOverride.query.filter_by(
        subject_key=subject.key, outcome_id=outcome_id, is_active=True
    ).all()
    if not rows:
        raise NotFound(f"No active override for {subject.key} on outcome {outcome_id}")

    for row in rows:
        before = row.to_dict()
        row.is_active = False
        audit_service.record(
            "OVERRIDE", "attainment_overrides", row.override_id,
            old_values=before, new_values={"is_active": False, "reason": reason}
        )
    db.session.commit()
    logger.info("Cleared override for %s on outcome %s (%s)", subject.key, outcome_id, reason)


def list_overrides(outcome_id, include_inactive=True):
    query = AttainmentOverride.query.filter_by(outcome_id=outcome_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(AttainmentOverride.override_id.asc()).all()
