import logging
from decimal import Decimal, InvalidOperation

from extensions import db
from models import AllocationRow, AssessmentItem, Outcome, ScoreRecord
from models.assessment_item import ITEM_TYPES
from services import audit_service, revisions
from services.errors import (
    MarksOutOfRange, NotFound, OverAllocated, ScopeMismatch,
    TierMismatch, ValidationError
)
from utils.sorting import code_sort_key

logger = logging.getLogger(__name__)


def to_decimal(value, field="marks"):
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field} {value!r}")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field} {value!r}")
    if not number.is_finite():
        raise ValidationError(f"Invalid {field} {value!r}")
    return number


def get_item(item_id, lock=False):
    query = AssessmentItem.query.filter_by(item_id=item_id)
    if lock:
        # Serialises concurrent allocation sets on the same item
        query = query.with_for_update()
    item = query.first()
    if item is None:
        raise NotFound(f"Assessment item {item_id} not found")
    return item


def allocated_total(item_id):
    total = (
        db.session.query(db.func.sum(AllocationRow.marks_allocated))
        .filter(AllocationRow.item_id == item_id)
        .scalar()
    )
    return Decimal(total) if total is not None else Decimal(0)


# =========================================================
# ASSESSMENT ITEMS
# =========================================================

def create_assessment_item(course_offering_id, name, total_marks, item_type="component", parent_item_id=None):
    revisions.get_offering(course_offering_id)

    name = (name or "").strip()
    if not name:
        raise ValidationError("Assessment item name is required")
    if item_type not in ITEM_TYPES:
        raise ValidationError(f"item_type must be one of {', '.join(ITEM_TYPES)}")

    total = to_decimal(total_marks, "total_marks")
    if total <= 0:
        raise MarksOutOfRange("total_marks must be greater than zero", total_marks=float(total))

    if parent_item_id is not None:
        parent = get_item(parent_item_id)
        if parent.course_offering_id != course_offering_id:
            raise ScopeMismatch("A question must belong to a component of the same course offering")

    item = AssessmentItem(
        course_offering_id=course_offering_id,
        name=name,
        item_type=item_type,
        parent_item_id=parent_item_id,
        total_marks=total
    )
    db.session.add(item)
    db.session.flush()
    audit_service.record("CREATE", "assessment_items", item.item_id, new_values=item.to_dict())
    db.session.commit()
    return item


def update_total_marks(item_id, total_marks):
    item = get_item(item_id, lock=True)
    total = to_decimal(total_marks, "total_marks")
    if total <= 0:
        raise MarksOutOfRange("total_marks must be greater than zero", total_marks=float(total))

    current = allocated_total(item_id)
    if current > total:
        raise OverAllocated(item_id, current, total)

    highest = (
        db.session.query(db.func.max(ScoreRecord.obtained_marks))
        .filter(ScoreRecord.item_id == item_id)
        .scalar()
    )
    if highest is not None and Decimal(highest) > total:
        raise MarksOutOfRange(
            f"A student already scored {highest} on item {item_id}, above the new total {total}",
            item_id=item_id,
            max_obtained=float(highest),
            total_marks=float(total),
        )

    before = item.to_dict()
    item.total_marks = total
    revisions.bump(revisions.scopes_for_offering(item.course_offering_id))
    audit_service.record("UPDATE", "assessment_items", item_id, old_values=before, new_values=item.to_dict())
    db.session.commit()
    return item


# =========================================================
# ALLOCATIONS
# =========================================================

def _validate_allocations(item, allocations):
    total_marks = Decimal(item.total_marks)
    parsed = []
    seen = set()

    for entry in allocations:
        clo_id = entry.get("clo_id")
        if clo_id is None:
            raise ValidationError("Each allocation needs a clo_id")
        try:
            clo_id = int(clo_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid clo_id {clo_id!r}")
        if clo_id in seen:
            raise ValidationError(f"CLO {clo_id} appears more than once", clo_id=clo_id)
        seen.add(clo_id)

        marks = to_decimal(entry.get("marks"), "marks")
        if marks < 0 or marks > total_marks:
            raise MarksOutOfRange(
                f"Marks {marks} for CLO {clo_id} must be between 0 and {total_marks}",
                clo_id=clo_id,
                marks=float(marks),
                total_marks=float(total_marks),
            )
        parsed.append((clo_id, marks))

    if seen:
        clos = {o.outcome_id: o for o in Outcome.query.filter(Outcome.outcome_id.in_(list(seen))).all()}
        for clo_id in sorted(seen):
            clo = clos.get(clo_id)
            if clo is None:
                raise NotFound(f"Outcome {clo_id} not found")
            if clo.tier != "CLO":
                raise TierMismatch(f"Marks can only be allocated to CLOs, {clo.code} is a {clo.tier}")
            if clo.scope_id != item.course_offering_id:
                raise ScopeMismatch(
                    f"CLO {clo.code} belongs to another course offering",
                    clo_id=clo_id,
                )

    requested = sum((marks for _, marks in parsed), Decimal(0))
    if requested > total_marks:
        raise OverAllocated(item.item_id, requested, total_marks)

    return parsed


def set_allocations(item_id, allocations):
    """Replace the full allocation set of an item in one transaction."""
    try:
        item = get_item(item_id, lock=True)
        parsed = _validate_allocations(item, allocations or [])
    except (OverAllocated, MarksOutOfRange) as exc:
        db.session.rollback()
        logger.warning("Rejected allocations for item %s: %s", item_id, exc.message)
        raise
    except Exception:
        db.session.rollback()
        raise

    before = {row.clo_id: float(row.marks_allocated) for row in get_allocations(item_id)}

    AllocationRow.query.filter_by(item_id=item_id).delete(synchronize_session="fetch")
    for clo_id, marks in parsed:
        db.session.add(AllocationRow(item_id=item_id, clo_id=clo_id, marks_allocated=marks))

    revisions.bump(revisions.scopes_for_offering(item.course_offering_id))
    audit_service.record(
        "UPDATE", "allocation_rows", item_id,
        old_values=before,
        new_values={clo_id: float(marks) for clo_id, marks in parsed}
    )
    db.session.commit()

    logger.info("Allocations replaced for item %s: %s rows", item_id, len(parsed))
    return get_allocations(item_id)


def get_allocations(item_id):
    get_item(item_id)
    rows = (
        db.session.query(AllocationRow, Outcome)
        .join(Outcome, AllocationRow.clo_id == Outcome.outcome_id)
        .filter(AllocationRow.item_id == item_id)
        .all()
    )
    rows.sort(key=lambda pair: (code_sort_key(pair[1].code), pair[1].outcome_id))
    return [row for row, _ in rows]


def get_allocations_for_clo(clo_id):
    clo = db.session.get(Outcome, clo_id)
    if clo is None:
        raise NotFound(f"Outcome {clo_id} not found")
    if clo.tier != "CLO":
        raise TierMismatch(f"{clo.code} is a {clo.tier}, not a CLO")

    rows = (
        db.session.query(AssessmentItem, AllocationRow.marks_allocated)
        .join(AllocationRow, AllocationRow.item_id == AssessmentItem.item_id)
        .filter(AllocationRow.clo_id == clo_id)
        .order_by(AssessmentItem.item_id.asc())
        .all()
    )
    return [(item, Decimal(marks)) for item, marks in rows]


def allocation_summary(item_id):
    item = get_item(item_id)
    total = Decimal(item.total_marks)
    allocated = allocated_total(item_id)
    return {
        "item_id": item_id,
        "total_marks": float(total),
        "allocated": float(allocated),
        "remaining": float(total - allocated),
    }


def allocation_to_dict(row):
    return {
        "allocation_id": row.allocation_id,
        "item_id": row.item_id,
        "clo_id": row.clo_id,
        "marks_allocated": float(row.marks_allocated),
    }
