"""Score ingestion: the bulk read the aggregator uses, plus the upsert that
marks-entry screens call to store obtained marks."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from extensions import db
from models import ScoreRecord, Student
from services import revisions
from services.allocation_service import get_item, to_decimal
from services.errors import MarksOutOfRange, NotFound, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Score:
    student_id: int
    item_id: int
    obtained_marks: Decimal


class ScoreSource(ABC):

    @abstractmethod
    def fetch_scores(self, item_ids, student_ids=None):
        """Return every Score for ``item_ids``, optionally limited to ``student_ids``."""


class SqlScoreSource(ScoreSource):

    def fetch_scores(self, item_ids, student_ids=None):
        item_ids = list(item_ids)
        if not item_ids:
            return []

        query = db.session.query(
            ScoreRecord.student_id,
            ScoreRecord.item_id,
            ScoreRecord.obtained_marks
        ).filter(ScoreRecord.item_id.in_(item_ids))
        if student_ids is not None:
            student_ids = list(student_ids)
            if not student_ids:
                return []
            query = query.filter(ScoreRecord.student_id.in_(student_ids))

        return [
            Score(student_id=sid, item_id=iid, obtained_marks=Decimal(marks))
            for sid, iid, marks in query.all()
        ]


def record_scores(item_id, entries):
    """Insert or replace obtained marks for one item; all entries or none."""
    item = get_item(item_id)
    total = Decimal(item.total_marks)

    parsed = {}
    for entry in entries or []:
        try:
            student_id = int(entry.get("student_id"))
        except (TypeError, ValueError):
            raise ValidationError("Each score needs an integer student_id")
        marks = to_decimal(entry.get("obtained_marks"), "obtained_marks")
        if marks < 0 or marks > total:
            raise MarksOutOfRange(
                f"Obtained marks {marks} for student {student_id} must be between 0 and {total}",
                student_id=student_id,
                obtained_marks=float(marks),
                total_marks=float(total),
            )
        parsed[student_id] = marks

    if not parsed:
        raise ValidationError("No score entries provided")

    known = {
        sid for (sid,) in
        db.session.query(Student.student_id).filter(Student.student_id.in_(list(parsed))).all()
    }
    missing = sorted(set(parsed) - known)
    if missing:
        raise NotFound(f"Unknown students: {missing}", student_ids=missing)

    existing = {
        row.student_id: row
        for row in ScoreRecord.query.filter(
            ScoreRecord.item_id == item_id,
            ScoreRecord.student_id.in_(list(parsed))
        ).all()
    }

    try:
        for student_id, marks in parsed.items():
            row = existing.get(student_id)
            if row is None:
                db.session.add(ScoreRecord(student_id=student_id, item_id=item_id, obtained_marks=marks))
            else:
                row.obtained_marks = marks
        revisions.bump_scores(revisions.scopes_for_offering(item.course_offering_id))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Stored %s scores for item %s", len(parsed), item_id)
    return len(parsed)
