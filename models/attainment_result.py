from datetime import datetime

from extensions import db


class _AttainmentColumns:
    subject_key = db.Column(db.String(40), nullable=False)
    outcome_id = db.Column(db.Integer, nullable=False, index=True)

    # NULL means Undefined: nothing was measured for this outcome
    percentage = db.Column(db.Float, nullable=True)
    level = db.Column(db.String(20), nullable=False)
    is_attained = db.Column(db.Boolean, nullable=True)

    students_counted = db.Column(db.Integer, nullable=False, default=0)
    items_counted = db.Column(db.Integer, nullable=False, default=0)
    children_counted = db.Column(db.Integer, nullable=False, default=0)

    rollup_strategy = db.Column(db.String(20), nullable=False)
    computed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "subject": self.subject_key,
            "outcome_id": self.outcome_id,
            "percentage": self.percentage,
            "level": self.level,
            "is_attained": self.is_attained,
            "students_counted": self.students_counted,
            "items_counted": self.items_counted,
            "children_counted": self.children_counted,
            "rollup_strategy": self.rollup_strategy,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }


class AttainmentResultRow(_AttainmentColumns, db.Model):
    """Final cached attainment, replaced only by a completed recompute."""

    __tablename__ = "attainment_results"

    result_id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("subject_key", "outcome_id", "computed_at", name="unique_result_key"),
    )

    def __repr__(self):
        return f"<AttainmentResult {self.subject_key} outcome={self.outcome_id}>"


class AttainmentStagingRow(_AttainmentColumns, db.Model):
    __tablename__ = "attainment_staging"

    staging_id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, nullable=False, index=True)

    def __repr__(self):
        return f"<AttainmentStaging job={self.job_id} outcome={self.outcome_id}>"
