from datetime import datetime

from extensions import db

JOB_STATUSES = ("pending", "running", "completed", "failed", "cancelled")


class RecomputeJob(db.Model):
    __tablename__ = "recompute_jobs"

    job_id = db.Column(db.Integer, primary_key=True)
    scope_type = db.Column(db.String(20), nullable=False)  # offering | program
    scope_id = db.Column(db.Integer, nullable=False)
    rollup_strategy = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    revision_at_start = db.Column(db.Integer, nullable=True)
    score_revision_at_start = db.Column(db.Integer, nullable=True)
    cancel_requested = db.Column(db.Boolean, nullable=False, default=False)
    outcomes_total = db.Column(db.Integer, nullable=False, default=0)
    outcomes_done = db.Column(db.Integer, nullable=False, default=0)
    error = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    finished_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_finished(self):
        return self.status in ("completed", "failed")

    def to_dict(self):
        return {
            "job_id": self.job_id,
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            "rollup_strategy": self.rollup_strategy,
            "status": self.status,
            "cancel_requested": self.cancel_requested,
            "outcomes_total": self.outcomes_total,
            "outcomes_done": self.outcomes_done,
            "error": self.error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

    def __repr__(self):
        return f"<RecomputeJob {self.job_id} {self.status}>"
