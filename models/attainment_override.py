from datetime import datetime

from extensions import db

class AttainmentOverride(db.Model):
    __tablename__ = "attainment_overrides"

    override_id = db.Column(db.Integer, primary_key=True)
    subject_key = db.Column(db.String(40), nullable=False)
    outcome_id = db.Column(db.Integer, nullable=False, index=True)

    # Value the engine computed at the time of the correction, NULL if Undefined
    original_percentage = db.Column(db.Float, nullable=True)
    override_percentage = db.Column(db.Float, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "override_id": self.override_id,
            "subject": self.subject_key,
            "outcome_id": self.outcome_id,
            "original_percentage": self.original_percentage,
            "override_percentage": self.override_percentage,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<AttainmentOverride {self.subject_key} outcome={self.outcome_id}>"
