from datetime import datetime

from extensions import db

TIERS = ("CLO", "PLO", "PEO")

# PEO <- PLO <- CLO
TIER_RANK = {"CLO": 1, "PLO": 2, "PEO": 3}


class Outcome(db.Model):
    """A learning outcome on one of the three tiers.

    ``scope_id`` is a course offering id for a CLO and a program id for a
    PLO or PEO.
    """

    __tablename__ = "outcomes"

    outcome_id = db.Column(db.Integer, primary_key=True)
    tier = db.Column(db.Enum(*TIERS, name="outcome_tier"), nullable=False)
    scope_id = db.Column(db.Integer, nullable=False, index=True)
    code = db.Column(db.String(20), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("tier", "scope_id", "code", name="unique_tier_scope_code"),
    )

    @property
    def rank(self):
        return TIER_RANK[self.tier]

    def to_dict(self):
        return {
            "outcome_id": self.outcome_id,
            "tier": self.tier,
            "scope_id": self.scope_id,
            "code": self.code,
            "description": self.description,
        }

    def __repr__(self):
        return f"<Outcome {self.tier} {self.code}>"
