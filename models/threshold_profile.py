from extensions import db

class ThresholdProfile(db.Model):
    """Classification breakpoints for a program, a tier within it, or one outcome."""

    __tablename__ = "threshold_profiles"

    profile_id = db.Column(db.Integer, primary_key=True)

    program_id = db.Column(
        db.Integer,
        db.ForeignKey("programs.program_id"),
        nullable=True
    )
    tier = db.Column(db.String(3), nullable=True)
    outcome_id = db.Column(
        db.Integer,
        db.ForeignKey("outcomes.outcome_id"),
        nullable=True,
        unique=True
    )

    excellent = db.Column(db.Float, nullable=False)
    high = db.Column(db.Float, nullable=False)
    medium = db.Column(db.Float, nullable=False)
    low = db.Column(db.Float, nullable=False)
    pass_threshold = db.Column(db.Float, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("program_id", "tier", "outcome_id", name="unique_threshold_target"),
    )

    def to_dict(self):
        return {
            "profile_id": self.profile_id,
            "program_id": self.program_id,
            "tier": self.tier,
            "outcome_id": self.outcome_id,
            "excellent": self.excellent,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
            "pass_threshold": self.pass_threshold,
        }

    def __repr__(self):
        return f"<ThresholdProfile {self.profile_id}>"
