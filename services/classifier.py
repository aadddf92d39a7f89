import logging
import math
from dataclasses import asdict, dataclass
from fractions import Fraction

from flask import current_app

from extensions import db
from models import CourseOffering, ThresholdProfile
from services import audit_service, revisions
from services.errors import ValidationError
from services.hierarchy_service import get_outcome, normalize_tier

logger = logging.getLogger(__name__)

LEVELS = ("excellent", "high", "medium", "low", "very-low")
UNKNOWN = "unknown"


@dataclass(frozen=True)
class ThresholdConfig:
    """Inclusive lower bounds for each level, in percent."""

    excellent: float = 80.0
    high: float = 70.0
    medium: float = 60.0
    low: float = 50.0
    pass_threshold: float = 60.0

    def __post_init__(self):
        bounds = [self.excellent, self.high, self.medium, self.low]
        for value in bounds + [self.pass_threshold]:
            if value is None or not 0 <= value <= 100:
                raise ValidationError("Thresholds must be between 0 and 100")
        if any(upper <= lower for upper, lower in zip(bounds, bounds[1:])):
            raise ValidationError("Thresholds must be strictly descending: excellent > high > medium > low")

    @classmethod
    def from_mapping(cls, values, pass_threshold=None):
        return cls(
            excellent=float(values["excellent"]),
            high=float(values["high"]),
            medium=float(values["medium"]),
            low=float(values["low"]),
            pass_threshold=float(pass_threshold if pass_threshold is not None else values.get("pass_threshold", values["medium"])),
        )

    @classmethod
    def from_profile(cls, profile):
        return cls(
            excellent=profile.excellent,
            high=profile.high,
            medium=profile.medium,
            low=profile.low,
            pass_threshold=profile.pass_threshold,
        )

    def to_dict(self):
        return asdict(self)


def _exact(value):
    # Compare exactly so a computed 79.999... never rounds up into "excellent"
    if isinstance(value, Fraction):
        return value
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(f"Attainment percentage must be a finite number, got {value}")
    return Fraction(repr(value))


def classify(percentage, config):
    if percentage is None:
        return UNKNOWN
    value = _exact(percentage)
    for level, bound in zip(LEVELS, (config.excellent, config.high, config.medium, config.low)):
        if value >= _exact(bound):
            return level
    return "very-low"


def is_attained(percentage, config):
    if percentage is None:
        return None
    return _exact(percentage) >= _exact(config.pass_threshold)


def default_thresholds():
    return ThresholdConfig.from_mapping(
        current_app.config["OBE_THRESHOLDS"],
        pass_threshold=current_app.config["OBE_PASS_THRESHOLD"],
    )


def program_of(outcome):
    if outcome.tier == "CLO":
        offering = db.session.get(CourseOffering, outcome.scope_id)
        return offering.program_id if offering else None
    return outcome.scope_id


def resolve_thresholds(outcome, profiles=None):
    """Most specific profile wins: outcome, then program and tier, then program."""
    if profiles is None:
        profiles = ThresholdProfile.query.all()
    program_id = program_of(outcome)

    by_outcome = by_tier = by_program = None
    for profile in profiles:
        if profile.outcome_id is not None:
            if profile.outcome_id == outcome.outcome_id:
                by_outcome = profile
        elif profile.program_id == program_id and program_id is not None:
            if profile.tier == outcome.tier:
                by_tier = profile
            elif profile.tier is None:
                by_program = profile

    chosen = by_outcome or by_tier or by_program
    if chosen is None:
        return default_thresholds()
    return ThresholdConfig.from_profile(chosen)


def set_threshold_profile(values, program_id=None, tier=None, outcome_id=None):
    if program_id is None and outcome_id is None:
        raise ValidationError("A threshold profile needs a program_id or an outcome_id")
    if outcome_id is not None:
        get_outcome(outcome_id)
        program_id, tier = None, None
    else:
        revisions.get_program(program_id)
        if tier is not None:
            tier = normalize_tier(tier)

    try:
        config = ThresholdConfig.from_mapping(values)
    except (KeyError, TypeError, ValueError):
        raise ValidationError("excellent, high, medium and low are required numbers")

    profile = ThresholdProfile.query.filter_by(
        program_id=program_id, tier=tier, outcome_id=outcome_id
    ).first()
    before = profile.to_dict() if profile else None
    if profile is None:
        profile = ThresholdProfile(program_id=program_id, tier=tier, outcome_id=outcome_id)
        db.session.add(profile)

    for field, value in config.to_dict().items():
        setattr(profile, field, value)
    db.session.flush()

    audit_service.record(
        "UPDATE" if before else "CREATE", "threshold_profiles", profile.profile_id,
        old_values=before, new_values=profile.to_dict()
    )
    db.session.commit()
    logger.info("Threshold profile %s saved: %s", profile.profile_id, config)
    return profile
