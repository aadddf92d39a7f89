import logging

from flask import current_app

from extensions import db
from models import Program, ThresholdProfile

logger = logging.getLogger(__name__)


def seed_default_thresholds():
    """Create a program-wide threshold profile for every program that has none."""
    defaults = current_app.config["OBE_THRESHOLDS"]
    pass_threshold = current_app.config["OBE_PASS_THRESHOLD"]

    created = 0
    for program in Program.query.order_by(Program.program_id.asc()).all():
        existing = ThresholdProfile.query.filter_by(
            program_id=program.program_id,
            tier=None,
            outcome_id=None
        ).first()
        if existing:
            continue

        db.session.add(
            ThresholdProfile(
                program_id=program.program_id,
                excellent=defaults["excellent"],
                high=defaults["high"],
                medium=defaults["medium"],
                low=defaults["low"],
                pass_threshold=pass_threshold
            )
        )
        created += 1

    db.session.commit()
    logger.info("Threshold profiles seeded for %s programs", created)
    return created
