import logging

import click
from flask import Flask

from config.config import Config
from extensions import db, migrate

# Route Imports
from routes.outcome_routes import outcome_bp
from routes.allocation_routes import allocation_bp
from routes.attainment_routes import attainment_bp

# Model Imports (registers every table with the metadata used by migrations)
import models  # noqa: F401


def configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    logging.getLogger().setLevel(level)
    app.logger.setLevel(level)


def register_commands(app):

    @app.cli.command("seed-thresholds")
    def seed_thresholds_command():
        """Give every program a threshold profile built from the config defaults."""
        from utils.seed_data import seed_default_thresholds
        created = seed_default_thresholds()
        click.echo(f"Threshold profiles created: {created}")

    @app.cli.command("run-recompute-job")
    @click.argument("job_id", type=int)
    def run_recompute_job_command(job_id):
        """Run a queued recompute job (used by the external scheduler)."""
        from services.recompute_service import run_job
        job = run_job(job_id)
        click.echo(f"Job {job.job_id}: {job.status}" + (f" ({job.error})" if job.error else ""))


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_logging(app)

    # Initialize Extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Register Blueprints
    app.register_blueprint(outcome_bp)
    app.register_blueprint(allocation_bp)
    app.register_blueprint(attainment_bp)

    register_commands(app)
    return app

if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=True)
