"""Batch recomputation of cached attainment for an offering or a program.

Results are written to ``attainment_staging`` under the job id and only
replace the rows in ``attainment_results`` once every outcome of the scope is
done and the scope revision is still the one the job started from.
"""
import logging
from datetime import datetime

from flask import current_app

from extensions import db
from models import (
    AttainmentResultRow, AttainmentStagingRow, RecomputeJob,
    ScopeRevision, ThresholdProfile
)
from services import audit_service, classifier, revisions
from services.aggregation import RollupStrategy
from services.attainment_service import (
    load_calculator, results_for_outcome, scope_outcomes
)
from services.errors import JobStateError, NotFound, StaleScope
from utils.sorting import code_sort_key

logger = logging.getLogger(__name__)

_RESULT_FIELDS = (
    "subject_key", "outcome_id", "percentage", "level", "is_attained",
    "students_counted", "items_counted", "children_counted",
    "rollup_strategy", "computed_at",
)


def get_job(job_id):
    job = db.session.get(RecomputeJob, job_id)
    if job is None:
        raise NotFound(f"Recompute job {job_id} not found")
    return job


def start_recompute(scope, strategy=None):
    """Create a pending job; the caller or a scheduler runs it with run_job."""
    revisions.ensure_scope_exists(scope)
    strategy = RollupStrategy.parse(strategy, default=current_app.config.get("OBE_DEFAULT_ROLLUP"))
    job = RecomputeJob(
        scope_type=scope.scope_type,
        scope_id=scope.scope_id,
        rollup_strategy=strategy.value,
        status="pending"
    )
    db.session.add(job)
    db.session.commit()
    logger.info("Recompute job %s queued for %s (%s)", job.job_id, scope.key, strategy.value)
    return job


def _cancel_requested(job_id):
    return bool(
        db.session.query(RecomputeJob.cancel_requested)
        .filter_by(job_id=job_id)
        .scalar()
    )


def _locked_revision(scope):
    row = (
        ScopeRevision.query
        .filter_by(scope_key=scope.key)
        .with_for_update()
        .first()
    )
    return row.revision if row else 0


def _discard_staging(job_id):
    return (
        AttainmentStagingRow.query
        .filter_by(job_id=job_id)
        .delete(synchronize_session="fetch")
    )


def _stage(job_id, result):
    db.session.add(AttainmentStagingRow(
        job_id=job_id,
        subject_key=result.subject,
        outcome_id=result.outcome_id,
        percentage=result.percentage,
        level=result.level,
        is_attained=result.is_attained,
        students_counted=result.students_counted,
        items_counted=result.items_counted,
        children_counted=result.children_counted,
        rollup_strategy=result.rollup_strategy,
        computed_at=result.computed_at,
    ))


def _swap(job, outcome_ids):
    """Replace the final rows of the scope with the staged ones in one transaction."""
    AttainmentResultRow.query.filter(
        AttainmentResultRow.outcome_id.in_(outcome_ids)
    ).delete(synchronize_session="fetch")

    staged = AttainmentStagingRow.query.filter_by(job_id=job.job_id).all()
    for row in staged:
        db.session.add(AttainmentResultRow(
            job_id=job.job_id,
            **{field: getattr(row, field) for field in _RESULT_FIELDS}
        ))
    _discard_staging(job.job_id)
    return len(staged)


def _fail(job, error):
    db.session.rollback()
    job = get_job(job.job_id)
    _discard_staging(job.job_id)
    job.status = "failed"
    job.error = error[:255]
    job.finished_at = datetime.utcnow()
    db.session.commit()
    return job


def run_job(job_id, score_source=None):
    """Run a pending job to completion, cancellation or failure.

    Failures are recorded on the job instead of being raised.
    """
    job = get_job(job_id)
    if job.status != "pending":
        raise JobStateError(f"Job {job_id} is {job.status}, only pending jobs can run")

    scope = revisions.Scope(job.scope_type, job.scope_id)
    if job.revision_at_start is None:
        job.revision_at_start = revisions.current_revision(scope)
        job.score_revision_at_start = revisions.current_score_revision(scope)
    job.status = "running"
    db.session.commit()
    logger.info("Recompute job %s running for %s", job_id, scope.key)

    try:
        outcomes = scope_outcomes(scope)
        outcome_ids = [o.outcome_id for o in outcomes]
        job.outcomes_total = len(outcomes)

        already_staged = {
            oid for (oid,) in
            db.session.query(AttainmentStagingRow.outcome_id)
            .filter_by(job_id=job_id)
            .distinct()
            .all()
        }
        job.outcomes_done = len(already_staged & set(outcome_ids))
        db.session.commit()

        calculator, _ = load_calculator(outcome_ids, job.rollup_strategy, score_source=score_source)
        profiles = ThresholdProfile.query.all()
        computed_at = datetime.utcnow()

        for outcome in outcomes:
            if outcome.outcome_id in already_staged:
                continue
            if _cancel_requested(job_id):
                job.status = "cancelled"
                job.finished_at = datetime.utcnow()
                db.session.commit()
                logger.info("Recompute job %s cancelled after %s/%s outcomes",
                            job_id, job.outcomes_done, job.outcomes_total)
                return job
            if revisions.current_revision(scope) != job.revision_at_start:
                raise StaleScope(f"{scope.key} changed during recompute")

            thresholds = classifier.resolve_thresholds(outcome, profiles)
            for result in results_for_outcome(calculator, outcome, thresholds, job.rollup_strategy, computed_at):
                _stage(job_id, result)
            job.outcomes_done += 1
            db.session.commit()

        if _locked_revision(scope) != job.revision_at_start:
            raise StaleScope(f"{scope.key} changed during recompute")

        published = _swap(job, outcome_ids)
        job.status = "completed"
        job.finished_at = datetime.utcnow()
        audit_service.record(
            "RECOMPUTE", "attainment_results", job_id,
            new_values={"scope": scope.key, "rows": published, "strategy": job.rollup_strategy}
        )
        db.session.commit()
        logger.info("Recompute job %s completed: %s rows published for %s", job_id, published, scope.key)
        return job

    except StaleScope:
        logger.warning("Recompute job %s abandoned: %s changed mid-run", job_id, scope.key)
        return _fail(job, "stale_scope")
    except Exception as exc:
        logger.error("Recompute job %s failed", job_id, exc_info=True)
        return _fail(job, str(exc) or exc.__class__.__name__)


def recompute(scope, strategy=None, synchronous=True, score_source=None):
    """Queue a job for ``scope`` and, when synchronous, run it inline.

    A synchronous run that hit a concurrent curriculum change raises
    StaleScope so the caller can retry the whole recompute.
    """
    job = start_recompute(scope, strategy)
    if not synchronous:
        return job

    job = run_job(job.job_id, score_source=score_source)
    if job.status == "failed" and job.error == "stale_scope":
        raise StaleScope(f"{scope.key} changed during recompute, retry", job_id=job.job_id)
    return job


def cancel_job(job_id):
    job = get_job(job_id)
    if job.is_finished:
        raise JobStateError(f"Job {job_id} is already {job.status}")
    if job.status == "pending":
        job.status = "cancelled"
        job.finished_at = datetime.utcnow()
    job.cancel_requested = True
    db.session.commit()
    logger.info("Cancellation requested for recompute job %s", job_id)
    return job


def resume_job(job_id, score_source=None):
    """Continue a cancelled job, keeping staged work when neither the curriculum
    nor the scores of the scope changed since it started."""
    job = get_job(job_id)
    if job.status != "cancelled":
        raise JobStateError(f"Job {job_id} is {job.status}, only cancelled jobs can resume")

    scope = revisions.Scope(job.scope_type, job.scope_id)
    moved = (
        job.revision_at_start != revisions.current_revision(scope)
        or job.score_revision_at_start != revisions.current_score_revision(scope)
    )
    if moved:
        discarded = _discard_staging(job_id)
        job.revision_at_start = None
        job.score_revision_at_start = None
        job.outcomes_done = 0
        logger.info("Scope %s moved since job %s was cancelled; %s staged rows discarded",
                    scope.key, job_id, discarded)

    job.cancel_requested = False
    job.status = "pending"
    job.finished_at = None
    db.session.commit()
    return run_job(job_id, score_source=score_source)


def cached_results(scope, subject_key=None):
    """Published rows for a scope, ordered by outcome code then subject."""
    outcomes = {o.outcome_id: o for o in scope_outcomes(scope)}
    if not outcomes:
        return []
    query = AttainmentResultRow.query.filter(AttainmentResultRow.outcome_id.in_(list(outcomes)))
    if subject_key is not None:
        query = query.filter_by(subject_key=subject_key)

    def order(row):
        outcome = outcomes[row.outcome_id]
        if row.subject_key == "cohort":
            subject = (0, 0)
        else:
            subject = (1, int(row.subject_key.split(":", 1)[1]))
        return (code_sort_key(outcome.code), outcome.outcome_id, subject)

    return sorted(query.all(), key=order)
