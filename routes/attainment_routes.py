import math
from io import BytesIO

import pandas as pd
from flask import Blueprint, current_app, jsonify, request, send_file

from routes._params import int_arg, int_value, scope_from
from services import (
    attainment_service, classifier, hierarchy_service,
    override_service, recompute_service, summary_service
)
from services.attainment_service import Subject
from services.errors import ValidationError
from utils.decorators import handles_obe_errors, json_body

attainment_bp = Blueprint("attainment", __name__, url_prefix="/api/attainment")


# =========================================================
# ATTAINMENT
# =========================================================

@attainment_bp.route("/outcomes/<int:outcome_id>")
@handles_obe_errors
def get_attainment(outcome_id):
    subject = Subject.parse(request.args.get("subject"))
    result = attainment_service.get_attainment(subject, outcome_id, request.args.get("strategy"))
    return jsonify(result.to_dict())


@attainment_bp.route("/summary")
@handles_obe_errors
def get_summary():
    scope = scope_from(request.args)
    series = summary_service.get_summary(scope, request.args.get("tier"), request.args.get("strategy"))
    return jsonify(series)


@attainment_bp.route("/programs/<int:program_id>/trend")
@handles_obe_errors
def plo_trend(program_id):
    return jsonify(summary_service.plo_trend(program_id, request.args.get("strategy")))


@attainment_bp.route("/statistics")
@handles_obe_errors
def cohort_statistics():
    scope = scope_from(request.args)
    return jsonify(summary_service.cohort_statistics(scope, request.args.get("tier"), request.args.get("strategy")))


@attainment_bp.route("/compare-offerings", methods=["POST"])
@handles_obe_errors
def compare_offerings():
    data = json_body(request)
    offering_ids = data.get("course_offering_ids")
    if not isinstance(offering_ids, list):
        raise ValidationError("course_offering_ids must be a list")
    ids = [int_value(value, "course_offering_ids") for value in offering_ids]
    return jsonify(summary_service.compare_offerings(ids, data.get("strategy")))


@attainment_bp.route("/breakdown")
@handles_obe_errors
def student_breakdown():
    scope = scope_from(request.args)
    strategy = request.args.get("strategy")

    file_format = request.args.get("format", "json")
    if file_format == "json":
        return jsonify(summary_service.student_breakdown(scope, strategy))
    if file_format not in ("csv", "excel"):
        raise ValidationError("format must be json, csv or excel")

    frame = summary_service.breakdown_frame(scope, strategy)
    output = BytesIO()
    download_name = f"clo_breakdown_{scope.scope_type}_{scope.scope_id}"

    if file_format == "excel":
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            frame.to_excel(writer, index=False, sheet_name="CLO Breakdown")
        mimetype = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        download_name += ".xlsx"
    else:
        output.write(frame.to_csv(index=False).encode("utf-8"))
        mimetype = "text/csv"
        download_name += ".csv"

    output.seek(0)
    return send_file(
        output,
        mimetype=mimetype,
        as_attachment=True,
        download_name=download_name
    )


# =========================================================
# RECOMPUTE
# =========================================================

@attainment_bp.route("/recompute", methods=["POST"])
@handles_obe_errors
def recompute():
    data = json_body(request)
    scope = scope_from(data)
    mode = (data.get("mode") or "").strip().lower()
    if mode not in ("", "sync", "async"):
        raise ValidationError("mode must be sync or async")

    if not mode:
        outcome_count = len(attainment_service.scope_outcomes(scope))
        limit = current_app.config["OBE_SYNC_RECOMPUTE_MAX_OUTCOMES"]
        mode = "sync" if outcome_count <= limit else "async"

    job = recompute_service.recompute(scope, data.get("strategy"), synchronous=(mode == "sync"))
    if mode == "async":
        return jsonify(job.to_dict()), 202

    rows = recompute_service.cached_results(scope)
    payload = job.to_dict()
    payload["results"] = [row.to_dict() for row in rows]
    return jsonify(payload)


@attainment_bp.route("/results")
@handles_obe_errors
def cached_results():
    scope = scope_from(request.args)
    subject = request.args.get("subject")
    subject_key = Subject.parse(subject).key if subject else None
    rows = recompute_service.cached_results(scope, subject_key)
    return jsonify([row.to_dict() for row in rows])


@attainment_bp.route("/jobs/<int:job_id>")
@handles_obe_errors
def get_job(job_id):
    return jsonify(recompute_service.get_job(job_id).to_dict())


@attainment_bp.route("/jobs/<int:job_id>/run", methods=["POST"])
@handles_obe_errors
def run_job(job_id):
    return jsonify(recompute_service.run_job(job_id).to_dict())


@attainment_bp.route("/jobs/<int:job_id>/cancel", methods=["POST"])
@handles_obe_errors
def cancel_job(job_id):
    return jsonify(recompute_service.cancel_job(job_id).to_dict())


@attainment_bp.route("/jobs/<int:job_id>/resume", methods=["POST"])
@handles_obe_errors
def resume_job(job_id):
    return jsonify(recompute_service.resume_job(job_id).to_dict())


# =========================================================
# OVERRIDES
# =========================================================

@attainment_bp.route("/overrides", methods=["POST"])
@handles_obe_errors
def override_attainment():
    data = json_body(request)
    override = override_service.override_attainment(
        subject=Subject.parse(data.get("subject")),
        outcome_id=int_value(data.get("outcome_id"), "outcome_id"),
        value=data.get("value"),
        reason=data.get("reason"),
        created_by=data.get("created_by")
    )
    return jsonify(override.to_dict()), 201


@attainment_bp.route("/overrides", methods=["DELETE"])
@handles_obe_errors
def clear_override():
    data = json_body(request)
    override_service.clear_override(
        subject=Subject.parse(data.get("subject")),
        outcome_id=int_value(data.get("outcome_id"), "outcome_id"),
        reason=data.get("reason")
    )
    return jsonify({"status": "success"})


@attainment_bp.route("/outcomes/<int:outcome_id>/overrides")
@handles_obe_errors
def list_overrides(outcome_id):
    hierarchy_service.get_outcome(outcome_id)
    return jsonify([row.to_dict() for row in override_service.list_overrides(outcome_id)])


# =========================================================
# THRESHOLDS
# =========================================================

@attainment_bp.route("/thresholds", methods=["PUT"])
@handles_obe_errors
def set_thresholds():
    data = json_body(request)
    program_id = data.get("program_id")
    outcome_id = data.get("outcome_id")
    profile = classifier.set_threshold_profile(
        data,
        program_id=int_value(program_id, "program_id") if program_id is not None else None,
        tier=data.get("tier"),
        outcome_id=int_value(outcome_id, "outcome_id") if outcome_id is not None else None
    )
    return jsonify(profile.to_dict())


@attainment_bp.route("/thresholds/<int:outcome_id>")
@handles_obe_errors
def resolved_thresholds(outcome_id):
    outcome = hierarchy_service.get_outcome(outcome_id)
    return jsonify(classifier.resolve_thresholds(outcome).to_dict())


@attainment_bp.route("/classify")
@handles_obe_errors
def classify():
    outcome = hierarchy_service.get_outcome(int_arg("outcome_id"))
    raw = request.args.get("percentage")
    try:
        percentage = None if raw in (None, "", "null") else float(raw)
    except ValueError:
        raise ValidationError("percentage must be a number")
    if percentage is not None and not math.isfinite(percentage):
        raise ValidationError("percentage must be a finite number")
    thresholds = classifier.resolve_thresholds(outcome)
    return jsonify({
        "percentage": percentage,
        "level": classifier.classify(percentage, thresholds),
        "is_attained": classifier.is_attained(percentage, thresholds),
    })
