from flask import Blueprint, jsonify, request

from routes._params import as_bool, int_arg, int_value
from services import hierarchy_service
from utils.decorators import handles_obe_errors, json_body

outcome_bp = Blueprint("outcomes", __name__, url_prefix="/api")


# =========================================================
# OUTCOMES
# =========================================================

@outcome_bp.route("/outcomes", methods=["POST"])
@handles_obe_errors
def create_outcome():
    data = json_body(request)
    outcome = hierarchy_service.create_outcome(
        tier=data.get("tier"),
        scope_id=int_value(data.get("scope_id"), "scope_id"),
        code=data.get("code"),
        description=data.get("description") or ""
    )
    return jsonify(outcome.to_dict()), 201


@outcome_bp.route("/outcomes", methods=["GET"])
@handles_obe_errors
def list_outcomes():
    outcomes = hierarchy_service.list_outcomes(request.args.get("tier"), int_arg("scope_id"))
    return jsonify([o.to_dict() for o in outcomes])


@outcome_bp.route("/outcomes/<int:outcome_id>", methods=["GET"])
@handles_obe_errors
def get_outcome(outcome_id):
    return jsonify(hierarchy_service.get_outcome(outcome_id).to_dict())


@outcome_bp.route("/outcomes/<int:outcome_id>", methods=["PATCH"])
@handles_obe_errors
def update_outcome(outcome_id):
    data = json_body(request)
    outcome = hierarchy_service.update_outcome(
        outcome_id,
        code=data.get("code"),
        description=data.get("description")
    )
    return jsonify(outcome.to_dict())


@outcome_bp.route("/outcomes/<int:outcome_id>", methods=["DELETE"])
@handles_obe_errors
def delete_outcome(outcome_id):
    cascaded = hierarchy_service.delete_outcome(outcome_id)
    return jsonify({"deleted": outcome_id, "cascaded": cascaded})


@outcome_bp.route("/outcomes/<int:outcome_id>/children")
@handles_obe_errors
def list_children(outcome_id):
    return jsonify([o.to_dict() for o in hierarchy_service.list_children(outcome_id)])


@outcome_bp.route("/outcomes/<int:outcome_id>/parents")
@handles_obe_errors
def list_parents(outcome_id):
    return jsonify([o.to_dict() for o in hierarchy_service.list_parents(outcome_id)])


# =========================================================
# MAPPINGS
# =========================================================

@outcome_bp.route("/mappings", methods=["POST"])
@handles_obe_errors
def set_mapping():
    data = json_body(request)
    edge = hierarchy_service.set_mapping(
        child_id=int_value(data.get("child_id"), "child_id"),
        parent_id=int_value(data.get("parent_id"), "parent_id"),
        present=as_bool(data.get("present"), default=True),
        weight=data.get("weight"),
        correlation_level=data.get("correlation_level")
    )
    return jsonify({"mapped": edge is not None, "edge": edge.to_dict() if edge else None})


@outcome_bp.route("/programs/<int:program_id>/mapping-matrix")
@handles_obe_errors
def mapping_matrix(program_id):
    child_tier = request.args.get("child_tier", "CLO")
    return jsonify(hierarchy_service.mapping_matrix(program_id, child_tier))
