from flask import Blueprint, jsonify, request

from routes._params import int_value
from services import allocation_service, score_adapter
from utils.decorators import handles_obe_errors, json_body

allocation_bp = Blueprint("allocations", __name__, url_prefix="/api")


# =========================================================
# ASSESSMENT ITEMS
# =========================================================

@allocation_bp.route("/assessment-items", methods=["POST"])
@handles_obe_errors
def create_item():
    data = json_body(request)
    parent_item_id = data.get("parent_item_id")
    item = allocation_service.create_assessment_item(
        course_offering_id=int_value(data.get("course_offering_id"), "course_offering_id"),
        name=data.get("name"),
        total_marks=data.get("total_marks"),
        item_type=data.get("item_type") or "component",
        parent_item_id=int_value(parent_item_id, "parent_item_id") if parent_item_id is not None else None
    )
    return jsonify(item.to_dict()), 201


@allocation_bp.route("/assessment-items/<int:item_id>", methods=["PATCH"])
@handles_obe_errors
def update_item(item_id):
    data = json_body(request)
    item = allocation_service.update_total_marks(item_id, data.get("total_marks"))
    return jsonify(item.to_dict())


# =========================================================
# ALLOCATIONS
# =========================================================

@allocation_bp.route("/assessment-items/<int:item_id>/allocations", methods=["GET"])
@handles_obe_errors
def get_allocations(item_id):
    rows = allocation_service.get_allocations(item_id)
    return jsonify({
        "allocations": [allocation_service.allocation_to_dict(r) for r in rows],
        "summary": allocation_service.allocation_summary(item_id)
    })


@allocation_bp.route("/assessment-items/<int:item_id>/allocations", methods=["PUT"])
@handles_obe_errors
def set_allocations(item_id):
    data = json_body(request)
    allocations = data.get("allocations")
    if not isinstance(allocations, list):
        allocations = []
    rows = allocation_service.set_allocations(item_id, allocations)
    return jsonify({
        "allocations": [allocation_service.allocation_to_dict(r) for r in rows],
        "summary": allocation_service.allocation_summary(item_id)
    })


@allocation_bp.route("/clos/<int:clo_id>/allocations")
@handles_obe_errors
def clo_allocations(clo_id):
    pairs = allocation_service.get_allocations_for_clo(clo_id)
    return jsonify([
        {"item": item.to_dict(), "marks_allocated": float(marks)}
        for item, marks in pairs
    ])


# =========================================================
# SCORES
# =========================================================

@allocation_bp.route("/assessment-items/<int:item_id>/scores", methods=["POST"])
@handles_obe_errors
def submit_scores(item_id):
    data = json_body(request)
    entries = data.get("entries")
    if not isinstance(entries, list):
        entries = []
    stored = score_adapter.record_scores(item_id, entries)
    return jsonify({"status": "success", "stored": stored})
