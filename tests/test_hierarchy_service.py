import json

import pytest

from models import AllocationRow, MappingEdge
from services import allocation_service, audit_service, hierarchy_service, revisions
from services.errors import DuplicateCode, NotFound, TierMismatch, ValidationError


def test_create_outcome_rejects_duplicate_code_in_scope(offering, make_offering):
    hierarchy_service.create_outcome("CLO", offering.course_offering_id, "CLO1")
    with pytest.raises(DuplicateCode):
        hierarchy_service.create_outcome("clo", offering.course_offering_id, "CLO1")

    other = make_offering("CS102")
    assert hierarchy_service.create_outcome("CLO", other.course_offering_id, "CLO1").code == "CLO1"


def test_create_outcome_needs_existing_scope(program):
    with pytest.raises(NotFound):
        hierarchy_service.create_outcome("CLO", 999, "CLO1")
    with pytest.raises(ValidationError):
        hierarchy_service.create_outcome("XLO", program.program_id, "X1")


def test_outcomes_list_in_natural_code_order(program, offering):
    for code in ("CLO10", "CLO2", "CLO1"):
        hierarchy_service.create_outcome("CLO", offering.course_offering_id, code)

    codes = [o.code for o in hierarchy_service.list_outcomes("CLO", offering.course_offering_id)]
    assert codes == ["CLO1", "CLO2", "CLO10"]


def test_mapping_must_go_exactly_one_tier_up(curriculum):
    with pytest.raises(TierMismatch):
        hierarchy_service.set_mapping(curriculum.clo1.outcome_id, curriculum.peo1.outcome_id, True)
    with pytest.raises(TierMismatch):
        hierarchy_service.set_mapping(curriculum.plo1.outcome_id, curriculum.clo1.outcome_id, True)
    with pytest.raises(NotFound):
        hierarchy_service.set_mapping(curriculum.clo1.outcome_id, 9999, True)


def test_set_mapping_is_idempotent(curriculum):
    clo1, plo1 = curriculum.clo1.outcome_id, curriculum.plo1.outcome_id
    revision = revisions.current_revision(revisions.Scope.program(curriculum.program.program_id))

    hierarchy_service.set_mapping(clo1, plo1, True)
    assert MappingEdge.query.filter_by(child_id=clo1, parent_id=plo1).count() == 1
    assert revisions.current_revision(revisions.Scope.program(curriculum.program.program_id)) == revision

    hierarchy_service.set_mapping(clo1, plo1, False)
    hierarchy_service.set_mapping(clo1, plo1, False)
    assert MappingEdge.query.filter_by(child_id=clo1, parent_id=plo1).count() == 0
    assert [o.code for o in hierarchy_service.list_children(plo1)] == ["CLO2"]


def test_correlation_level_sets_weight(curriculum):
    edge = hierarchy_service.set_mapping(
        curriculum.clo1.outcome_id, curriculum.plo1.outcome_id, True, correlation_level="High"
    )
    assert float(edge.weight) == 3.0
    assert edge.correlation_level == "High"

    with pytest.raises(ValidationError):
        hierarchy_service.set_mapping(curriculum.clo2.outcome_id, curriculum.plo1.outcome_id, True, weight=0)


def test_children_and_parents(curriculum):
    assert [o.code for o in hierarchy_service.list_children(curriculum.plo1.outcome_id)] == ["CLO1", "CLO2"]
    assert [o.code for o in hierarchy_service.list_parents(curriculum.clo1.outcome_id)] == ["PLO1"]
    assert [o.code for o in hierarchy_service.list_parents(curriculum.plo1.outcome_id)] == ["PEO1"]
    assert hierarchy_service.list_children(curriculum.clo1.outcome_id) == []


def test_delete_cascades_edges_and_allocations(curriculum):
    offering_id = curriculum.offering.course_offering_id
    clo1, plo1 = curriculum.clo1.outcome_id, curriculum.plo1.outcome_id
    plo2 = hierarchy_service.create_outcome("PLO", curriculum.program.program_id, "PLO2")
    hierarchy_service.set_mapping(clo1, plo2.outcome_id, True)

    items = [curriculum.item]
    for name in ("Quiz", "Lab"):
        item = allocation_service.create_assessment_item(offering_id, name, 20)
        allocation_service.set_allocations(item.item_id, [{"clo_id": clo1, "marks": 10}])
        items.append(item)
    item_ids = [item.item_id for item in items]

    assert hierarchy_service.delete_outcome(clo1) == 5

    assert MappingEdge.query.filter((MappingEdge.child_id == clo1) | (MappingEdge.parent_id == clo1)).count() == 0
    assert AllocationRow.query.filter_by(clo_id=clo1).count() == 0
    remaining = [row.clo_id for row in allocation_service.get_allocations(item_ids[0])]
    assert remaining == [curriculum.clo2.outcome_id]
    assert allocation_service.get_allocations(item_ids[1]) == []
    assert [o.code for o in hierarchy_service.list_children(plo1)] == ["CLO2"]

    with pytest.raises(NotFound):
        hierarchy_service.get_outcome(clo1)

    entry = audit_service.entries_for("outcomes", clo1)[-1]
    assert entry.action == "DELETE"
    assert json.loads(entry.old_values)["allocations_removed"] == 3


def test_edits_bump_scope_revisions(curriculum):
    offering_scope = revisions.Scope.offering(curriculum.offering.course_offering_id)
    program_scope = revisions.Scope.program(curriculum.program.program_id)
    before = (revisions.current_revision(offering_scope), revisions.current_revision(program_scope))

    hierarchy_service.create_outcome("CLO", curriculum.offering.course_offering_id, "CLO3")

    after = (revisions.current_revision(offering_scope), revisions.current_revision(program_scope))
    assert after == (before[0] + 1, before[1] + 1)


def test_outcome_update_bumps_scope_revisions(curriculum):
    offering_scope = revisions.Scope.offering(curriculum.offering.course_offering_id)
    program_scope = revisions.Scope.program(curriculum.program.program_id)
    before = (revisions.current_revision(offering_scope), revisions.current_revision(program_scope))

    hierarchy_service.update_outcome(curriculum.clo2.outcome_id, code="CLO0")
    after = (revisions.current_revision(offering_scope), revisions.current_revision(program_scope))
    assert after == (before[0] + 1, before[1] + 1)

    hierarchy_service.update_outcome(curriculum.plo1.outcome_id, description="Design systems")
    assert revisions.current_revision(program_scope) == before[1] + 2
    assert revisions.current_revision(offering_scope) == before[0] + 1


def test_mapping_matrix(curriculum):
    hierarchy_service.set_mapping(curriculum.clo2.outcome_id, curriculum.plo1.outcome_id, True, weight=2)
    matrix = hierarchy_service.mapping_matrix(curriculum.program.program_id, "CLO")

    assert matrix["parent_tier"] == "PLO"
    assert [c["code"] for c in matrix["columns"]] == ["PLO1"]
    assert [(r["outcome"]["code"], r["cells"]) for r in matrix["rows"]] == [("CLO1", [1.0]), ("CLO2", [2.0])]

    with pytest.raises(TierMismatch):
        hierarchy_service.mapping_matrix(curriculum.program.program_id, "PEO")
