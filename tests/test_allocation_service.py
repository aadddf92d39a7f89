import pytest

from models import ScoreRecord
from services import allocation_service, hierarchy_service, revisions, score_adapter
from services.errors import (
    MarksOutOfRange, NotFound, OverAllocated, ScopeMismatch, TierMismatch, ValidationError
)


def allocation_map(item_id):
    return {row.clo_id: float(row.marks_allocated) for row in allocation_service.get_allocations(item_id)}


def test_over_allocation_is_rejected_and_prior_set_kept(curriculum):
    item_id = curriculum.item.item_id
    clo1, clo2 = curriculum.clo1.outcome_id, curriculum.clo2.outcome_id
    before = allocation_map(item_id)

    with pytest.raises(OverAllocated) as excinfo:
        allocation_service.set_allocations(item_id, [
            {"clo_id": clo1, "marks": 70},
            {"clo_id": clo2, "marks": 40},
        ])

    assert excinfo.value.details["allocated_total"] == 110.0
    assert excinfo.value.details["total_marks"] == 100.0
    assert allocation_map(item_id) == before == {clo1: 60.0, clo2: 40.0}


def test_marks_outside_item_range(curriculum):
    item_id = curriculum.item.item_id
    with pytest.raises(MarksOutOfRange):
        allocation_service.set_allocations(item_id, [{"clo_id": curriculum.clo1.outcome_id, "marks": -1}])
    with pytest.raises(MarksOutOfRange):
        allocation_service.set_allocations(item_id, [{"clo_id": curriculum.clo1.outcome_id, "marks": 101}])
    with pytest.raises(ValidationError):
        allocation_service.set_allocations(item_id, [{"clo_id": curriculum.clo1.outcome_id, "marks": "abc"}])


def test_full_and_partial_allocation_are_valid(curriculum):
    item_id = curriculum.item.item_id
    clo1, clo2 = curriculum.clo1.outcome_id, curriculum.clo2.outcome_id

    allocation_service.set_allocations(item_id, [{"clo_id": clo1, "marks": 100}])
    assert allocation_map(item_id) == {clo1: 100.0}

    allocation_service.set_allocations(item_id, [{"clo_id": clo2, "marks": "25.5"}])
    assert allocation_map(item_id) == {clo2: 25.5}
    assert allocation_service.allocation_summary(item_id) == {
        "item_id": item_id, "total_marks": 100.0, "allocated": 25.5, "remaining": 74.5,
    }


def test_duplicate_clo_in_one_request(curriculum):
    clo1 = curriculum.clo1.outcome_id
    with pytest.raises(ValidationError):
        allocation_service.set_allocations(curriculum.item.item_id, [
            {"clo_id": clo1, "marks": 10},
            {"clo_id": clo1, "marks": 10},
        ])


def test_only_clos_of_the_same_offering(curriculum, make_offering):
    other = make_offering("CS200")
    foreign = hierarchy_service.create_outcome("CLO", other.course_offering_id, "CLO1")

    with pytest.raises(ScopeMismatch):
        allocation_service.set_allocations(curriculum.item.item_id, [{"clo_id": foreign.outcome_id, "marks": 5}])
    with pytest.raises(TierMismatch):
        allocation_service.set_allocations(curriculum.item.item_id, [{"clo_id": curriculum.plo1.outcome_id, "marks": 5}])
    with pytest.raises(NotFound):
        allocation_service.set_allocations(curriculum.item.item_id, [{"clo_id": 9999, "marks": 5}])


def test_total_marks_cannot_drop_below_allocated(curriculum):
    with pytest.raises(OverAllocated):
        allocation_service.update_total_marks(curriculum.item.item_id, 90)

    item = allocation_service.update_total_marks(curriculum.item.item_id, 120)
    assert float(item.total_marks) == 120.0


def test_total_marks_cannot_drop_below_obtained_marks(curriculum):
    item_id = curriculum.item.item_id
    allocation_service.set_allocations(item_id, [{"clo_id": curriculum.clo1.outcome_id, "marks": 40}])

    with pytest.raises(MarksOutOfRange) as excinfo:
        allocation_service.update_total_marks(item_id, 70)
    assert excinfo.value.details["max_obtained"] == 80.0
    assert float(allocation_service.get_item(item_id).total_marks) == 100.0

    item = allocation_service.update_total_marks(item_id, 80)
    assert float(item.total_marks) == 80.0


def test_allocations_for_clo(curriculum):
    quiz = allocation_service.create_assessment_item(curriculum.offering.course_offering_id, "Quiz", 10)
    allocation_service.set_allocations(quiz.item_id, [{"clo_id": curriculum.clo1.outcome_id, "marks": 10}])

    pairs = allocation_service.get_allocations_for_clo(curriculum.clo1.outcome_id)
    assert [(item.name, float(marks)) for item, marks in pairs] == [("Midterm", 60.0), ("Quiz", 10.0)]


def test_allocation_set_bumps_revision(curriculum):
    scope = revisions.Scope.offering(curriculum.offering.course_offering_id)
    before = revisions.current_revision(scope)
    allocation_service.set_allocations(curriculum.item.item_id, [{"clo_id": curriculum.clo1.outcome_id, "marks": 50}])
    assert revisions.current_revision(scope) == before + 1


def test_question_must_share_offering(curriculum, make_offering):
    other = make_offering("CS300")
    with pytest.raises(ScopeMismatch):
        allocation_service.create_assessment_item(
            other.course_offering_id, "Q1", 5, item_type="question", parent_item_id=curriculum.item.item_id
        )
    question = allocation_service.create_assessment_item(
        curriculum.offering.course_offering_id, "Q1", 5, item_type="question", parent_item_id=curriculum.item.item_id
    )
    assert question.parent_item_id == curriculum.item.item_id


def test_record_scores_validates_range_and_students(curriculum):
    item_id = curriculum.item.item_id
    student_id = curriculum.students[0].student_id

    with pytest.raises(MarksOutOfRange):
        score_adapter.record_scores(item_id, [{"student_id": student_id, "obtained_marks": 101}])
    with pytest.raises(NotFound):
        score_adapter.record_scores(item_id, [{"student_id": 9999, "obtained_marks": 10}])

    assert score_adapter.record_scores(item_id, [{"student_id": student_id, "obtained_marks": 95}]) == 1
    row = ScoreRecord.query.filter_by(student_id=student_id, item_id=item_id).one()
    assert float(row.obtained_marks) == 95.0
    assert ScoreRecord.query.filter_by(item_id=item_id).count() == 2
