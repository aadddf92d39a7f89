import pytest

from services import (
    allocation_service, classifier, hierarchy_service, override_service, score_adapter, summary_service
)
from services.attainment_service import Subject
from services.errors import NotFound, ValidationError
from services.revisions import Scope


def test_summary_series_is_sorted_by_code(curriculum):
    offering_id = curriculum.offering.course_offering_id
    hierarchy_service.create_outcome("CLO", offering_id, "CLO10")

    series = summary_service.get_summary(Scope.offering(offering_id), "CLO")

    assert [point["name"] for point in series] == ["CLO1", "CLO2", "CLO10"]
    assert series[0]["value"] == pytest.approx(65.0)
    assert series[0]["level"] == "medium"
    assert series[2] == {"name": "CLO10", "value": None, "level": "unknown"}


def test_summary_shows_overrides(curriculum):
    program_scope = Scope.program(curriculum.program.program_id)
    override_service.override_attainment(Subject.cohort(), curriculum.plo1.outcome_id, 85, reason="Board decision")

    series = summary_service.get_summary(program_scope, "PLO")
    assert series == [{"name": "PLO1", "value": 85.0, "level": "excellent"}]


def test_summary_rejects_unknown_tier(curriculum):
    with pytest.raises(ValidationError):
        summary_service.get_summary(Scope.program(curriculum.program.program_id), "XYZ")


def test_plo_trend_uses_each_periods_courses(curriculum, make_offering):
    spring = make_offering("CS201", "2025-Spring")
    clo = hierarchy_service.create_outcome("CLO", spring.course_offering_id, "CLO1")
    hierarchy_service.set_mapping(clo.outcome_id, curriculum.plo1.outcome_id, True)
    plo2 = hierarchy_service.create_outcome("PLO", curriculum.program.program_id, "PLO2")

    final = allocation_service.create_assessment_item(spring.course_offering_id, "Final", 50)
    allocation_service.set_allocations(final.item_id, [{"clo_id": clo.outcome_id, "marks": 50}])
    score_adapter.record_scores(final.item_id, [
        {"student_id": curriculum.students[0].student_id, "obtained_marks": 45},
    ])

    trend = summary_service.plo_trend(curriculum.program.program_id)

    assert [row["period"] for row in trend] == ["2024-Fall", "2025-Spring"]
    assert trend[0]["PLO1"] == pytest.approx(65.0)
    assert trend[1]["PLO1"] == pytest.approx(90.0)
    assert trend[0]["PLO2"] is None
    assert plo2.code in trend[1]


def test_plo_trend_for_unknown_program(app):
    with pytest.raises(NotFound):
        summary_service.plo_trend(404)


def test_student_breakdown(curriculum):
    first, second = curriculum.students
    nested = summary_service.student_breakdown(Scope.program(curriculum.program.program_id))

    assert [s["student_id"] for s in nested] == sorted([first.student_id, second.student_id])
    entry = next(s for s in nested if s["student_id"] == first.student_id)
    assert entry["register_no"] == first.register_no
    course = entry["courses"][0]
    assert course["course_code"] == "CS101"
    assert [(c["code"], c["percentage"], c["level"]) for c in course["clos"]] == [
        ("CLO1", 80.0, "excellent"), ("CLO2", 80.0, "excellent"),
    ]


def test_breakdown_frame_columns(curriculum):
    frame = summary_service.breakdown_frame(Scope.offering(curriculum.offering.course_offering_id))

    assert list(frame.columns) == summary_service.BREAKDOWN_COLUMNS
    assert len(frame) == 4
    assert set(frame["clo_code"]) == {"CLO1", "CLO2"}


def test_empty_scope_gives_empty_shapes(program, offering):
    scope = Scope.offering(offering.course_offering_id)
    assert summary_service.get_summary(scope, "CLO") == []
    assert summary_service.student_breakdown(scope) == []
    assert summary_service.breakdown_frame(scope).empty


def test_cohort_statistics(curriculum):
    stats = summary_service.cohort_statistics(Scope.offering(curriculum.offering.course_offering_id), "CLO")

    assert [entry["code"] for entry in stats] == ["CLO1", "CLO2"]
    clo1 = stats[0]
    assert clo1["cohort_percentage"] == pytest.approx(65.0)
    assert clo1["total_students"] == 2
    assert clo1["students_attained"] == 1
    assert clo1["students_not_attained"] == 1
    assert clo1["achievement_rate"] == pytest.approx(50.0)
    assert clo1["average"] == pytest.approx(65.0)
    assert (clo1["minimum"], clo1["maximum"]) == (50.0, 80.0)
    assert clo1["std_deviation"] == pytest.approx(15.0)
    assert clo1["target"] == 60.0
    assert clo1["status"] == "Target Met"
    assert clo1["distribution"] == {"excellent": 1, "high": 0, "medium": 0, "low": 1, "very-low": 0}


def test_cohort_statistics_use_outcome_thresholds(curriculum):
    classifier.set_threshold_profile(
        {"excellent": 95, "high": 90, "medium": 85, "low": 75, "pass_threshold": 80},
        outcome_id=curriculum.clo2.outcome_id
    )
    stats = summary_service.cohort_statistics(Scope.program(curriculum.program.program_id), "clo")

    clo2 = next(entry for entry in stats if entry["code"] == "CLO2")
    assert clo2["target"] == 80.0
    assert clo2["status"] == "Near Target"
    assert clo2["students_attained"] == 1
    assert clo2["distribution"] == {"excellent": 0, "high": 0, "medium": 0, "low": 1, "very-low": 1}


def test_cohort_statistics_for_unmeasured_outcome(curriculum):
    hierarchy_service.create_outcome("PLO", curriculum.program.program_id, "PLO2")
    stats = summary_service.cohort_statistics(Scope.program(curriculum.program.program_id), "PLO")

    assert [entry["code"] for entry in stats] == ["PLO1", "PLO2"]
    plo2 = stats[1]
    assert plo2["total_students"] == 0
    assert plo2["average"] is None
    assert plo2["achievement_rate"] is None
    assert plo2["status"] == "Not Measured"
    assert sum(plo2["distribution"].values()) == 0
    assert stats[0]["status"] == "Target Met"


@pytest.mark.parametrize("average, status", [
    (None, "Not Measured"),
    (60.0, "Target Met"),
    (50.0, "Near Target"),
    (47.0, "Below Target"),
])
def test_target_status(average, status):
    assert summary_service.target_status(average, 60.0) == status


def test_compare_offerings_matches_clo_codes(curriculum, make_offering):
    spring = make_offering("CS101", "2025-Spring")
    clo = hierarchy_service.create_outcome("CLO", spring.course_offering_id, "CLO1")
    final = allocation_service.create_assessment_item(spring.course_offering_id, "Final", 50)
    allocation_service.set_allocations(final.item_id, [{"clo_id": clo.outcome_id, "marks": 50}])
    score_adapter.record_scores(final.item_id, [
        {"student_id": curriculum.students[0].student_id, "obtained_marks": 45},
    ])

    comparison = summary_service.compare_offerings([spring.course_offering_id, curriculum.offering.course_offering_id])

    assert [o["period"] for o in comparison["offerings"]] == ["2024-Fall", "2025-Spring"]
    assert comparison["rows"][0]["code"] == "CLO1"
    assert comparison["rows"][0]["values"] == [pytest.approx(65.0), pytest.approx(90.0)]
    assert comparison["rows"][1] == {"code": "CLO2", "values": [pytest.approx(65.0), None]}


def test_compare_offerings_validates_ids(curriculum):
    with pytest.raises(ValidationError):
        summary_service.compare_offerings([])
    with pytest.raises(NotFound):
        summary_service.compare_offerings([curriculum.offering.course_offering_id, 404])
