from types import SimpleNamespace

import pytest

from app import create_app
from config.config import TestConfig
from extensions import db
from models import CourseOffering, Program, Student
from services import allocation_service, hierarchy_service, score_adapter


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def program(app):
    program = Program(program_code="BSCS", program_name="Computer Science")
    db.session.add(program)
    db.session.commit()
    return program


def add_offering(program, course_code="CS101", period="2024-Fall"):
    offering = CourseOffering(
        program_id=program.program_id,
        course_code=course_code,
        course_name=f"Course {course_code}",
        period=period
    )
    db.session.add(offering)
    db.session.commit()
    return offering


def add_students(program, count):
    students = []
    for n in range(1, count + 1):
        student = Student(register_no=f"R{program.program_id:02d}{n:03d}", name=f"Student {n}", program_id=program.program_id)
        db.session.add(student)
        students.append(student)
    db.session.commit()
    return students


@pytest.fixture
def offering(program):
    return add_offering(program)


@pytest.fixture
def curriculum(program, offering):
    """One offering with CLO1/CLO2 under PLO1 under PEO1, a 100-mark item split 60/40
    and two students who scored 80 and 50."""
    clo1 = hierarchy_service.create_outcome("CLO", offering.course_offering_id, "CLO1", "Analyse")
    clo2 = hierarchy_service.create_outcome("CLO", offering.course_offering_id, "CLO2", "Design")
    plo1 = hierarchy_service.create_outcome("PLO", program.program_id, "PLO1", "Problem analysis")
    peo1 = hierarchy_service.create_outcome("PEO", program.program_id, "PEO1", "Professional practice")

    hierarchy_service.set_mapping(clo1.outcome_id, plo1.outcome_id, True)
    hierarchy_service.set_mapping(clo2.outcome_id, plo1.outcome_id, True)
    hierarchy_service.set_mapping(plo1.outcome_id, peo1.outcome_id, True)

    item = allocation_service.create_assessment_item(offering.course_offering_id, "Midterm", 100)
    allocation_service.set_allocations(item.item_id, [
        {"clo_id": clo1.outcome_id, "marks": 60},
        {"clo_id": clo2.outcome_id, "marks": 40},
    ])

    students = add_students(program, 2)
    score_adapter.record_scores(item.item_id, [
        {"student_id": students[0].student_id, "obtained_marks": 80},
        {"student_id": students[1].student_id, "obtained_marks": 50},
    ])

    return SimpleNamespace(
        program=program,
        offering=offering,
        clo1=clo1,
        clo2=clo2,
        plo1=plo1,
        peo1=peo1,
        item=item,
        students=students,
    )


@pytest.fixture
def make_offering(program):
    def _make(course_code="CS102", period="2024-Fall"):
        return add_offering(program, course_code, period)
    return _make


@pytest.fixture
def make_students(program):
    def _make(count=1):
        return add_students(program, count)
    return _make
