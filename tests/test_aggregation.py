import random
from decimal import Decimal
from fractions import Fraction

import pytest

from services.aggregation import (
    AttainmentCalculator, Measurement, RollupStrategy, UNDEFINED,
    index_scores, weighted_mean
)
from services.errors import ValidationError
from services.score_adapter import Score

CLO1, CLO2, CLO3, PLO1, PLO2, PEO1 = 1, 2, 3, 10, 11, 20
TIERS = {CLO1: "CLO", CLO2: "CLO", CLO3: "CLO", PLO1: "PLO", PLO2: "PLO", PEO1: "PEO"}


def make_calculator(allocations, totals, scores, children=None, strategy=RollupStrategy.MARKS_FIRST):
    return AttainmentCalculator(
        tiers=TIERS,
        children=children or {},
        allocations=allocations,
        totals=totals,
        scores=scores,
        strategy=strategy,
    )


def test_single_item_split_between_two_clos():
    calculator = make_calculator(
        allocations={CLO1: [(100, 60)], CLO2: [(100, 40)]},
        totals={100: Decimal("100")},
        scores=[Score(1, 100, Decimal("80"))],
    )

    assert calculator.attainment(CLO1).percentage == 80.0
    assert calculator.attainment(CLO2).percentage == 80.0
    assert calculator.attainment(CLO1, 1).value == Fraction(80)
    assert calculator.attainment(CLO1).items == 1
    assert calculator.attainment(CLO1).students == 1


def test_parent_ignores_undefined_children():
    calculator = make_calculator(
        allocations={CLO1: [(100, 60)]},
        totals={100: 100},
        scores=[Score(1, 100, 80)],
        children={PLO1: [(CLO1, 1), (CLO2, 1)]},
    )

    plo = calculator.attainment(PLO1)
    assert calculator.attainment(CLO2) == UNDEFINED
    assert plo.percentage == 80.0
    assert plo.children == 1


def test_parent_with_only_undefined_children_is_undefined():
    calculator = make_calculator(
        allocations={},
        totals={},
        scores=[],
        children={PLO1: [(CLO1, 1), (CLO2, 1)], PEO1: [(PLO1, 1)]},
    )

    assert calculator.attainment(PLO1).percentage is None
    assert calculator.attainment(PEO1).percentage is None


def test_parent_without_children_is_undefined():
    calculator = make_calculator(allocations={}, totals={}, scores=[])
    assert not calculator.attainment(PLO2).is_defined


def test_zero_score_is_zero_not_undefined():
    calculator = make_calculator(
        allocations={CLO1: [(100, 50)]},
        totals={100: 50},
        scores=[Score(1, 100, 0)],
    )

    assert calculator.attainment(CLO1).percentage == 0.0
    assert calculator.attainment(CLO1).is_defined


def test_zero_allocation_does_not_count_as_mapped():
    calculator = make_calculator(
        allocations={CLO1: [(100, 0)]},
        totals={100: 10},
        scores=[Score(1, 100, 10)],
    )

    assert calculator.attainment(CLO1) == UNDEFINED
    assert calculator.students_for(CLO1) == set()


def test_student_without_score_is_excluded():
    calculator = make_calculator(
        allocations={CLO1: [(100, 10), (101, 10)]},
        totals={100: 10, 101: 10},
        scores=[Score(1, 100, 5)],
    )

    assert calculator.attainment(CLO1, 1).percentage == 50.0
    assert calculator.attainment(CLO1, 2) == UNDEFINED


def test_weighted_rollup_uses_edge_weights():
    calculator = make_calculator(
        allocations={CLO1: [(100, 10)], CLO2: [(101, 10)]},
        totals={100: 10, 101: 10},
        scores=[Score(1, 100, 8), Score(1, 101, 4)],
        children={PLO1: [(CLO1, 3), (CLO2, 1)], PEO1: [(PLO1, 2)]},
    )

    assert calculator.attainment(PLO1).percentage == pytest.approx(70.0)
    assert calculator.attainment(PEO1).percentage == pytest.approx(70.0)
    assert calculator.attainment(PLO1, 1).value == Fraction(70)


def test_strategies_differ_when_items_have_different_totals():
    kwargs = dict(
        allocations={CLO1: [(100, 10), (101, 100)]},
        totals={100: 10, 101: 100},
        scores=[Score(1, 100, 10), Score(2, 101, 0)],
    )

    marks_first = make_calculator(strategy=RollupStrategy.MARKS_FIRST, **kwargs)
    student_first = make_calculator(strategy=RollupStrategy.STUDENT_FIRST, **kwargs)

    assert marks_first.attainment(CLO1).value == Fraction(100, 11)
    assert student_first.attainment(CLO1).value == Fraction(50)
    assert student_first.attainment(CLO1).students == 2


def test_result_does_not_depend_on_score_order():
    scores = [Score(s, item, Decimal(str(round(0.37 * s * item % 10, 2))))
              for s in range(1, 30) for item in (100, 101, 102)]
    allocations = {CLO1: [(100, 3), (101, 7)], CLO2: [(101, 3), (102, 10)]}
    totals = {100: 10, 101: 10, 102: 10}
    children = {PLO1: [(CLO1, 2), (CLO2, 1)]}

    expected = make_calculator(allocations, totals, scores, children).attainment(PLO1).value
    shuffled = list(scores)
    random.Random(7).shuffle(shuffled)
    again = make_calculator(allocations, totals, shuffled, children)

    assert again.attainment(PLO1).value == expected
    assert again.attainment(PLO1).value == expected


def test_conflicting_duplicate_scores_are_rejected():
    assert index_scores([Score(1, 100, 5), Score(1, 100, Decimal("5.0"))]) == {(1, 100): Fraction(5)}
    with pytest.raises(ValueError):
        index_scores([Score(1, 100, 5), Score(1, 100, 6)])


def test_restricted_calculator_only_sees_given_clos():
    calculator = make_calculator(
        allocations={CLO1: [(100, 10)], CLO2: [(101, 10)]},
        totals={100: 10, 101: 10},
        scores=[Score(1, 100, 10), Score(1, 101, 0)],
        children={PLO1: [(CLO1, 1), (CLO2, 1)]},
    )

    assert calculator.attainment(PLO1).percentage == 50.0
    assert calculator.restricted_to([CLO1]).attainment(PLO1).percentage == 100.0
    assert calculator.restricted_to([CLO3]).attainment(PLO1).percentage is None


def test_weighted_mean_skips_undefined():
    measured = weighted_mean([(Measurement(Fraction(60)), 1), (UNDEFINED, 5)])
    assert measured.value == Fraction(60)
    assert weighted_mean([]) == UNDEFINED


def test_rollup_strategy_parse():
    assert RollupStrategy.parse(None) is RollupStrategy.MARKS_FIRST
    assert RollupStrategy.parse("", default="student_first") is RollupStrategy.STUDENT_FIRST
    assert RollupStrategy.parse(" Student_First ") is RollupStrategy.STUDENT_FIRST
    with pytest.raises(ValidationError):
        RollupStrategy.parse("average")
