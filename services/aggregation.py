"""Attainment arithmetic.

Everything here works on plain data already loaded from the database and
uses exact rational arithmetic, so the same inputs always give the same
result regardless of the order rows arrived in.

An attainment of ``None`` means Undefined: nothing was measured. It is never
the same thing as 0%.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from services.errors import ValidationError


class RollupStrategy(str, Enum):
    MARKS_FIRST = "marks_first"
    STUDENT_FIRST = "student_first"

    @classmethod
    def parse(cls, value, default=None):
        if value is None or value == "":
            if default is None:
                return cls.MARKS_FIRST
            return cls.parse(default)
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unknown rollup strategy {value!r}, expected marks_first or student_first"
            )


@dataclass(frozen=True)
class Measurement:
    value: Optional[Fraction]
    students: int = 0
    items: int = 0
    children: int = 0

    @property
    def is_defined(self) -> bool:
        return self.value is not None

    @property
    def percentage(self) -> Optional[float]:
        return None if self.value is None else float(self.value)


UNDEFINED = Measurement(None)


def as_fraction(value) -> Fraction:
    if isinstance(value, Fraction):
        return value
    if isinstance(value, float):
        # floats only reach here from tests or JSON; go through repr to keep 0.1 as 1/10
        return Fraction(repr(value))
    return Fraction(value)


def index_scores(scores) -> Dict[Tuple[int, int], Fraction]:
    """Map (student_id, item_id) to obtained marks.

    Two different marks for the same pair is a data error, not something to
    resolve by arrival order.
    """
    index: Dict[Tuple[int, int], Fraction] = {}
    for score in scores:
        key = (score.student_id, score.item_id)
        obtained = as_fraction(score.obtained_marks)
        if key in index and index[key] != obtained:
            raise ValueError(f"Conflicting scores for student {key[0]} on item {key[1]}")
        index[key] = obtained
    return index


def weighted_mean(children: Iterable[Tuple[Measurement, object]]) -> Measurement:
    """Weighted mean over the defined children; Undefined if none are defined."""
    numerator = Fraction(0)
    denominator = Fraction(0)
    counted = 0
    for measurement, weight in children:
        if not measurement.is_defined:
            continue
        w = as_fraction(weight)
        numerator += measurement.value * w
        denominator += w
        counted += 1
    if counted == 0 or denominator == 0:
        return UNDEFINED
    return Measurement(numerator / denominator, children=counted)


class AttainmentCalculator:
    """Computes CLO, PLO and PEO attainment from one bulk-loaded snapshot.

    ``allocations`` maps clo_id to (item_id, marks_allocated) pairs,
    ``totals`` maps item_id to total marks, ``children`` maps a parent
    outcome id to (child_id, weight) pairs and ``tiers`` maps every outcome id
    to its tier.
    """

    def __init__(
        self,
        tiers: Mapping[int, str],
        children: Mapping[int, List[Tuple[int, object]]],
        allocations: Mapping[int, List[Tuple[int, object]]],
        totals: Mapping[int, object],
        scores,
        strategy: RollupStrategy = RollupStrategy.MARKS_FIRST,
    ):
        self.tiers = dict(tiers)
        self.children = {pid: list(edges) for pid, edges in children.items()}
        self.allocations = {
            clo_id: [(item_id, as_fraction(marks)) for item_id, marks in rows]
            for clo_id, rows in allocations.items()
        }
        self.totals = {item_id: as_fraction(total) for item_id, total in totals.items()}
        self.score_index = scores if isinstance(scores, dict) else index_scores(scores)
        self.strategy = RollupStrategy.parse(strategy)

        self._scored_students: Dict[int, Set[int]] = defaultdict(set)
        for student_id, item_id in self.score_index:
            self._scored_students[item_id].add(student_id)
        self._memo: Dict[Tuple[int, Optional[int]], Measurement] = {}

    def restricted_to(self, clo_ids: Iterable[int]) -> "AttainmentCalculator":
        """A calculator that only sees the given CLOs (used for per-period trends)."""
        allowed = set(clo_ids)
        tiers = {
            oid: tier for oid, tier in self.tiers.items()
            if tier != "CLO" or oid in allowed
        }
        children = {
            pid: [(cid, w) for cid, w in edges if cid in tiers]
            for pid, edges in self.children.items()
        }
        allocations = {cid: rows for cid, rows in self.allocations.items() if cid in allowed}
        return AttainmentCalculator(
            tiers, children, allocations, self.totals, self.score_index, self.strategy
        )

    # ---------------------------------------------------------
    # CLO
    # ---------------------------------------------------------

    def _mapped_items(self, clo_id):
        for item_id, allocated in self.allocations.get(clo_id, []):
            if allocated > 0:
                yield item_id, allocated, self.totals[item_id]

    def clo_for_student(self, clo_id: int, student_id: int) -> Measurement:
        shares = Fraction(0)
        max_possible = Fraction(0)
        items = 0
        for item_id, allocated, total in self._mapped_items(clo_id):
            obtained = self.score_index.get((student_id, item_id))
            if obtained is None:
                continue
            shares += obtained * allocated / total
            max_possible += allocated
            items += 1
        if max_possible == 0:
            return UNDEFINED
        return Measurement(100 * shares / max_possible, students=1, items=items)

    def clo_students(self, clo_id: int) -> Set[int]:
        students: Set[int] = set()
        for item_id, _, _ in self._mapped_items(clo_id):
            students |= self._scored_students.get(item_id, set())
        return students

    def clo_for_cohort(self, clo_id: int) -> Measurement:
        if self.strategy is RollupStrategy.STUDENT_FIRST:
            return self._clo_student_first(clo_id)
        return self._clo_marks_first(clo_id)

    def _clo_marks_first(self, clo_id):
        shares = Fraction(0)
        max_possible = Fraction(0)
        students: Set[int] = set()
        items = 0
        for item_id, allocated, total in self._mapped_items(clo_id):
            scored = self._scored_students.get(item_id, set())
            if not scored:
                continue
            items += 1
            for student_id in scored:
                shares += self.score_index[(student_id, item_id)] * allocated / total
                max_possible += allocated
            students |= scored
        if max_possible == 0:
            return UNDEFINED
        return Measurement(100 * shares / max_possible, students=len(students), items=items)

    def _clo_student_first(self, clo_id):
        values = []
        items: Set[int] = set()
        for student_id in self.clo_students(clo_id):
            measured = self.clo_for_student(clo_id, student_id)
            if measured.is_defined:
                values.append(measured.value)
        if not values:
            return UNDEFINED
        for item_id, _, _ in self._mapped_items(clo_id):
            if self._scored_students.get(item_id):
                items.add(item_id)
        return Measurement(sum(values, Fraction(0)) / len(values), students=len(values), items=len(items))

    # ---------------------------------------------------------
    # Any tier
    # ---------------------------------------------------------

    def attainment(self, outcome_id: int, student_id: Optional[int] = None) -> Measurement:
        """Attainment of an outcome for one student, or the cohort when ``student_id`` is None."""
        key = (outcome_id, student_id)
        if key in self._memo:
            return self._memo[key]

        tier = self.tiers.get(outcome_id)
        if tier is None:
            result = UNDEFINED
        elif tier == "CLO":
            if student_id is None:
                result = self.clo_for_cohort(outcome_id)
            else:
                result = self.clo_for_student(outcome_id, student_id)
        else:
            result = weighted_mean(
                (self.attainment(child_id, student_id), weight)
                for child_id, weight in self.children.get(outcome_id, [])
            )

        self._memo[key] = result
        return result

    def students_for(self, outcome_id: int) -> Set[int]:
        """Every student with at least one score reaching this outcome."""
        tier = self.tiers.get(outcome_id)
        if tier is None:
            return set()
        if tier == "CLO":
            return self.clo_students(outcome_id)
        students: Set[int] = set()
        for child_id, _ in self.children.get(outcome_id, []):
            students |= self.students_for(child_id)
        return students
