"""Chart and table shapes for dashboards and exports.

Nothing here computes attainment on its own; it reshapes what
``attainment_service`` produces. Row order is always outcome code (natural
order) then subject id, so two calls over the same data give identical
output.
"""
import logging
from datetime import datetime

import pandas as pd

from extensions import db
from models import CourseOffering, Outcome, Student, ThresholdProfile
from services import classifier, revisions
from services.attainment_service import (
    active_overrides, apply_override, compute_scope, default_strategy,
    load_calculator, make_result, scope_outcomes
)
from services.aggregation import RollupStrategy
from services.errors import ValidationError
from services.hierarchy_service import normalize_tier
from utils.sorting import code_sort_key, outcome_sort_key

logger = logging.getLogger(__name__)

BREAKDOWN_COLUMNS = [
    "student_id", "register_no", "name", "course_offering_id", "course_code",
    "period", "clo_id", "clo_code", "percentage", "level",
]


def _records(frame):
    """DataFrame rows as dicts with NaN turned back into None (Undefined)."""
    cleaned = frame.astype(object).where(frame.notna(), None)
    return cleaned.to_dict(orient="records")


def chart_series(results):
    """Flat [{name, value, level}] for bar, line and pie charts."""
    ordered = sorted(results, key=lambda r: (code_sort_key(r.outcome_code), r.outcome_id))
    return [
        {"name": r.outcome_code, "value": r.percentage, "level": r.level}
        for r in ordered
    ]


def get_summary(scope, tier, strategy=None):
    tier = normalize_tier(tier)
    outcomes = [o for o in scope_outcomes(scope) if o.tier == tier]
    if not outcomes:
        return []

    strategy = RollupStrategy.parse(strategy) if strategy else default_strategy()
    calculator, _ = load_calculator([o.outcome_id for o in outcomes], strategy)
    profiles = ThresholdProfile.query.all()
    overrides = active_overrides([o.outcome_id for o in outcomes])
    computed_at = datetime.utcnow()

    results = []
    for outcome in outcomes:
        thresholds = classifier.resolve_thresholds(outcome, profiles)
        result = make_result(
            "cohort", outcome, calculator.attainment(outcome.outcome_id),
            thresholds, strategy, computed_at
        )
        results.append(apply_override(result, overrides.get(("cohort", outcome.outcome_id)), thresholds))
    return chart_series(results)


def plo_trend(program_id, strategy=None):
    """One row per academic period: {"period": ..., "PLO1": 72.5, "PLO2": None, ...}.

    A PLO's value for a period only uses CLOs of offerings taught in that
    period. Periods sort by their label.
    """
    revisions.get_program(program_id)
    plos = sorted(Outcome.query.filter_by(tier="PLO", scope_id=program_id).all(), key=outcome_sort_key)
    offerings = CourseOffering.query.filter_by(program_id=program_id).all()
    if not plos or not offerings:
        return []

    calculator, outcomes = load_calculator([p.outcome_id for p in plos], strategy)
    period_of = {o.course_offering_id: o.period for o in offerings}
    periods = sorted(set(period_of.values()), key=code_sort_key)

    clos_by_period = {period: set() for period in periods}
    for oid, outcome in outcomes.items():
        if outcome.tier == "CLO" and outcome.scope_id in period_of:
            clos_by_period[period_of[outcome.scope_id]].add(oid)

    records = []
    for period in periods:
        scoped = calculator.restricted_to(clos_by_period[period])
        for plo in plos:
            records.append({
                "period": period,
                "plo": plo.code,
                "value": scoped.attainment(plo.outcome_id).percentage,
            })

    frame = pd.DataFrame.from_records(records, columns=["period", "plo", "value"])
    matrix = (
        frame.pivot(index="period", columns="plo", values="value")
        .reindex(index=periods, columns=[p.code for p in plos])
        .reset_index()
    )
    matrix.columns.name = None
    logger.debug("PLO trend for program %s: %s periods x %s PLOs", program_id, len(periods), len(plos))
    return _records(matrix)


# ---------------------------------------------------------
# Cohort statistics
# ---------------------------------------------------------

NEAR_TARGET_RATIO = 0.8

STATISTIC_COLUMNS = ["outcome_id", "percentage", "level", "is_attained"]


def target_status(average, target):
    if average is None:
        return "Not Measured"
    if average >= target:
        return "Target Met"
    if average >= target * NEAR_TARGET_RATIO:
        return "Near Target"
    return "Below Target"


def _number(value):
    return None if pd.isna(value) else float(value)


def cohort_statistics(scope, tier, strategy=None):
    """Spread of per-student attainment for every outcome of a tier.

    Each entry carries the cohort figure, count/average/min/max/population
    standard deviation of the defined per-student figures, how many students
    reached the pass threshold, the number of students per level and a target
    status comparing the average with the pass threshold. Overrides are not
    applied. Entries follow outcome code order.
    """
    tier = normalize_tier(tier)
    results = [r for r in compute_scope(scope, strategy) if r.tier == tier]
    if not results:
        return []

    outcomes = {o.outcome_id: o for o in scope_outcomes(scope) if o.tier == tier}
    profiles = ThresholdProfile.query.all()

    frame = pd.DataFrame.from_records(
        [
            {
                "outcome_id": r.outcome_id,
                "percentage": r.percentage,
                "level": r.level,
                "is_attained": bool(r.is_attained),
            }
            for r in results
            if r.subject != "cohort" and r.percentage is not None
        ],
        columns=STATISTIC_COLUMNS,
    )
    if frame.empty:
        stats = pd.DataFrame()
        distribution = pd.DataFrame(columns=list(classifier.LEVELS))
    else:
        frame["percentage"] = frame["percentage"].astype(float)
        grouped = frame.groupby("outcome_id")
        stats = grouped["percentage"].agg(
            total_students="count",
            average="mean",
            minimum="min",
            maximum="max",
            std_deviation=lambda values: values.std(ddof=0),
        )
        stats["students_attained"] = grouped["is_attained"].sum()
        distribution = (
            pd.crosstab(frame["outcome_id"], frame["level"])
            .reindex(columns=list(classifier.LEVELS), fill_value=0)
        )

    entries = []
    for cohort in (r for r in results if r.subject == "cohort"):
        outcome_id = cohort.outcome_id
        target = classifier.resolve_thresholds(outcomes[outcome_id], profiles).pass_threshold
        entry = {
            "outcome_id": outcome_id,
            "code": cohort.outcome_code,
            "cohort_percentage": cohort.percentage,
            "level": cohort.level,
            "total_students": 0,
            "students_attained": 0,
            "students_not_attained": 0,
            "achievement_rate": None,
            "average": None,
            "minimum": None,
            "maximum": None,
            "std_deviation": None,
            "target": target,
            "distribution": {level: 0 for level in classifier.LEVELS},
        }
        if outcome_id in stats.index:
            row = stats.loc[outcome_id]
            total = int(row["total_students"])
            attained = int(row["students_attained"])
            entry.update({
                "total_students": total,
                "students_attained": attained,
                "students_not_attained": total - attained,
                "achievement_rate": 100.0 * attained / total,
                "average": _number(row["average"]),
                "minimum": _number(row["minimum"]),
                "maximum": _number(row["maximum"]),
                "std_deviation": _number(row["std_deviation"]),
            })
            entry["distribution"] = {
                level: int(count) for level, count in distribution.loc[outcome_id].items()
            }
        entry["status"] = target_status(entry["average"], target)
        entries.append(entry)

    logger.debug("Cohort statistics for %s %s: %s outcomes", scope.key, tier, len(entries))
    return entries


def compare_offerings(offering_ids, strategy=None):
    """Cohort CLO attainment of several offerings side by side, matched by CLO code.

    Returns {"offerings": [...], "rows": [{"code": "CLO1", "values": [...]}]}
    where ``values`` follows the order of ``offerings``.
    """
    ids = sorted(set(offering_ids))
    if not ids:
        raise ValidationError("At least one course offering is required")

    offerings = sorted(
        (revisions.get_offering(offering_id) for offering_id in ids),
        key=lambda o: (code_sort_key(o.course_code), code_sort_key(o.period), o.course_offering_id)
    )
    columns = [o.course_offering_id for o in offerings]
    header = [
        {"course_offering_id": o.course_offering_id, "course_code": o.course_code, "period": o.period}
        for o in offerings
    ]

    clos = Outcome.query.filter(Outcome.tier == "CLO", Outcome.scope_id.in_(ids)).all()
    if not clos:
        return {"offerings": header, "rows": []}

    calculator, _ = load_calculator([c.outcome_id for c in clos], strategy)
    frame = pd.DataFrame.from_records(
        [
            {
                "code": clo.code,
                "offering_id": clo.scope_id,
                "value": calculator.attainment(clo.outcome_id).percentage,
            }
            for clo in clos
        ],
        columns=["code", "offering_id", "value"],
    )
    codes = sorted(set(frame["code"]), key=code_sort_key)
    matrix = (
        frame.pivot(index="code", columns="offering_id", values="value")
        .reindex(index=codes, columns=columns)
    )

    rows = [
        {"code": code, "values": [_number(value) for value in matrix.loc[code]]}
        for code in codes
    ]
    return {"offerings": header, "rows": rows}


def _breakdown_rows(scope, strategy=None):
    clos = [o for o in scope_outcomes(scope) if o.tier == "CLO"]
    if not clos:
        return []

    calculator, _ = load_calculator([c.outcome_id for c in clos], strategy)
    offerings = {
        o.course_offering_id: o
        for o in CourseOffering.query.filter(
            CourseOffering.course_offering_id.in_(list({c.scope_id for c in clos}))
        ).all()
    }
    profiles = ThresholdProfile.query.all()
    thresholds = {c.outcome_id: classifier.resolve_thresholds(c, profiles) for c in clos}

    student_offerings = {}
    for clo in clos:
        for student_id in calculator.students_for(clo.outcome_id):
            student_offerings.setdefault(student_id, set()).add(clo.scope_id)
    if not student_offerings:
        return []

    students = {
        s.student_id: s
        for s in db.session.query(Student).filter(Student.student_id.in_(list(student_offerings))).all()
    }

    rows = []
    for student_id in sorted(student_offerings):
        student = students.get(student_id)
        for clo in clos:
            if clo.scope_id not in student_offerings[student_id]:
                continue
            offering = offerings[clo.scope_id]
            measurement = calculator.attainment(clo.outcome_id, student_id)
            rows.append({
                "student_id": student_id,
                "register_no": student.register_no if student else None,
                "name": student.name if student else None,
                "course_offering_id": offering.course_offering_id,
                "course_code": offering.course_code,
                "period": offering.period,
                "clo_id": clo.outcome_id,
                "clo_code": clo.code,
                "percentage": measurement.percentage,
                "level": classifier.classify(measurement.value, thresholds[clo.outcome_id]),
            })

    rows.sort(key=lambda r: (
        r["student_id"], code_sort_key(r["course_code"]), r["course_offering_id"],
        code_sort_key(r["clo_code"]), r["clo_id"]
    ))
    return rows


def breakdown_frame(scope, strategy=None):
    """Flat student x course x CLO table, ready for CSV export."""
    return pd.DataFrame.from_records(_breakdown_rows(scope, strategy), columns=BREAKDOWN_COLUMNS)


def student_breakdown(scope, strategy=None):
    """Nested student -> course offering -> CLO structure for the breakdown table."""
    nested = []
    for row in _breakdown_rows(scope, strategy):
        if not nested or nested[-1]["student_id"] != row["student_id"]:
            nested.append({
                "student_id": row["student_id"],
                "register_no": row["register_no"],
                "name": row["name"],
                "courses": [],
            })
        courses = nested[-1]["courses"]
        if not courses or courses[-1]["course_offering_id"] != row["course_offering_id"]:
            courses.append({
                "course_offering_id": row["course_offering_id"],
                "course_code": row["course_code"],
                "period": row["period"],
                "clos": [],
            })
        courses[-1]["clos"].append({
            "clo_id": row["clo_id"],
            "code": row["clo_code"],
            "percentage": row["percentage"],
            "level": row["level"],
        })
    return nested
