"""Per-scope revision counters.

Every write that can change an attainment figure (hierarchy edits,
allocation sets) bumps the revision of the course offering it touches and of
that offering's program. A recompute remembers the revision it started from
and refuses to publish if it moved.

Score writes bump a separate ``scores:`` counter for the same scopes. It does
not make a running job stale, but a resumed job drops its staged outcomes
when it moved.
"""
from dataclasses import dataclass

from extensions import db
from models import CourseOffering, Program, ScopeRevision
from services.errors import NotFound, ValidationError

SCOPE_TYPES = ("offering", "program")


@dataclass(frozen=True)
class Scope:
    scope_type: str
    scope_id: int

    def __post_init__(self):
        if self.scope_type not in SCOPE_TYPES:
            raise ValidationError(f"Unknown scope type {self.scope_type!r}")

    @property
    def key(self):
        return f"{self.scope_type}:{self.scope_id}"

    @classmethod
    def offering(cls, offering_id):
        return cls("offering", int(offering_id))

    @classmethod
    def program(cls, program_id):
        return cls("program", int(program_id))


def get_offering(offering_id):
    offering = db.session.get(CourseOffering, offering_id)
    if offering is None:
        raise NotFound(f"Course offering {offering_id} not found")
    return offering


def get_program(program_id):
    program = db.session.get(Program, program_id)
    if program is None:
        raise NotFound(f"Program {program_id} not found")
    return program


def ensure_scope_exists(scope):
    if scope.scope_type == "offering":
        get_offering(scope.scope_id)
    else:
        get_program(scope.scope_id)


def scopes_for_offering(offering_id):
    offering = get_offering(offering_id)
    return [Scope.offering(offering.course_offering_id), Scope.program(offering.program_id)]


def scopes_for_outcome(outcome):
    if outcome.tier == "CLO":
        return scopes_for_offering(outcome.scope_id)
    return [Scope.program(outcome.scope_id)]


def current_revision(scope):
    return _read(scope.key)


def current_score_revision(scope):
    """Watermark of score writes for the scope, separate from the curriculum revision."""
    return _read(score_key(scope))


def score_key(scope):
    return f"scores:{scope.key}"


def _read(key):
    row = ScopeRevision.query.filter_by(scope_key=key).first()
    return row.revision if row else 0


def _bump_keys(keys):
    for key in sorted(set(keys)):
        row = (
            ScopeRevision.query
            .filter_by(scope_key=key)
            .with_for_update()
            .first()
        )
        if row is None:
            row = ScopeRevision(scope_key=key, revision=0)
            db.session.add(row)
        row.revision = (row.revision or 0) + 1


def bump(scopes):
    """Increment the revision of each scope inside the caller's transaction."""
    _bump_keys(scope.key for scope in scopes)


def bump_scores(scopes):
    _bump_keys(score_key(scope) for scope in scopes)
