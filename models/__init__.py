from .program import Program
from .course_offering import CourseOffering
from .student import Student
from .outcome import Outcome
from .mapping_edge import MappingEdge
from .assessment_item import AssessmentItem
from .allocation_row import AllocationRow
from .score_record import ScoreRecord
from .attainment_result import AttainmentResultRow, AttainmentStagingRow
from .attainment_override import AttainmentOverride
from .threshold_profile import ThresholdProfile
from .scope_revision import ScopeRevision
from .recompute_job import RecomputeJob
from .audit_log import AuditLog
__all__ = [
    "Program", "CourseOffering", "Student", "Outcome", "MappingEdge",
    "AssessmentItem", "AllocationRow", "ScoreRecord", "AttainmentResultRow",
    "AttainmentStagingRow", "AttainmentOverride", "ThresholdProfile",
    "ScopeRevision", "RecomputeJob", "AuditLog"
]
