class OBEError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    error_code = "obe_error"

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {"error": self.error_code, "message": self.message}
        payload.update(self.details)
        return payload


class ValidationError(OBEError):
    error_code = "validation_error"


class DuplicateCode(ValidationError):
    status_code = 409
    error_code = "duplicate_code"


class NotFound(OBEError):
    status_code = 404
    error_code = "not_found"


class TierMismatch(ValidationError):
    error_code = "tier_mismatch"


class ScopeMismatch(ValidationError):
    error_code = "scope_mismatch"


class OverAllocated(ValidationError):
    error_code = "over_allocated"

    def __init__(self, item_id, allocated_total, total_marks):
        super().__init__(
            f"Allocated marks {allocated_total} exceed total marks {total_marks} for item {item_id}",
            item_id=item_id,
            allocated_total=float(allocated_total),
            total_marks=float(total_marks),
        )
        self.allocated_total = allocated_total
        self.total_marks = total_marks


class MarksOutOfRange(ValidationError):
    error_code = "marks_out_of_range"


class StaleScope(OBEError):
    status_code = 409
    error_code = "stale_scope"


class JobStateError(OBEError):
    status_code = 409
    error_code = "job_state"
