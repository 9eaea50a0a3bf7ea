"""
Error taxonomy for the approval and SLA core.

Every failure the core surfaces to a caller is one of four kinds. The API layer
maps each kind to a status code; notification failures never reach this module
because the notifier absorbs them.
"""


class SourcingError(Exception):
    status_code = 500
    error_code = "internal_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidInputError(SourcingError):
    """Malformed input such as an unknown tier or an out-of-range ratio."""

    status_code = 400
    error_code = "invalid_input"


class NotAuthorizedError(SourcingError):
    """The caller is not eligible for the operation."""

    status_code = 403
    error_code = "forbidden"


class NotFoundError(SourcingError):
    status_code = 404
    error_code = "not_found"


class ConflictError(SourcingError):
    """The operation clashes with the current state (duplicate or already decided)."""

    status_code = 409
    error_code = "conflict"
