"""Domain error taxonomy.

Service functions raise these; the global exception handler in
``habitcircle.middleware.error_handler`` renders them as JSON with a
stable machine-readable ``code``.
"""

from __future__ import annotations


class HabitCircleError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400
    default_code: str = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(HabitCircleError, ValueError):
    """Input is blank, malformed, or refers to the caller in a forbidden way."""

    status_code = 400
    default_code = "validation_error"


class NotFoundError(HabitCircleError, LookupError):
    """The referenced user, request, habit or assignment does not exist (for the caller)."""

    status_code = 404
    default_code = "not_found"


class ConflictError(HabitCircleError):
    """The operation conflicts with the current state of a record."""

    status_code = 409
    default_code = "conflict"


class AuthorizationError(HabitCircleError, PermissionError):
    """The caller is not allowed to act on this record."""

    status_code = 403
    default_code = "forbidden"


class StoreError(HabitCircleError):
    """The database could not complete a query."""

    status_code = 503
    default_code = "store_unavailable"


# Friend request codes
SELF_REQUEST = "self_request"
BLANK_USERNAME = "blank_username"
USER_NOT_FOUND = "user_not_found"
ALREADY_PENDING = "already_pending"
ALREADY_FRIENDS = "already_friends"
REQUEST_NOT_FOUND = "request_not_found"
NOT_REQUEST_TARGET = "not_request_target"
NOT_FRIENDS = "not_friends"

# Habit codes
BLANK_TITLE = "blank_title"
HABIT_NOT_FOUND = "habit_not_found"
ALREADY_ASSIGNED = "already_assigned"
ASSIGNMENT_NOT_FOUND = "assignment_not_found"
NOT_ASSIGNMENT_OWNER = "not_assignment_owner"
INVALID_TIMEZONE = "invalid_timezone"
