"""
Domain exceptions for the scheduling core.

Each exception maps to one error category the API reports to callers.
main.py registers handlers translating them into HTTP responses.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for all scheduling errors."""

    error_type = "scheduling_error"

    def __init__(self, message: str = "Scheduling error") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(SchedulingError):
    """Malformed or missing input (non-positive duration, past start, missing references)."""

    error_type = "validation_error"

    def __init__(self, message: str = "Validation failed") -> None:
        super().__init__(message)


class ConflictError(SchedulingError):
    """The practitioner already has a non-cancelled booking overlapping the requested window."""

    error_type = "conflict"

    def __init__(self, message: str = "Requested time slot is already booked") -> None:
        super().__init__(message)


class NotFoundError(SchedulingError):
    """Referenced record does not exist."""

    error_type = "not_found"

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message)


class InvalidTransitionError(SchedulingError):
    """Requested status change is not a legal edge from the current status."""

    error_type = "invalid_transition"

    def __init__(
        self,
        current_status: Optional[str] = None,
        requested_status: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        self.current_status = current_status
        self.requested_status = requested_status
        if message is None:
            message = f"Cannot change appointment status from '{current_status}' to '{requested_status}'"
        super().__init__(message)


class PermissionDeniedError(SchedulingError):
    """Caller is neither the appointment's patient nor its practitioner."""

    error_type = "permission_denied"

    def __init__(self, message: str = "Not allowed to modify this appointment") -> None:
        super().__init__(message)


class NotificationDeliveryDeferred(SchedulingError):
    """
    Notification task creation failed after the appointment change succeeded.

    Never raised to API callers; the scheduler logs it and moves on.
    """

    error_type = "notification_deferred"

    def __init__(self, kind: str, appointment_id: Optional[int], cause: Exception) -> None:
        self.kind = kind
        self.appointment_id = appointment_id
        self.cause = cause
        super().__init__(
            f"Could not create {kind} notification for appointment {appointment_id}: {cause}"
        )
