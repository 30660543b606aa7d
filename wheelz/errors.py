# wheelz/errors.py
"""Error taxonomy shared by the chat hub, the booking lifecycle and the routes."""

from __future__ import annotations


class WheelzError(Exception):
    """Base class for domain errors."""

    kind = "error"
    status_code = 400

    def __init__(self, message: str = "", **details) -> None:
        self.message = message or self.__class__.__doc__ or self.kind
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "detail": self.message}


class ValidationError(WheelzError):
    """Malformed or missing required field."""

    kind = "validation_error"
    status_code = 400


class NotFoundError(WheelzError):
    """Referenced record does not exist."""

    kind = "not_found"
    status_code = 404


class ConflictError(WheelzError):
    """Request conflicts with existing state."""

    kind = "conflict"
    status_code = 409


class InvalidTransitionError(ConflictError):
    """Booking is not in a status that allows this action."""

    kind = "invalid_transition"

    def __init__(self, booking_id: int, current: str, action: str) -> None:
        self.booking_id = booking_id
        self.current = current
        self.action = action
        super().__init__(f"cannot {action} booking #{booking_id} while {current}")


class AuthorizationError(WheelzError):
    """Caller is not allowed to perform this action."""

    kind = "unauthorized"
    status_code = 403

    def __init__(self, message: str = "", *, authenticated: bool = True) -> None:
        super().__init__(message)
        self.authenticated = authenticated
        if not authenticated:
            self.status_code = 401


class NotificationError(WheelzError):
    """Best-effort delivery failed; always absorbed by the caller."""

    kind = "notification_failed"
    status_code = 502

    def __init__(self, recipient: str, subject: str, reason: str = "") -> None:
        self.recipient = recipient
        self.subject = subject
        self.reason = reason
        super().__init__(f"could not notify {recipient!r} ({subject!r}): {reason or 'unknown'}")
