"""Typed failures raised by the booking and time slot services.

Every error carries a short machine readable ``reason`` that the API layer
passes through as the response detail.
"""


class ServiceError(Exception):
    reason = "Error"

    def __init__(self, reason: str | None = None, message: str | None = None) -> None:
        if reason:
            self.reason = reason
        self.message = message or self.reason
        super().__init__(self.message)


class ValidationError(ServiceError):
    reason = "InvalidInput"


class NotFoundError(ServiceError):
    reason = "NotFound"


class ConflictError(ServiceError):
    reason = "Conflict"


class ForbiddenError(ServiceError):
    reason = "Forbidden"


class TransientError(ServiceError):
    reason = "Unavailable"


__all__ = [
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ForbiddenError",
    "TransientError",
]
