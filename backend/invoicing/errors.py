# Overview: Service error taxonomy shared by services and the JSON error handler.

from __future__ import annotations


class ServiceError(Exception):
    """Base for errors that map onto an HTTP response."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    """400-level input problem."""
    status_code = 400


class AuthError(ServiceError):
    """
    401-level authentication failure.

    The message shown to callers is deliberately uniform. `reason` holds the
    internal cause (expired, rotated, role mismatch...) for server logs only.
    """
    status_code = 401

    def __init__(self, message: str = "Invalid or expired token", reason: str | None = None):
        super().__init__(message)
        self.reason = reason or message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ForbiddenError(ServiceError):
    """403: authenticated but not entitled to the resource."""
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """409-level business rule conflict (duplicate user, already processed invoice)."""
    status_code = 409


class TransientDeliveryError(ServiceError):
    """Push channel failure. Logged by the dispatcher, never returned to a caller."""
    status_code = 503
