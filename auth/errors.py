"""
auth/errors.py -- Service-level error taxonomy.

Service code raises these; api/main.py renders every ServiceError as the
{statusCode, message} envelope using the status_code carried on the class.
Keeping the HTTP status here (instead of in each route) means the service
layer decides what kind of failure happened and the transport only formats it.

Layer rule: no imports from api/ or catalog/, and no FastAPI imports. The
catalog package reuses these classes.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for expected failures raised by services and stores."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Input passed the schema but failed a business rule (e.g. password mismatch)."""

    status_code = 422


class BadRequestError(ServiceError):
    """Request refers to something unusable, such as a missing category."""

    status_code = 400


class AuthenticationError(ServiceError):
    """Bad credentials, or an invalid / expired OTP or reset token."""

    status_code = 401


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """Duplicate account email or duplicate catalog name."""

    status_code = 409


class InternalError(ServiceError):
    """Unexpected failure. The message is generic; details go to the log only."""

    status_code = 500
