"""
Error taxonomy for the reservation platform.

Domain code raises these; two boundaries translate them:

    - app.actions turns them into ActionResult(success=False, error=...)
    - app.main renders them as {"success": false, "error": ...} with status_code

Messages are meant to be shown to the user as-is.
"""

from typing import Any, Optional

from .responses import ErrorCodes


class ZeroqError(Exception):
    """Base class for expected, user-visible failures."""

    code: str = ErrorCodes.INTERNAL_ERROR
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(ZeroqError):
    """Entity absent, or not owned by the calling organization."""

    code = ErrorCodes.NOT_FOUND
    status_code = 404


class InvalidInputError(ZeroqError):
    """User-supplied fields failed validation (including malformed date/time)."""

    code = ErrorCodes.INVALID_INPUT
    status_code = 422


class ConflictError(ZeroqError):
    """Duplicate customer email, overlapping booking, slug collision."""

    code = ErrorCodes.CONFLICT
    status_code = 409


class ExternalServiceError(ZeroqError):
    """A third-party call (provisioning API, embeddings API, remote database) failed."""

    code = ErrorCodes.EXTERNAL_SERVICE_ERROR
    status_code = 502


class InternalError(ZeroqError):
    code = ErrorCodes.INTERNAL_ERROR
    status_code = 500
