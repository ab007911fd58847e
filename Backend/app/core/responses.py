"""
Standardized Response Module

Provides consistent result formatting for both the HTTP API and the
action layer (slug-addressed mutating operations).

RESPONSE FORMAT:
    All API responses and action results follow this structure:

    Success:
        {
            "success": true,
            "data": <response data>
        }

    Error:
        {
            "success": false,
            "error": "Human-readable message"
        }

ERROR CODES:
    Codes are not part of the payload; they travel on the raised error
    (see app.core.errors) and end up in logs.

    - NOT_FOUND: Organization or entity not found (or owned by another tenant)
    - INVALID_INPUT: Request data failed validation
    - CONFLICT: Duplicate, slug collision, or overlapping booking
    - EXTERNAL_SERVICE_ERROR: Third-party API or remote database failed
    - INTERNAL_ERROR: Server-side error
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """
    HTTP response envelope.

    Usage:
        return ApiResponse.ok(services)
        return ApiResponse.fail("Organization not found")
    """
    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: T) -> "ApiResponse[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str) -> "ApiResponse[None]":
        return cls(success=False, error=message)


@dataclass
class ActionResult(Generic[T]):
    """
    Result of a mutating action.

    Entity results are read models detached from the session, so they stay
    readable after a later action on the same session rolls back.
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str) -> "ActionResult":
        return cls(success=False, error=message)


# ============================================================================
# COMMON ERROR CODES
# ============================================================================

class ErrorCodes:
    """Standard error codes carried by app.core.errors."""

    # Authentication errors (401)
    INVALID_API_KEY = "INVALID_API_KEY"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"

    # Validation errors (422)
    INVALID_INPUT = "INVALID_INPUT"

    # Conflict errors (409)
    CONFLICT = "CONFLICT"

    # Upstream errors (502)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
