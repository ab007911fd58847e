"""
Core module - configuration, database, errors, and response formatting.
"""
from .config import get_settings
from .db import get_session, Base, engine, AsyncSessionLocal, create_engine_for_url, init_models
from .errors import (
    ZeroqError,
    NotFoundError,
    InvalidInputError,
    ConflictError,
    ExternalServiceError,
    InternalError,
)
from .responses import (
    ApiResponse,
    ActionResult,
    ErrorCodes,
)

__all__ = [
    # Config
    "get_settings",
    # Database
    "get_session",
    "Base",
    "engine",
    "AsyncSessionLocal",
    "create_engine_for_url",
    "init_models",
    # Errors
    "ZeroqError",
    "NotFoundError",
    "InvalidInputError",
    "ConflictError",
    "ExternalServiceError",
    "InternalError",
    # Responses
    "ApiResponse",
    "ActionResult",
    "ErrorCodes",
]
