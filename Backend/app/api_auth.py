"""
API key gate for the read-only REST API.

Clients send the shared secret in the x-api-key header. When ZEROQ_API_KEY
is not configured the gate is open (local development only); app.main logs
a warning at startup in that case.
"""

import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from .core.config import get_settings

logger = logging.getLogger(__name__)


async def require_api_key(x_api_key: Optional[str] = Header(None, alias="x-api-key")) -> bool:
    """FastAPI dependency: 401 unless the x-api-key header matches ZEROQ_API_KEY."""
    settings = get_settings()
    if not settings.api_key_required:
        return True

    if not x_api_key or not secrets.compare_digest(x_api_key.encode(), settings.api_key.encode()):
        logger.warning("Rejected API request with missing or invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: Invalid or missing API key",
        )
    return True
