"""Admin authentication for FastAPI routes."""

import hmac

from fastapi import Header, HTTPException, status

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


async def require_admin(
    x_api_key: str | None = Header(None, alias="X-API-Key"),
) -> None:
    """
    Gate administrative operations behind the admin API key.

    Raises:
        HTTPException 503: No ADMIN_API_KEY configured
        HTTPException 401: Missing or wrong X-API-Key header
    """
    expected = get_settings().ADMIN_API_KEY
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin access is not configured",
        )
    if not x_api_key or not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        logger.warning("Rejected admin request with invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
