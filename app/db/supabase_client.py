"""Shared Supabase client for every app.db module."""

from functools import lru_cache

from supabase import Client, create_client

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Service-role client, created on first use and reused afterwards.

    Raises:
        RuntimeError: If the client cannot be created from the configured URL and key
    """
    settings = get_settings()
    try:
        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
    logger.info("Supabase client initialized")
    return client
