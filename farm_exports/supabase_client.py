import logging
from typing import Optional

from supabase import create_client, Client

from farm_exports.config import Settings

logger = logging.getLogger(__name__)

_client: Optional[Client] = None


def get_supabase(settings: Optional[Settings] = None) -> Client | None:
    """Get the Supabase client, creating it on first use."""
    global _client
    if _client is not None:
        return _client

    settings = settings or Settings.from_env()
    if not settings.supabase_url:
        logger.warning("SUPABASE_URL not set. Supabase job store will be disabled.")
        return None

    if not settings.supabase_key:
        logger.warning("No Supabase key found. Supabase job store will be disabled.")
        return None

    _client = create_client(settings.supabase_url, settings.supabase_key)
    return _client
