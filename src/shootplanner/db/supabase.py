"""Shared Supabase connection for the bookings and calendar tables."""

import logging
from functools import lru_cache
from supabase import create_client, Client
from ..config import settings


@lru_cache()
def get_supabase_client() -> Client | None:
    """Process-wide client for ``settings.supabase_url``.

    Returns None when ``SHOOT_SUPABASE_URL`` or ``SHOOT_SUPABASE_KEY`` is unset,
    so booking persistence and calendar reads can degrade instead of failing.
    Creating the client does not contact the server.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.warning("Supabase not configured; bookings and calendar data are unavailable")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logging.error(f"Could not create Supabase client for {settings.supabase_url}: {e}")
        return None
