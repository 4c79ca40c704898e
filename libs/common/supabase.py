"""Supabase client factory shared by services that call Supabase Auth."""

from functools import lru_cache

from libs.common.config import get_settings
from supabase import Client, create_client


@lru_cache
def get_supabase_admin_client() -> Client:
    """
    Return a Supabase client authenticated with the service role key, cached.

    The client is synchronous; call it from async code through
    ``asyncio.to_thread``.
    """
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
