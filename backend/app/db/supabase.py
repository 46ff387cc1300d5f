"""
Supabase Client
===============
Thin wrapper that provides a configured Supabase client for the day log
repository and the reminder notification center.

Uses the service_role key because the backend writes day logs and
scheduled reminders on behalf of the device owner.
"""

from functools import lru_cache

from supabase import Client, create_client

from app.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)
