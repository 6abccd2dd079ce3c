"""
Lunaxcode - Supabase Client.

Singleton service-role client. It bypasses RLS and is used for token
validation and server-side writes.
"""

from supabase import Client, create_client

from lunaxcode.config import settings

_service_client: Client | None = None


def get_service_client() -> Client:
    """Supabase client with the service-role key."""
    global _service_client

    if _service_client is None:
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _service_client = create_client(settings.supabase_url, settings.supabase_service_role_key)

    return _service_client
