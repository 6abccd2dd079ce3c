"""Supabase access."""

from lunaxcode.db.client import get_service_client

__all__ = ["get_service_client"]
