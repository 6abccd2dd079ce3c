"""
Authentication utilities for FastAPI routes.

The onboarding wizard is public; a signed-in visitor is linked to their
session when a valid Supabase token is sent.
"""

import logging

from fastapi import HTTPException, Header
from pydantic import BaseModel

from lunaxcode.db.client import get_service_client

logger = logging.getLogger(__name__)


class AuthenticatedUser(BaseModel):
    """Authenticated user info from Supabase JWT."""
    id: str
    email: str | None
    access_token: str


def _verify_token(access_token: str) -> AuthenticatedUser:
    client = get_service_client()
    user_response = client.auth.get_user(access_token)

    if not user_response or not user_response.user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = user_response.user
    return AuthenticatedUser(id=user.id, email=user.email, access_token=access_token)


async def get_optional_user(authorization: str = Header(None)) -> AuthenticatedUser | None:
    """
    Supabase user from an optional "Bearer <access_token>" header.

    Anonymous callers and invalid tokens get None; the wizard stays public.
    """
    if not authorization or not authorization.startswith("Bearer "):
        return None

    try:
        return _verify_token(authorization[7:])
    except Exception as e:
        logger.warning(f"Ignoring invalid token on public route: {e}")
        return None
