"""
Lunaxcode Web API - FastAPI application.

Serves the onboarding wizard under /api/onboarding.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lunaxcode import __version__
from lunaxcode.config import get_settings
from lunaxcode.logging_config import configure_logging
from onboarding.api import router as onboarding_router
from onboarding.repository import InMemoryRepository, SubmissionRepository, SupabaseRepository
from onboarding.service import OnboardingService, set_onboarding_service
from onboarding.sessions import InMemorySessionStore, SessionStore, SupabaseSessionStore

logger = logging.getLogger(__name__)


def build_repository() -> SubmissionRepository:
    """Pick the submission store from settings."""
    settings = get_settings()
    if settings.onboarding_storage == "supabase":
        from lunaxcode.db.client import get_service_client
        return SupabaseRepository(get_service_client())
    return InMemoryRepository()


def build_session_store() -> SessionStore:
    """Supabase storage keeps sessions across restarts and workers."""
    settings = get_settings()
    if settings.onboarding_storage == "supabase":
        from lunaxcode.db.client import get_service_client
        return SupabaseSessionStore(get_service_client())
    return InMemorySessionStore()


def build_onboarding_service() -> OnboardingService:
    settings = get_settings()
    return OnboardingService(
        repository=build_repository(),
        sessions=build_session_store(),
        persistence_timeout=settings.persistence_timeout_seconds,
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Lunaxcode Onboarding", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    set_onboarding_service(build_onboarding_service())
    app.include_router(onboarding_router, prefix="/api")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    logger.info(f"Lunaxcode API starting ({settings.app_env}, storage={settings.onboarding_storage})")
    return app


app = create_app()
