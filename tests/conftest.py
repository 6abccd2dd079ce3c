"""
Pytest configuration and fixtures for Lunaxcode tests.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

# Set test environment before importing lunaxcode modules
os.environ["APP_ENV"] = "development"
os.environ["ONBOARDING_STORAGE"] = "memory"
os.environ.pop("SUPABASE_URL", None)

from onboarding.engine import FlowEngine
from onboarding.progress import ProgressTracker
from onboarding.service import OnboardingService
from onboarding.state import StepName


class FakeClock:
    """Deterministic clock; advance() moves time forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def run():
    """Run a coroutine to completion (no pytest-asyncio)."""
    return asyncio.run


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker():
    return ProgressTracker()


@pytest.fixture
def engine(clock, tracker):
    return FlowEngine(observers=[tracker], clock=clock)


@pytest.fixture
def service(clock):
    return OnboardingService(clock=clock, persistence_timeout=1.0)


@pytest.fixture
def mock_supabase():
    """Mock Supabase client for unit tests."""
    mock_client = MagicMock()

    # Mock table operations
    mock_table = MagicMock()
    mock_table.select.return_value = mock_table
    mock_table.insert.return_value = mock_table
    mock_table.upsert.return_value = mock_table
    mock_table.update.return_value = mock_table
    mock_table.eq.return_value = mock_table
    mock_table.limit.return_value = mock_table
    mock_table.order.return_value = mock_table
    mock_table.delete.return_value = mock_table
    mock_table.execute.return_value = MagicMock(data=[])

    mock_client.table.return_value = mock_table

    return mock_client


# =============================================================================
# Step payloads
# =============================================================================


@pytest.fixture
def basic_info_data():
    return {
        "projectName": "Acme Site",
        "companyName": "Acme",
        "industry": "Retail",
        "projectDescription": "A new marketing site for Acme Corp",
        "contactEmail": "a@acme.com",
    }


@pytest.fixture
def landing_requirements():
    return {
        "pageType": "product-launch",
        "designStyle": "minimal",
        "sections": ["hero", "features", "contact"],
        "ctaGoal": "Book a demo",
    }


@pytest.fixture
def web_requirements():
    return {
        "websiteType": "saas",
        "pageCount": "6-10",
        "features": ["auth", "billing"],
        "contentSource": "client",
    }


@pytest.fixture
def mobile_requirements():
    return {
        "appCategory": "productivity",
        "platforms": ["ios"],
        "coreFeatures": ["auth"],
        "backend": ["api"],
    }


@pytest.fixture
def review_data():
    return {"confirmDetails": True, "agreeToTerms": True}


@pytest.fixture
def walk_to_review(engine, basic_info_data, landing_requirements, review_data):
    """
    Drive a landing page flow to the review step.

    Returns the state with review committed unless submit_review=False.
    """
    def _walk(submit_review: bool = True, service_details: dict | None = None):
        state = engine.start()
        selection = {"serviceType": "landing_page"}
        if service_details:
            selection["serviceDetails"] = service_details
        state = engine.submit_step(state, StepName.SERVICE_SELECTION, selection).state
        state = engine.submit_step(state, StepName.BASIC_INFO, basic_info_data).state
        state = engine.submit_step(state, StepName.SERVICE_REQUIREMENTS, landing_requirements).state
        if submit_review:
            state = engine.submit_step(state, StepName.REVIEW, review_data).state
        return state

    return _walk
