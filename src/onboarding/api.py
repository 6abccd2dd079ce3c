"""
Onboarding API Endpoints.

Public wizard routes. Sessions are anonymous by default; a signed-in visitor
is attached to the session when a valid bearer token is sent.

Validation failures are ordinary 200 responses with `is_valid: false` so the
form can render field errors. Refused navigation is a 409.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from lunaxcode.catalog import CatalogClient, get_catalog_client
from lunaxcode.web.auth import AuthenticatedUser, get_optional_user

from .engine import StepOutcome
from .errors import (
    FlowIntegrityError,
    IncompleteFlowError,
    OnboardingError,
    PersistenceFailure,
    SessionNotFound,
    UnknownStep,
)
from .schemas import describe_fields
from .service import FinalizeResult, OnboardingService, get_onboarding_service
from .state import DeviceType, NavigationAction, ServiceType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/onboarding", tags=["onboarding"])


# =============================================================================
# Request Models
# =============================================================================


class _Request(BaseModel):
    """Accepts camelCase (frontend) or snake_case field names."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartRequest(_Request):
    service_type: ServiceType | None = None
    original_service: str | None = None
    service_details: dict[str, Any] | None = None
    user_agent: str | None = None
    device_type: DeviceType | None = None


class SubmitStepRequest(_Request):
    session_id: str
    step_id: str
    step_data: dict[str, Any] = Field(default_factory=dict)
    time_spent: int | None = Field(default=None, ge=0)   # ms on the step
    device_type: DeviceType | None = None


class NavigateRequest(_Request):
    session_id: str
    action: NavigationAction
    time_spent: int | None = Field(default=None, ge=0)


class JumpRequest(_Request):
    session_id: str
    step_name: str


class SessionRequest(_Request):
    session_id: str


# =============================================================================
# Helpers
# =============================================================================


def _to_http(e: Exception) -> HTTPException:
    """Translate a domain exception into an HTTP error."""
    if isinstance(e, SessionNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, IncompleteFlowError):
        return HTTPException(status_code=422, detail=e.to_dict())
    if isinstance(e, PersistenceFailure):
        return HTTPException(
            status_code=503,
            detail={"error": "persistence_failure", "message": "We could not save your submission. Please try again."},
        )
    if isinstance(e, FlowIntegrityError):
        logger.exception(f"Onboarding integrity fault: {e}")
        return HTTPException(status_code=500, detail="Internal onboarding error")
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.exception(f"Unexpected onboarding error: {e}")
    return HTTPException(status_code=500, detail="Internal onboarding error")


async def _outcome_response(outcome: StepOutcome | FinalizeResult, service: OnboardingService) -> dict:
    if outcome.not_allowed is not None:
        raise HTTPException(status_code=409, detail=outcome.not_allowed.to_dict())

    state = outcome.state
    body = {
        "session_id": state.session_id,
        "current_step": outcome.step.to_dict(),
        "state": state.to_dict(),
        "completion_rate": (await service.analytics_for(state)).completion_rate,
    }
    validation = getattr(outcome, "validation", None)
    if validation is not None:
        body["validation_result"] = validation.to_dict()
    return body


# =============================================================================
# Endpoints: Catalog & Schemas
# =============================================================================


@router.get("/steps")
async def list_steps(
    service_type: ServiceType | None = Query(None),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Active steps for a service type, in display order."""
    steps = service.steps_for(service_type)
    return {
        "service_type": service_type.value if service_type else None,
        "steps": [s.to_dict() for s in steps],
        "total_weight": service.catalog.total_weight(service_type),
    }


@router.get("/schema/{step}")
async def get_step_schema(step: str, service_type: ServiceType | None = Query(None)):
    """Field lists and JSON schema for rendering a step's form."""
    try:
        return describe_fields(step, service_type)
    except OnboardingError as e:
        if isinstance(e, FlowIntegrityError):
            # A bad path parameter, not a broken catalog
            raise HTTPException(status_code=404, detail=str(e))
        raise _to_http(e)


@router.get("/reference")
async def get_reference_data(catalog: CatalogClient = Depends(get_catalog_client)):
    """Pricing tiers and add-on services for display; empty when the CMS is down."""
    return await catalog.reference_data()


# =============================================================================
# Endpoints: Flow
# =============================================================================


@router.post("/start")
async def start_onboarding(
    request: StartRequest,
    user: AuthenticatedUser | None = Depends(get_optional_user),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Open a new onboarding session."""
    try:
        outcome = await service.start_flow(
            request.service_type,
            user_agent=request.user_agent,
            device_type=request.device_type,
            user_id=user.id if user else None,
            original_service=request.original_service,
            service_details=request.service_details,
        )
        return await _outcome_response(outcome, service)
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http(e)


@router.get("/state/{session_id}")
async def get_onboarding_state(
    session_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Current FlowState, for resuming the wizard."""
    try:
        state = await service.get_state(session_id)
        return {
            "session_id": session_id,
            "current_step": service.catalog.get(state.current_step_name).to_dict(),
            "state": state.to_dict(),
        }
    except Exception as e:
        raise _to_http(e)


@router.post("/steps/submit")
async def submit_step(
    request: SubmitStepRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Validate and commit one step's data."""
    try:
        outcome = await service.submit_step(
            request.session_id,
            request.step_id,
            request.step_data,
            time_spent=request.time_spent,
            device_type=request.device_type,
        )
        return await _outcome_response(outcome, service)
    except HTTPException:
        raise
    except UnknownStep as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _to_http(e)


@router.post("/navigate")
async def navigate(
    request: NavigateRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Move next, back or skip from the current step."""
    try:
        outcome = await service.navigate(request.session_id, request.action, time_spent=request.time_spent)
        return await _outcome_response(outcome, service)
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http(e)


@router.post("/jump")
async def jump_to_step(
    request: JumpRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Jump to a step directly (edit links on the review page)."""
    try:
        outcome = await service.jump(request.session_id, request.step_name)
        return await _outcome_response(outcome, service)
    except HTTPException:
        raise
    except UnknownStep as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _to_http(e)


@router.post("/finalize")
async def finalize_onboarding(
    request: SessionRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Persist the submission and move to confirmation."""
    try:
        result = await service.finalize(request.session_id)
        body = await _outcome_response(result, service)
        body["submission"] = result.submission.to_dict() if result.submission else None
        return body
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http(e)


@router.post("/abandon")
async def abandon_onboarding(
    request: SessionRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Close the session without submitting."""
    try:
        outcome = await service.abandon(request.session_id)
        return await _outcome_response(outcome, service)
    except HTTPException:
        raise
    except Exception as e:
        raise _to_http(e)


@router.get("/analytics/{session_id}")
async def get_flow_analytics(
    session_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Aggregate progress metrics for a session."""
    try:
        return {
            "analytics": (await service.read_analytics(session_id)).to_dict(),
            "steps": [row.to_dict() for row in await service.read_progress(session_id)],
        }
    except Exception as e:
        raise _to_http(e)
