"""
Onboarding Schema Registry.

Declares the shape of the data collected at each step. Models use snake_case
attributes with camelCase aliases, matching what the wizard frontend posts.

`service_requirements` is the only step whose schema depends on the selected
ServiceType. Resolution is an explicit mapping lookup that fails loudly.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from .errors import SchemaNotFound, UnknownStep
from .state import ServiceType, StepName

PLATFORMS = ("ios", "android", "both")
CONTACT_METHODS = ("email", "phone", "both")
URGENCY_LEVELS = ("low", "medium", "high", "urgent")

# User-facing messages for missing/empty fields, keyed by wire name
REQUIRED_MESSAGES = {
    "serviceType": "Service type is required",
    "projectName": "Project name is required",
    "companyName": "Company name is required",
    "industry": "Industry is required",
    "projectDescription": "Project description must be at least 10 characters",
    "contactEmail": "Email is required",
    "pageType": "Page type is required",
    "designStyle": "Design style is required",
    "sections": "At least one section is required",
    "ctaGoal": "Call-to-action goal is required",
    "websiteType": "Website type is required",
    "pageCount": "Page count is required",
    "features": "At least one feature is required",
    "contentSource": "Content source is required",
    "appCategory": "App category is required",
    "platforms": "At least one platform is required",
    "coreFeatures": "At least one core feature is required",
    "backend": "At least one backend requirement is required",
    "confirmDetails": "You must confirm the project details",
    "agreeToTerms": "You must agree to the terms and conditions",
}


class StepSchema(BaseModel):
    """Base for step payloads: camelCase on the wire, whitespace stripped."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


# =============================================================================
# Step 1: Service Selection
# =============================================================================

class ServiceSelectionStep(StepSchema):
    service_type: ServiceType
    original_service: str | None = None      # Package picked on the pricing page
    service_details: dict[str, Any] | None = None


# =============================================================================
# Step 2: Basic Info
# =============================================================================

class BasicInfoStep(StepSchema):
    project_name: str = Field(min_length=1)
    company_name: str = Field(min_length=1)
    industry: str = Field(min_length=1)
    project_description: str = Field(min_length=10)
    contact_email: EmailStr
    contact_name: str | None = None
    contact_phone: str | None = None
    preferred_contact: Literal["email", "phone", "both"] = "email"

    @field_validator("contact_email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


# =============================================================================
# Step 3: Service Requirements (one model per ServiceType)
# =============================================================================

class LandingPageRequirements(StepSchema):
    page_type: str = Field(min_length=1)
    design_style: str = Field(min_length=1)
    sections: list[str] = Field(min_length=1)
    cta_goal: str = Field(min_length=1)
    brand_colors: str | None = None
    competitor_examples: str | None = None
    content_provided: bool = False


class WebAppRequirements(StepSchema):
    website_type: str = Field(min_length=1)
    page_count: str = Field(min_length=1)
    features: list[str] = Field(min_length=1)
    content_source: str = Field(min_length=1)
    user_roles: list[str] | None = None
    integrations: list[str] | None = None
    security_requirements: str | None = None


class MobileAppRequirements(StepSchema):
    app_category: str = Field(min_length=1)
    platforms: list[Literal["ios", "android", "both"]] = Field(min_length=1)
    core_features: list[str] = Field(min_length=1)
    backend: list[str] = Field(min_length=1)
    target_users: str | None = None
    design_requirements: str | None = None
    monetization: str | None = None


# =============================================================================
# Step 4: Review
# =============================================================================

class ReviewStep(StepSchema):
    confirm_details: bool
    agree_to_terms: bool
    additional_notes: str | None = None

    # Optional project extras collected alongside the review
    budget: str | None = None
    timeline: str | None = None
    urgency: Literal["low", "medium", "high", "urgent"] = "medium"
    inspiration: str | None = None
    add_ons: list[str] = Field(default_factory=list)

    @field_validator("confirm_details", "agree_to_terms")
    @classmethod
    def must_be_checked(cls, v: bool) -> bool:
        if v is not True:
            raise PydanticCustomError("must_be_true", "This box must be checked")
        return v


class ConfirmationStep(StepSchema):
    """Terminal display step; nothing to collect."""


# =============================================================================
# Registry
# =============================================================================

STEP_SCHEMAS: dict[StepName, type[StepSchema]] = {
    StepName.SERVICE_SELECTION: ServiceSelectionStep,
    StepName.BASIC_INFO: BasicInfoStep,
    StepName.REVIEW: ReviewStep,
    StepName.CONFIRMATION: ConfirmationStep,
}

REQUIREMENTS_SCHEMAS: dict[ServiceType, type[StepSchema]] = {
    ServiceType.LANDING_PAGE: LandingPageRequirements,
    ServiceType.WEB_APP: WebAppRequirements,
    ServiceType.MOBILE_APP: MobileAppRequirements,
}

_unmapped = set(ServiceType) - set(REQUIREMENTS_SCHEMAS)
if _unmapped:
    raise RuntimeError(f"Service types without a requirements schema: {sorted(t.value for t in _unmapped)}")


def as_step_name(step: StepName | str) -> StepName:
    """Coerce a step name, raising UnknownStep for anything unrecognized."""
    if isinstance(step, StepName):
        return step
    try:
        return StepName(step)
    except ValueError:
        raise UnknownStep(str(step)) from None


def resolve(step: StepName | str, service_type: ServiceType | str | None = None) -> type[StepSchema]:
    """
    Return the schema model for a step.

    ServiceType is ignored for every step except service_requirements,
    where it selects the requirements model.

    Raises:
        UnknownStep: step name is not part of the flow
        SchemaNotFound: service_requirements without a known ServiceType
    """
    step_name = as_step_name(step)

    if step_name is not StepName.SERVICE_REQUIREMENTS:
        return STEP_SCHEMAS[step_name]

    if service_type is None:
        raise SchemaNotFound(step_name.value)
    try:
        return REQUIREMENTS_SCHEMAS[ServiceType(service_type)]
    except (ValueError, KeyError):
        raise SchemaNotFound(step_name.value, str(getattr(service_type, "value", service_type))) from None


def describe_fields(step: StepName | str, service_type: ServiceType | str | None = None) -> dict:
    """
    Required/optional wire field names plus JSON schema for a step.

    Used by the frontend to render forms without hard-coding field lists.
    """
    model = resolve(step, service_type)
    required, optional = [], []
    for name, info in model.model_fields.items():
        wire_name = info.alias or name
        (required if info.is_required() else optional).append(wire_name)
    return {
        "required_fields": required,
        "optional_fields": optional,
        "json_schema": model.model_json_schema(by_alias=True),
    }
