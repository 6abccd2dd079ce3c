"""
Onboarding Submission.

The Submission is the contract between the onboarding flow and the CRM/admin
side. It is assembled once, from a completed FlowState, and handed to the
repository for persistence.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping
import json

from .errors import FlowIntegrityError, IncompleteFlowError
from .state import FlowState, StepName, StepStatus, utcnow
from .steps import DEFAULT_CATALOG, StepCatalog
from .validator import validate_step

# Submission ids are derived from session ids so re-assembly is stable
SUBMISSION_NAMESPACE = uuid.UUID("6f1c2a52-4d0e-4a43-9b7e-0c9e5d1f7a21")


@dataclass
class Submission:
    """Normalized onboarding submission record."""
    id: str
    project_name: str
    email: str
    name: str
    service_type: str
    company_name: str | None = None
    industry: str | None = None
    description: str | None = None
    phone: str | None = None
    preferred_contact: str | None = "email"

    budget: str | None = None
    timeline: str | None = None
    urgency: str = "medium"

    # Opaque blob tagged with the originating service type
    service_specific_data: dict[str, Any] = field(default_factory=dict)

    additional_requirements: str | None = None
    inspiration: str | None = None
    add_ons: list[str] = field(default_factory=list)

    status: str = "pending"
    priority: str = "medium"

    session_id: str | None = None
    user_id: str | None = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """CRM-facing record (camelCase)."""
        return {
            "id": self.id,
            "projectName": self.project_name,
            "companyName": self.company_name,
            "industry": self.industry,
            "description": self.description,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "preferredContact": self.preferred_contact,
            "serviceType": self.service_type,
            "budget": self.budget,
            "timeline": self.timeline,
            "urgency": self.urgency,
            "serviceSpecificData": self.service_specific_data,
            "additionalRequirements": self.additional_requirements,
            "inspiration": self.inspiration,
            "addOns": self.add_ons,
            "status": self.status,
            "priority": self.priority,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    def to_row(self) -> dict:
        """Row for the onboarding_submission table; JSON columns stored as text."""
        return {
            "id": self.id,
            "project_name": self.project_name,
            "company_name": self.company_name,
            "industry": self.industry,
            "description": self.description,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "preferred_contact": self.preferred_contact,
            "service_type": self.service_type,
            "budget": self.budget,
            "timeline": self.timeline,
            "urgency": self.urgency,
            "service_specific_data": json.dumps(self.service_specific_data),
            "additional_requirements": self.additional_requirements,
            "inspiration": self.inspiration,
            "add_ons": json.dumps(self.add_ons),
            "status": self.status,
            "priority": self.priority,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict) -> "Submission":
        """Inverse of to_row()."""
        data = dict(row)
        for key in ("service_specific_data", "add_ons"):
            if isinstance(data.get(key), str):
                data[key] = json.loads(data[key])
        for key in ("created_at", "updated_at"):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in data.items() if k in known})


def missing_required_steps(
    state: FlowState,
    statuses: Mapping[StepName, StepStatus],
    catalog: StepCatalog = DEFAULT_CATALOG,
) -> list[str]:
    """Required steps for the flow's service type that are not completed."""
    missing = []
    for config in catalog.required_steps(state.service_type):
        status = statuses.get(config.step_name)
        if status is StepStatus.COMPLETED:
            continue
        if status is StepStatus.SKIPPED and catalog.can_skip(config.step_name, state.form_data):
            continue
        missing.append(config.step_name.value)
    return missing


def assemble(
    state: FlowState,
    statuses: Mapping[StepName, StepStatus],
    catalog: StepCatalog = DEFAULT_CATALOG,
    now: datetime | None = None,
) -> Submission:
    """
    Build the Submission for a completed flow.

    Same state in, value-equal Submission out (timestamps aside).

    Raises:
        IncompleteFlowError: a required step is not completed
        FlowIntegrityError: committed requirements no longer match the service type
    """
    missing = missing_required_steps(state, statuses, catalog)
    if missing or state.service_type is None:
        raise IncompleteFlowError(missing or [StepName.SERVICE_SELECTION.value])

    service_type = state.service_type
    selection = state.data_for(StepName.SERVICE_SELECTION)
    basic = state.data_for(StepName.BASIC_INFO)
    requirements = state.data_for(StepName.SERVICE_REQUIREMENTS)
    review = state.data_for(StepName.REVIEW)

    if requirements:
        check = validate_step(StepName.SERVICE_REQUIREMENTS, service_type, requirements)
        if not check.is_valid:
            raise FlowIntegrityError(
                f"Committed requirements do not validate for {service_type.value}: {check.error_messages}"
            )

    # Package details picked on the pricing page supply budget/timeline defaults
    details = selection.get("serviceDetails") or {}
    now = now or utcnow()

    return Submission(
        id=state.submission_id or str(uuid.uuid5(SUBMISSION_NAMESPACE, state.session_id)),
        project_name=basic.get("projectName", ""),
        company_name=basic.get("companyName"),
        industry=basic.get("industry"),
        description=basic.get("projectDescription"),
        # No separate contact name is collected; the company stands in
        name=basic.get("contactName") or basic.get("companyName") or "Unknown",
        email=basic.get("contactEmail", ""),
        phone=basic.get("contactPhone"),
        preferred_contact=basic.get("preferredContact") or "email",
        service_type=service_type.value,
        budget=review.get("budget") or details.get("price"),
        timeline=review.get("timeline") or details.get("timeline"),
        urgency=review.get("urgency") or "medium",
        service_specific_data={
            "serviceType": service_type.value,
            "originalService": selection.get("originalService"),
            "serviceDetails": details or None,
            "requirements": dict(requirements),
        },
        additional_requirements=review.get("additionalNotes"),
        inspiration=review.get("inspiration"),
        add_ons=list(review.get("addOns") or []),
        session_id=state.session_id,
        user_id=state.user_id,
        created_at=now,
        updated_at=now,
    )
