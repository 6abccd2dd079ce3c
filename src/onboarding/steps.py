"""
Onboarding Step Catalog.

Static definitions for every wizard step and the ordering/navigation queries
the Flow Engine needs. Configs are created once and never mutated at runtime.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .errors import UnknownStep
from .schemas import as_step_name
from .state import ServiceType, StepName

logger = logging.getLogger(__name__)


COMPONENT_TYPES = ("form", "selection", "review", "confirmation")
UI_LAYOUTS = ("single_column", "two_column", "grid", "custom")


@dataclass(frozen=True)
class StepConfig:
    """Static metadata describing one wizard step."""
    id: str
    step_number: int
    step_name: StepName
    title: str
    description: str = ""

    # Empty = applies to every service type
    service_types: frozenset[ServiceType] = frozenset()

    required_fields: tuple[str, ...] = ()
    optional_fields: tuple[str, ...] = ()

    component_type: str = "form"
    ui_layout: str = "single_column"

    # Field path -> expected value; all must match form data for a skip
    skip_conditions: dict[str, Any] = field(default_factory=dict)
    back_allowed: bool = True

    display_order: int = 0
    progress_weight: int = 1
    estimated_time: int | None = None   # Minutes

    is_active: bool = True
    is_required: bool = True

    def __post_init__(self):
        if self.step_number < 1:
            raise ValueError(f"{self.step_name.value}: step_number must be positive")
        if self.progress_weight < 1:
            raise ValueError(f"{self.step_name.value}: progress_weight must be positive")
        if self.component_type not in COMPONENT_TYPES:
            raise ValueError(f"{self.step_name.value}: unknown component type {self.component_type}")
        if self.ui_layout not in UI_LAYOUTS:
            raise ValueError(f"{self.step_name.value}: unknown layout {self.ui_layout}")

    @property
    def is_terminal(self) -> bool:
        return self.step_name is StepName.CONFIRMATION

    def applies_to(self, service_type: ServiceType | None) -> bool:
        return not self.service_types or service_type in self.service_types

    def to_dict(self) -> dict:
        """Frontend-facing representation."""
        return {
            "id": self.id,
            "step_number": self.step_number,
            "step_name": self.step_name.value,
            "title": self.title,
            "description": self.description,
            "service_types": sorted(t.value for t in self.service_types),
            "required_fields": list(self.required_fields),
            "optional_fields": list(self.optional_fields),
            "component_type": self.component_type,
            "ui_layout": self.ui_layout,
            "back_allowed": self.back_allowed,
            "display_order": self.display_order,
            "progress_weight": self.progress_weight,
            "estimated_time": self.estimated_time,
            "is_required": self.is_required,
        }


def _lookup(data: dict, path: str) -> Any:
    """Resolve a dotted path like 'service_selection.serviceType'."""
    node: Any = data
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


class StepCatalog:
    """Ordered, filterable view over a fixed set of StepConfigs."""

    def __init__(self, configs: Iterable[StepConfig]):
        self._configs = sorted(configs, key=lambda c: (c.display_order, c.step_number))
        seen: set[int] = set()
        for config in self._configs:
            if config.step_number in seen:
                raise ValueError(f"Duplicate step number {config.step_number}")
            seen.add(config.step_number)
        self._by_name = {c.step_name: c for c in self._configs}

    def __iter__(self):
        return iter(self._configs)

    def get(self, step: StepName | str) -> StepConfig:
        step_name = as_step_name(step)
        try:
            return self._by_name[step_name]
        except KeyError:
            raise UnknownStep(step_name.value) from None

    def get_by_id(self, step_id: str) -> StepConfig:
        """Accept a config id, step name or step number (as string)."""
        for config in self._configs:
            if step_id in (config.id, config.step_name.value, str(config.step_number)):
                return config
        raise UnknownStep(step_id)

    def steps_for(self, service_type: ServiceType | None) -> list[StepConfig]:
        """Active steps applicable to `service_type`, in display order."""
        return [c for c in self._configs if c.is_active and c.applies_to(service_type)]

    def required_steps(self, service_type: ServiceType | None) -> list[StepConfig]:
        """Required steps that must be completed before a submission is built."""
        return [c for c in self.steps_for(service_type) if c.is_required and not c.is_terminal]

    def tracked_steps(self, service_type: ServiceType | None) -> list[StepConfig]:
        """Steps that count toward progress; confirmation is a display state only."""
        return [c for c in self.steps_for(service_type) if not c.is_terminal]

    def next(self, step: StepName | str, service_type: ServiceType | None) -> StepConfig | None:
        """The step after `step`, or None when `step` is terminal."""
        current = self.get(step)
        steps = self.steps_for(service_type)
        names = [c.step_name for c in steps]
        if current.step_name not in names:
            raise UnknownStep(current.step_name.value)
        idx = names.index(current.step_name)
        return steps[idx + 1] if idx + 1 < len(steps) else None

    def previous(self, step: StepName | str, service_type: ServiceType | None) -> StepConfig | None:
        """The step before `step`, or None if back navigation is disallowed or nothing precedes."""
        current = self.get(step)
        if not current.back_allowed:
            return None
        steps = self.steps_for(service_type)
        names = [c.step_name for c in steps]
        if current.step_name not in names:
            raise UnknownStep(current.step_name.value)
        idx = names.index(current.step_name)
        return steps[idx - 1] if idx > 0 else None

    def can_skip(self, step: StepName | str, form_data: dict[str, dict]) -> bool:
        config = self.get(step)
        if config.is_terminal:
            return False
        if not config.is_required:
            return True
        if config.skip_conditions:
            return all(_lookup(form_data, path) == expected for path, expected in config.skip_conditions.items())
        return False

    def total_weight(self, service_type: ServiceType | None) -> int:
        return sum(c.progress_weight for c in self.tracked_steps(service_type))


# =============================================================================
# Default catalog
# =============================================================================

DEFAULT_STEPS = [
    StepConfig(
        id="step-service-selection",
        step_number=1,
        step_name=StepName.SERVICE_SELECTION,
        title="Choose your service",
        description="Pick the kind of project you want us to build.",
        required_fields=("serviceType",),
        optional_fields=("originalService", "serviceDetails"),
        component_type="selection",
        ui_layout="grid",
        back_allowed=False,
        display_order=0,
        progress_weight=1,
        estimated_time=1,
    ),
    StepConfig(
        id="step-basic-info",
        step_number=2,
        step_name=StepName.BASIC_INFO,
        title="Tell us about your project",
        description="Project and contact details.",
        required_fields=("projectName", "companyName", "industry", "projectDescription", "contactEmail"),
        optional_fields=("contactPhone", "preferredContact"),
        component_type="form",
        ui_layout="two_column",
        # Service type is fixed once chosen; going back to step 1 cannot change it
        back_allowed=False,
        display_order=1,
        progress_weight=2,
        estimated_time=3,
    ),
    StepConfig(
        id="step-service-requirements",
        step_number=3,
        step_name=StepName.SERVICE_REQUIREMENTS,
        title="Project requirements",
        description="Details specific to the service you selected.",
        component_type="form",
        ui_layout="single_column",
        back_allowed=True,
        display_order=2,
        progress_weight=3,
        estimated_time=5,
    ),
    StepConfig(
        id="step-review",
        step_number=4,
        step_name=StepName.REVIEW,
        title="Review and submit",
        description="Check your details before sending the request.",
        required_fields=("confirmDetails", "agreeToTerms"),
        optional_fields=("additionalNotes", "budget", "timeline", "urgency", "inspiration", "addOns"),
        component_type="review",
        ui_layout="single_column",
        back_allowed=True,
        display_order=3,
        progress_weight=1,
        estimated_time=2,
    ),
    StepConfig(
        id="step-confirmation",
        step_number=5,
        step_name=StepName.CONFIRMATION,
        title="Request received",
        description="We'll be in touch within 24 hours with next steps.",
        component_type="confirmation",
        back_allowed=False,
        display_order=4,
        progress_weight=1,
    ),
]

DEFAULT_CATALOG = StepCatalog(DEFAULT_STEPS)
