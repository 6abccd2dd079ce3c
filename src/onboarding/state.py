"""
Onboarding Flow State.

Enumerations shared across the onboarding subsystem and the FlowState value
that describes one live wizard session.

FlowState is immutable: every Flow Engine operation takes a state and returns
a new one. Serialized as JSON when stored between requests.
"""

from dataclasses import dataclass, field, replace, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import json


class ServiceType(str, Enum):
    """Category of project being onboarded."""
    LANDING_PAGE = "landing_page"
    WEB_APP = "web_app"
    MOBILE_APP = "mobile_app"


class StepName(str, Enum):
    """Wizard steps, in flow order."""
    SERVICE_SELECTION = "service_selection"
    BASIC_INFO = "basic_info"
    SERVICE_REQUIREMENTS = "service_requirements"
    REVIEW = "review"
    CONFIRMATION = "confirmation"        # Terminal display state


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ERROR = "error"


class ConversionStatus(str, Enum):
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    IN_PROGRESS = "in_progress"


class NavigationAction(str, Enum):
    NEXT = "next"
    BACK = "back"
    SKIP = "skip"
    RETRY = "retry"
    EXIT = "exit"


class DeviceType(str, Enum):
    DESKTOP = "desktop"
    TABLET = "tablet"
    MOBILE = "mobile"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FlowState:
    """
    Live state of one onboarding session.

    `step_history` is append-only and its last entry always names the
    current step. `form_data` maps step name -> that step's validated data.
    """
    session_id: str
    current_step: int = 1
    current_step_name: StepName = StepName.SERVICE_SELECTION
    step_history: tuple[str, ...] = (StepName.SERVICE_SELECTION.value,)
    form_data: dict[str, dict[str, Any]] = field(default_factory=dict)
    service_type: ServiceType | None = None
    submission_id: str | None = None
    is_complete: bool = False
    is_abandoned: bool = False

    # Who/what is driving the session
    user_id: str | None = None
    user_agent: str | None = None
    device_type: DeviceType | None = None

    started_at: datetime = field(default_factory=utcnow)
    last_active_at: datetime = field(default_factory=utcnow)

    @property
    def is_closed(self) -> bool:
        """True once the flow reached confirmation or was abandoned."""
        return self.is_complete or self.is_abandoned

    def data_for(self, step_name: StepName) -> dict[str, Any]:
        return self.form_data.get(step_name.value, {})

    def with_step_data(self, step_name: StepName, data: dict[str, Any], now: datetime) -> "FlowState":
        """Return a copy with `data` committed for `step_name`."""
        form_data = dict(self.form_data)
        form_data[step_name.value] = dict(data)
        return replace(self, form_data=form_data, last_active_at=now)

    def moved_to(self, step_number: int, step_name: StepName, now: datetime) -> "FlowState":
        """Return a copy positioned on a new step with history extended."""
        return replace(
            self,
            current_step=step_number,
            current_step_name=step_name,
            step_history=self.step_history + (step_name.value,),
            last_active_at=now,
        )

    def to_dict(self) -> dict:
        """Serialize state to dict for JSON storage."""
        data = asdict(self)
        data["current_step_name"] = self.current_step_name.value
        data["step_history"] = list(self.step_history)
        data["service_type"] = self.service_type.value if self.service_type else None
        data["device_type"] = self.device_type.value if self.device_type else None
        data["started_at"] = self.started_at.isoformat()
        data["last_active_at"] = self.last_active_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FlowState":
        """Deserialize state from dict."""
        data = dict(data)
        data["current_step_name"] = StepName(data["current_step_name"])
        data["step_history"] = tuple(data.get("step_history", ()))
        if data.get("service_type"):
            data["service_type"] = ServiceType(data["service_type"])
        if data.get("device_type"):
            data["device_type"] = DeviceType(data["device_type"])
        for key in ("started_at", "last_active_at"):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])
        return cls(**data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "FlowState":
        return cls.from_dict(json.loads(json_str))
