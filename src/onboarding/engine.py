"""
Onboarding Flow Engine.

State machine over the wizard steps. Every operation takes a FlowState and
returns a StepOutcome holding the resulting (possibly unchanged) state; no
session data lives on the engine itself.

Transitions:
    service_selection -> basic_info           on a valid service type
    basic_info -> service_requirements         on valid basic info
    service_requirements -> review             on valid type-specific requirements
    review -> confirmation                     only via complete(), after persistence
    any -> previous                            if the current step allows back
    any non-terminal -> abandoned              via abandon()

Observers receive a TransitionEvent for every transition attempt, including
rejected submissions (as `retry`).
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Iterable

from .schemas import as_step_name
from .state import (
    DeviceType,
    FlowState,
    NavigationAction,
    ServiceType,
    StepName,
    utcnow,
)
from .steps import DEFAULT_CATALOG, StepCatalog, StepConfig
from .validator import FieldError, ValidationResult, validate_step

logger = logging.getLogger(__name__)


# Reasons surfaced with NavigationNotAllowed
FLOW_CLOSED = "flow_closed"
NOT_CURRENT_STEP = "not_current_step"
TERMINAL_STEP = "terminal_step"
FINALIZE_REQUIRED = "finalize_required"
BACK_NOT_ALLOWED = "back_not_allowed"
NO_PREVIOUS_STEP = "no_previous_step"
NOT_SKIPPABLE = "step_not_skippable"
NOT_APPLICABLE = "step_not_applicable"
NOT_VISITED = "step_not_visited"


@dataclass(frozen=True)
class NavigationNotAllowed:
    """A refused transition. Returned, never raised; the flow state is unchanged."""
    reason: str
    current_step: StepName
    action: str

    def to_dict(self) -> dict:
        return {"reason": self.reason, "current_step": self.current_step.value, "action": self.action}


@dataclass(frozen=True)
class TransitionEvent:
    """What the Progress Tracker observes."""
    session_id: str
    action: NavigationAction
    from_step: StepName | None
    to_step: StepName | None
    timestamp: datetime
    service_type: ServiceType | None = None
    committed: bool = False                 # Step being left had its data accepted
    step_data: dict[str, Any] | None = None
    errors: tuple[str, ...] = ()
    duration_ms: int | None = None          # Client-reported time on the step being left
    user_agent: str | None = None
    device_type: DeviceType | None = None


@dataclass(frozen=True)
class StepOutcome:
    """Result of an engine operation."""
    state: FlowState
    step: StepConfig
    validation: ValidationResult | None = None
    not_allowed: NavigationNotAllowed | None = None

    @property
    def ok(self) -> bool:
        if self.not_allowed is not None:
            return False
        return self.validation is None or self.validation.is_valid


Observer = Callable[[TransitionEvent], None]


class FlowEngine:
    """Pure transition logic plus event emission."""

    def __init__(
        self,
        catalog: StepCatalog = DEFAULT_CATALOG,
        observers: Iterable[Observer] = (),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self._observers: list[Observer] = list(observers)
        self._clock = clock

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _emit(self, state: FlowState, action: NavigationAction, from_step: StepName | None,
              to_step: StepName | None, now: datetime, **extra) -> None:
        event = TransitionEvent(
            session_id=state.session_id,
            action=action,
            from_step=from_step,
            to_step=to_step,
            timestamp=now,
            service_type=state.service_type,
            user_agent=state.user_agent,
            device_type=state.device_type,
            **extra,
        )
        for observer in self._observers:
            observer(event)

    def _refuse(self, state: FlowState, reason: str, action: NavigationAction | str) -> StepOutcome:
        action_value = action.value if isinstance(action, NavigationAction) else action
        logger.debug(f"{state.session_id}: {action_value} refused at {state.current_step_name.value} ({reason})")
        return StepOutcome(
            state=state,
            step=self.catalog.get(state.current_step_name),
            not_allowed=NavigationNotAllowed(reason, state.current_step_name, action_value),
        )

    def _move(self, state: FlowState, target: StepConfig, now: datetime) -> FlowState:
        return state.moved_to(target.step_number, target.step_name, now)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(
        self,
        session_id: str | None = None,
        *,
        user_id: str | None = None,
        user_agent: str | None = None,
        device_type: DeviceType | None = None,
    ) -> FlowState:
        """Fresh state on step 1 with no data collected."""
        now = self._clock()
        first = self.catalog.steps_for(None)[0]
        state = FlowState(
            session_id=session_id or str(uuid.uuid4()),
            current_step=first.step_number,
            current_step_name=first.step_name,
            step_history=(first.step_name.value,),
            user_id=user_id,
            user_agent=user_agent,
            device_type=device_type,
            started_at=now,
            last_active_at=now,
        )
        self._emit(state, NavigationAction.NEXT, None, first.step_name, now)
        logger.info(f"Onboarding session started: {state.session_id}")
        return state

    def submit_step(
        self,
        state: FlowState,
        step: StepName | str,
        data: dict[str, Any] | None,
        *,
        duration_ms: int | None = None,
    ) -> StepOutcome:
        """
        Validate and commit data for the current step, then advance.

        On a rejected submission the state is returned untouched and a
        `retry` event carries the errors to observers. The review step
        commits without advancing; confirmation is reached via complete().
        """
        step_name = as_step_name(step)
        config = self.catalog.get(step_name)

        if state.is_closed:
            return self._refuse(state, FLOW_CLOSED, NavigationAction.NEXT)
        if step_name is not state.current_step_name:
            return self._refuse(state, NOT_CURRENT_STEP, NavigationAction.NEXT)
        if config.is_terminal:
            return self._refuse(state, TERMINAL_STEP, NavigationAction.NEXT)

        tag = (data or {}).get("serviceType")
        if (step_name is StepName.SERVICE_REQUIREMENTS and tag is not None
                and state.service_type is not None and tag != state.service_type.value):
            # Envelope tagged for another service type
            result = ValidationResult(is_valid=False, errors=[FieldError(
                field="serviceType",
                message=f"Requirements are for {tag} but this project is a {state.service_type.value}",
                code="service_type_mismatch",
                value=tag,
            )])
        else:
            result = validate_step(step_name, state.service_type, data)

        if result.is_valid and step_name is StepName.SERVICE_SELECTION and state.service_type is not None:
            chosen = result.data["serviceType"]
            if chosen != state.service_type.value:
                result = ValidationResult(is_valid=False, errors=[FieldError(
                    field="serviceType",
                    message="Service type cannot be changed once selected. Restart to pick another.",
                    code="immutable",
                    value=chosen,
                )])

        now = self._clock()

        if not result.is_valid:
            self._emit(
                state, NavigationAction.RETRY, step_name, None, now,
                step_data=dict(data or {}),
                errors=tuple(result.error_messages),
                duration_ms=duration_ms,
            )
            return StepOutcome(state=state, step=config, validation=result)

        new_state = state.with_step_data(step_name, result.data, now)
        if step_name is StepName.SERVICE_SELECTION:
            new_state = replace(new_state, service_type=ServiceType(result.data["serviceType"]))

        next_config = self.catalog.next(step_name, new_state.service_type)
        if next_config is None or next_config.is_terminal:
            # Review: data committed, confirmation waits for persistence
            self._emit(new_state, NavigationAction.NEXT, step_name, None, now,
                       committed=True, step_data=dict(data or {}), duration_ms=duration_ms)
            logger.info(f"{state.session_id}: {step_name.value} committed, awaiting finalize")
            return StepOutcome(state=new_state, step=config, validation=result)

        new_state = self._move(new_state, next_config, now)
        self._emit(new_state, NavigationAction.NEXT, step_name, next_config.step_name, now,
                   committed=True, step_data=dict(data or {}), duration_ms=duration_ms)
        logger.info(f"{state.session_id}: {step_name.value} -> {next_config.step_name.value}")
        return StepOutcome(state=new_state, step=next_config, validation=result)

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def navigate(self, state: FlowState, action: NavigationAction | str, *, duration_ms: int | None = None) -> StepOutcome:
        action = NavigationAction(action)
        if action is NavigationAction.NEXT:
            return self.advance(state, duration_ms=duration_ms)
        if action is NavigationAction.BACK:
            return self.back(state, duration_ms=duration_ms)
        if action is NavigationAction.SKIP:
            return self.skip(state, duration_ms=duration_ms)
        return self._refuse(state, f"unsupported_action:{action.value}", action)

    def advance(self, state: FlowState, *, duration_ms: int | None = None) -> StepOutcome:
        """Move forward using the data already held for the current step (re-validated)."""
        if state.is_closed:
            return self._refuse(state, FLOW_CLOSED, NavigationAction.NEXT)
        current = self.catalog.get(state.current_step_name)
        if current.is_terminal:
            return self._refuse(state, TERMINAL_STEP, NavigationAction.NEXT)
        following = self.catalog.next(current.step_name, state.service_type)
        if following is None or following.is_terminal:
            return self._refuse(state, FINALIZE_REQUIRED, NavigationAction.NEXT)
        return self.submit_step(state, current.step_name, state.data_for(current.step_name), duration_ms=duration_ms)

    def back(self, state: FlowState, *, duration_ms: int | None = None) -> StepOutcome:
        if state.is_closed:
            return self._refuse(state, FLOW_CLOSED, NavigationAction.BACK)
        current = self.catalog.get(state.current_step_name)
        previous = self.catalog.previous(current.step_name, state.service_type)
        if previous is None:
            reason = BACK_NOT_ALLOWED if not current.back_allowed else NO_PREVIOUS_STEP
            return self._refuse(state, reason, NavigationAction.BACK)

        now = self._clock()
        new_state = self._move(state, previous, now)
        self._emit(new_state, NavigationAction.BACK, current.step_name, previous.step_name, now,
                   duration_ms=duration_ms)
        return StepOutcome(state=new_state, step=previous)

    def skip(self, state: FlowState, *, duration_ms: int | None = None) -> StepOutcome:
        if state.is_closed:
            return self._refuse(state, FLOW_CLOSED, NavigationAction.SKIP)
        current = self.catalog.get(state.current_step_name)
        if not self.catalog.can_skip(current.step_name, state.form_data):
            return self._refuse(state, NOT_SKIPPABLE, NavigationAction.SKIP)
        following = self.catalog.next(current.step_name, state.service_type)
        if following is None or following.is_terminal:
            return self._refuse(state, FINALIZE_REQUIRED, NavigationAction.SKIP)

        now = self._clock()
        new_state = self._move(state, following, now)
        self._emit(new_state, NavigationAction.SKIP, current.step_name, following.step_name, now,
                   duration_ms=duration_ms)
        return StepOutcome(state=new_state, step=following)

    def jump(self, state: FlowState, target: StepName | str) -> StepOutcome:
        """
        Go directly to another step, one hop at a time.

        Backward jumps need every step passed to allow back navigation and are
        checked up front. Forward jumps only reach visited steps and re-validate
        each step's held data; they stop at the first step that fails.
        """
        target_config = self.catalog.get(target)
        if state.is_closed:
            return self._refuse(state, FLOW_CLOSED, "jump")

        steps = self.catalog.steps_for(state.service_type)
        names = [c.step_name for c in steps]
        if target_config.step_name not in names:
            return self._refuse(state, NOT_APPLICABLE, "jump")

        current_idx = names.index(state.current_step_name)
        target_idx = names.index(target_config.step_name)

        if target_idx == current_idx:
            return StepOutcome(state=state, step=target_config)

        if target_idx < current_idx:
            if not all(c.back_allowed for c in steps[target_idx + 1:current_idx + 1]):
                return self._refuse(state, BACK_NOT_ALLOWED, "jump")
            outcome = StepOutcome(state=state, step=steps[current_idx])
            while outcome.state.current_step_name is not target_config.step_name:
                outcome = self.back(outcome.state)
            return outcome

        if target_config.is_terminal:
            return self._refuse(state, FINALIZE_REQUIRED, "jump")
        if target_config.step_name.value not in state.step_history:
            return self._refuse(state, NOT_VISITED, "jump")

        outcome = StepOutcome(state=state, step=steps[current_idx])
        while outcome.state.current_step_name is not target_config.step_name:
            outcome = self.advance(outcome.state)
            if not outcome.ok:
                break
        return outcome

    # -------------------------------------------------------------------------
    # Terminal transitions
    # -------------------------------------------------------------------------

    def completion_blocker(self, state: FlowState) -> StepOutcome | None:
        """Refusal for complete(), or None if the flow may be finalized now."""
        if state.is_closed:
            return self._refuse(state, FLOW_CLOSED, NavigationAction.NEXT)
        if state.current_step_name is not StepName.REVIEW:
            return self._refuse(state, NOT_CURRENT_STEP, NavigationAction.NEXT)
        if self.catalog.next(StepName.REVIEW, state.service_type) is None:
            return self._refuse(state, TERMINAL_STEP, NavigationAction.NEXT)
        return None

    def complete(self, state: FlowState, submission_id: str) -> StepOutcome:
        """review -> confirmation, once the submission has been persisted."""
        blocked = self.completion_blocker(state)
        if blocked is not None:
            return blocked

        confirmation = self.catalog.next(StepName.REVIEW, state.service_type)
        now = self._clock()
        new_state = self._move(state, confirmation, now)
        new_state = replace(new_state, submission_id=submission_id, is_complete=True)
        self._emit(new_state, NavigationAction.NEXT, StepName.REVIEW, confirmation.step_name, now,
                   committed=True)
        logger.info(f"{state.session_id}: flow completed (submission {submission_id})")
        return StepOutcome(state=new_state, step=confirmation)

    def abandon(self, state: FlowState) -> StepOutcome:
        """Close the flow without a submission. State is kept for analytics."""
        if state.is_closed:
            return self._refuse(state, FLOW_CLOSED, NavigationAction.EXIT)

        now = self._clock()
        new_state = replace(state, is_abandoned=True, last_active_at=now)
        self._emit(new_state, NavigationAction.EXIT, state.current_step_name, None, now)
        logger.info(f"{state.session_id}: abandoned at {state.current_step_name.value}")
        return StepOutcome(state=new_state, step=self.catalog.get(state.current_step_name))
