"""
Onboarding Service.

Async facade the router calls. Wires the Flow Engine to the Progress Tracker,
the session store and the submission repository.

Every request loads the FlowState from the session store and saves the result
back, so workers share sessions. The tracker is a per-process cache of
StepProgress rows: it is rebuilt from the repository when it has not seen a
session or another worker has moved the session on, and dropped once the
flow is closed. Storage calls are bounded by `persistence_timeout`.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

from .analytics import FlowAnalytics
from .engine import FlowEngine, NavigationNotAllowed, StepOutcome
from .errors import PersistenceFailure
from .progress import ProgressTracker, StepProgress, latest_by_step
from .repository import InMemoryRepository, SubmissionRepository
from .sessions import InMemorySessionStore, SessionStore
from .state import DeviceType, FlowState, NavigationAction, ServiceType, StepName, utcnow
from .steps import DEFAULT_CATALOG, StepCatalog, StepConfig
from .submission import Submission, assemble

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalizeResult:
    state: FlowState
    step: StepConfig
    submission: Submission | None = None
    not_allowed: NavigationNotAllowed | None = None

    @property
    def ok(self) -> bool:
        return self.not_allowed is None


class OnboardingService:
    def __init__(
        self,
        catalog: StepCatalog = DEFAULT_CATALOG,
        repository: SubmissionRepository | None = None,
        sessions: SessionStore | None = None,
        clock: Callable[[], datetime] = utcnow,
        persistence_timeout: float = 10.0,
    ):
        self.catalog = catalog
        self.repository = repository if repository is not None else InMemoryRepository()
        self.sessions = sessions if sessions is not None else InMemorySessionStore()
        self.tracker = ProgressTracker(catalog)
        self.engine = FlowEngine(catalog, observers=[self.tracker], clock=clock)
        self.persistence_timeout = persistence_timeout
        self._clock = clock

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _persist(self, coro):
        """Await a storage call under the persistence timeout."""
        try:
            return await asyncio.wait_for(coro, timeout=self.persistence_timeout)
        except asyncio.TimeoutError:
            raise PersistenceFailure(f"Storage did not respond within {self.persistence_timeout}s") from None

    async def _flush_progress(self, session_id: str) -> None:
        """Write queued StepProgress rows. Failures never fail the request."""
        rows = self.tracker.drain_pending(session_id)
        if not rows:
            return
        try:
            await self._persist(self.repository.append_step_progress(rows))
        except Exception as e:
            logger.warning(f"Failed to persist step progress for {session_id}: {e}")

    async def _stored_progress(self, session_id: str) -> list[StepProgress]:
        try:
            return await self._persist(self.repository.list_step_progress(session_id))
        except Exception as e:
            logger.warning(f"Failed to load step progress for {session_id}: {e}")
            return []

    async def _load(self, session_id: str) -> FlowState:
        """FlowState from the store, with the tracker brought up to date for open flows."""
        state = await self._persist(self.sessions.get(session_id))
        if state.is_closed:
            self.tracker.forget(session_id)
        elif not self.tracker.is_current(state):
            logger.debug(f"Rebuilding step progress for {session_id}")
            self.tracker.restore(state, await self._stored_progress(session_id))
        return state

    async def _commit(self, outcome: StepOutcome | FinalizeResult, previous: FlowState | None = None) -> None:
        state = outcome.state
        if state is not previous:
            try:
                if state.is_closed:
                    await self._persist(self.sessions.close(state))
                else:
                    await self._persist(self.sessions.save(state))
            except Exception:
                # The tracker saw transitions the store did not keep
                self.tracker.forget(state.session_id)
                raise
        await self._flush_progress(state.session_id)
        if state.is_closed:
            self.tracker.forget(state.session_id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_state(self, session_id: str) -> FlowState:
        return await self._persist(self.sessions.get(session_id))

    def steps_for(self, service_type: ServiceType | str | None) -> list[StepConfig]:
        return self.catalog.steps_for(ServiceType(service_type) if service_type else None)

    async def analytics_for(self, state: FlowState) -> FlowAnalytics:
        if self.tracker.has_session(state.session_id):
            return self.tracker.snapshot(state.session_id)
        # Closed flows are no longer tracked; fold the stored rows instead
        return self.tracker.replay(state, await self._stored_progress(state.session_id))

    async def read_analytics(self, session_id: str) -> FlowAnalytics:
        return await self.analytics_for(await self._load(session_id))

    async def read_progress(self, session_id: str) -> list[StepProgress]:
        """Latest StepProgress row per step, in step order."""
        await self._load(session_id)
        if self.tracker.has_session(session_id):
            return self.tracker.progress_for(session_id)
        return latest_by_step(await self._stored_progress(session_id))

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def start_flow(
        self,
        service_type: ServiceType | str | None = None,
        *,
        user_agent: str | None = None,
        device_type: DeviceType | str | None = None,
        user_id: str | None = None,
        original_service: str | None = None,
        service_details: dict[str, Any] | None = None,
    ) -> StepOutcome:
        """
        Open a new session.

        With a service type (coming from a pricing-page CTA) the selection
        step is submitted straight away, so the caller lands on basic_info.
        """
        state = self.engine.start(
            user_id=user_id,
            user_agent=user_agent,
            device_type=DeviceType(device_type) if device_type else None,
        )
        outcome = StepOutcome(state=state, step=self.catalog.get(state.current_step_name))

        if service_type is not None:
            selection: dict[str, Any] = {"serviceType": getattr(service_type, "value", service_type)}
            if original_service:
                selection["originalService"] = original_service
            if service_details:
                selection["serviceDetails"] = service_details
            outcome = self.engine.submit_step(state, StepName.SERVICE_SELECTION, selection)

        await self._commit(outcome)
        return outcome

    async def submit_step(
        self,
        session_id: str,
        step_id: str,
        step_data: dict[str, Any] | None,
        *,
        time_spent: int | None = None,
        device_type: DeviceType | str | None = None,
    ) -> StepOutcome:
        """A rejected submission leaves the stored FlowState exactly as it was, device included."""
        state = await self._load(session_id)
        step = self.catalog.get_by_id(step_id)
        candidate = replace(state, device_type=DeviceType(device_type)) if device_type else state
        outcome = self.engine.submit_step(candidate, step.step_name, step_data, duration_ms=time_spent)
        if not outcome.ok:
            outcome = replace(outcome, state=state)
        await self._commit(outcome, previous=state)
        return outcome

    async def navigate(
        self,
        session_id: str,
        action: NavigationAction | str,
        *,
        time_spent: int | None = None,
    ) -> StepOutcome:
        state = await self._load(session_id)
        outcome = self.engine.navigate(state, action, duration_ms=time_spent)
        await self._commit(outcome, previous=state)
        return outcome

    async def jump(self, session_id: str, step_name: StepName | str) -> StepOutcome:
        state = await self._load(session_id)
        outcome = self.engine.jump(state, step_name)
        await self._commit(outcome, previous=state)
        return outcome

    async def abandon(self, session_id: str) -> StepOutcome:
        state = await self._load(session_id)
        outcome = self.engine.abandon(state)
        await self._commit(outcome, previous=state)
        return outcome

    async def finalize(self, session_id: str) -> FinalizeResult:
        """
        Assemble and persist the submission, then move to confirmation.

        Raises:
            IncompleteFlowError: required steps are not completed
            PersistenceFailure: storage failed or timed out; the flow stays on review
        """
        state = await self._load(session_id)

        if state.is_complete and state.submission_id:
            # Already finalized; hand back the stored record
            submission = await self._persist(self.repository.get_submission(state.submission_id))
            return FinalizeResult(state=state, step=self.catalog.get(state.current_step_name), submission=submission)

        blocked = self.engine.completion_blocker(state)
        if blocked is not None:
            return FinalizeResult(state=state, step=blocked.step, not_allowed=blocked.not_allowed)

        submission = assemble(state, self.tracker.statuses(session_id), self.catalog, now=self._clock())

        try:
            saved = await self._persist(self.repository.insert_submission(submission))
        except PersistenceFailure:
            logger.error(f"Submission {submission.id} not persisted for session {session_id}")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error persisting submission {submission.id}")
            raise PersistenceFailure(str(e)) from e

        outcome = self.engine.complete(state, saved.id)
        self.tracker.mark_submitted(session_id, saved.id)
        result = FinalizeResult(state=outcome.state, step=outcome.step, submission=saved)
        await self._commit(result, previous=state)
        logger.info(f"Submission persisted: {saved.id} ({saved.service_type}, session {session_id})")
        return result


# =============================================================================
# Dependency
# =============================================================================

_service: OnboardingService | None = None


def get_onboarding_service() -> OnboardingService:
    """FastAPI dependency. Falls back to an in-memory service if none was installed."""
    global _service
    if _service is None:
        _service = OnboardingService()
    return _service


def set_onboarding_service(service: OnboardingService | None) -> None:
    global _service
    _service = service
