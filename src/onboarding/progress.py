"""
Onboarding Progress Tracker.

Observes Flow Engine transitions and keeps one StepProgress row per
(session, step). Rows are replaced, never deleted; navigation events are
appended to an immutable log so the session can be replayed for analytics.

Time spent is accumulated across visits: each visit or retry adds the time
since `started_at`, which is then reset to the checkpoint.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from .analytics import FlowAnalytics, compute_analytics
from .engine import TransitionEvent
from .errors import SessionNotFound
from .state import ConversionStatus, FlowState, NavigationAction, ServiceType, StepName, StepStatus
from .steps import DEFAULT_CATALOG, StepCatalog

logger = logging.getLogger(__name__)


def _parse_time(value) -> datetime | None:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


@dataclass(frozen=True)
class NavigationEvent:
    timestamp: datetime
    action: NavigationAction
    from_step: str
    to_step: str | None = None
    duration: int | None = None               # ms spent before this event
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "from_step": self.from_step,
            "to_step": self.to_step,
            "duration": self.duration,
            "errors": list(self.errors),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NavigationEvent":
        return cls(
            timestamp=_parse_time(data["timestamp"]),
            action=NavigationAction(data["action"]),
            from_step=data["from_step"],
            to_step=data.get("to_step"),
            duration=data.get("duration"),
            errors=tuple(data.get("errors") or ()),
        )


@dataclass(frozen=True)
class StepProgress:
    """Audit record of one step's lifecycle within a session."""
    session_id: str
    step_id: str
    step_number: int
    step_name: StepName
    status: StepStatus = StepStatus.PENDING
    user_input: dict[str, Any] | None = None
    validation_errors: tuple[str, ...] = ()
    started_at: datetime | None = None        # Start of the latest visit or retry
    completed_at: datetime | None = None
    time_spent: int = 0                       # ms, summed over visits
    attempt_count: int = 1
    previous_step: str | None = None
    next_step: str | None = None
    navigation_history: tuple[NavigationEvent, ...] = ()
    submission_id: str | None = None
    user_agent: str | None = None
    device_type: str | None = None
    exited_at: datetime | None = None

    def to_dict(self) -> dict:
        """Row shape for the onboarding_step_progress table."""
        return {
            "session_id": self.session_id,
            "submission_id": self.submission_id,
            "step_id": self.step_id,
            "step_number": self.step_number,
            "step_name": self.step_name.value,
            "status": self.status.value,
            "user_input": self.user_input,
            "validation_errors": list(self.validation_errors),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "time_spent": self.time_spent,
            "attempt_count": self.attempt_count,
            "previous_step_id": self.previous_step,
            "next_step_id": self.next_step,
            "navigation_history": [e.to_dict() for e in self.navigation_history],
            "user_agent": self.user_agent,
            "device_type": self.device_type,
            "exited_at": self.exited_at.isoformat() if self.exited_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StepProgress":
        """Rebuild from a stored row; unknown columns (id, recorded_at) are ignored."""
        return cls(
            session_id=data["session_id"],
            step_id=data["step_id"],
            step_number=data["step_number"],
            step_name=StepName(data["step_name"]),
            status=StepStatus(data.get("status") or StepStatus.PENDING.value),
            user_input=data.get("user_input"),
            validation_errors=tuple(data.get("validation_errors") or ()),
            started_at=_parse_time(data.get("started_at")),
            completed_at=_parse_time(data.get("completed_at")),
            time_spent=data.get("time_spent") or 0,
            attempt_count=data.get("attempt_count") or 1,
            previous_step=data.get("previous_step_id"),
            next_step=data.get("next_step_id"),
            navigation_history=tuple(NavigationEvent.from_dict(e) for e in data.get("navigation_history") or ()),
            submission_id=data.get("submission_id"),
            user_agent=data.get("user_agent"),
            device_type=data.get("device_type"),
            exited_at=_parse_time(data.get("exited_at")),
        )


@dataclass
class _SessionProgress:
    """Per-session bookkeeping held by the tracker."""
    session_id: str
    started_at: datetime
    last_active_at: datetime
    rows: dict[StepName, StepProgress] = field(default_factory=dict)
    pending: list[StepProgress] = field(default_factory=list)
    service_type: ServiceType | None = None
    conversion_status: ConversionStatus = ConversionStatus.IN_PROGRESS
    abandoned_at: str | None = None
    completed_at: datetime | None = None
    user_agent: str | None = None
    device_type: str | None = None


def _elapsed_ms(start: datetime | None, end: datetime) -> int:
    if start is None:
        return 0
    return max(0, int((end - start).total_seconds() * 1000))


def latest_by_step(rows: list[StepProgress]) -> list[StepProgress]:
    """Collapse an append-only progress log (oldest first) to one row per step, in step order."""
    latest: dict[StepName, StepProgress] = {}
    for row in rows:
        latest[row.step_name] = row
    return sorted(latest.values(), key=lambda r: r.step_number)


class ProgressTracker:
    """Observer of Flow Engine transitions; source of FlowAnalytics snapshots."""

    def __init__(self, catalog: StepCatalog = DEFAULT_CATALOG):
        self.catalog = catalog
        self._sessions: dict[str, _SessionProgress] = {}

    def __call__(self, event: TransitionEvent) -> None:
        self.on_transition(event)

    def __len__(self) -> int:
        return len(self._sessions)

    # -------------------------------------------------------------------------
    # Observer
    # -------------------------------------------------------------------------

    def on_transition(self, event: TransitionEvent) -> None:
        session = self._sessions.get(event.session_id)
        if session is None:
            session = _SessionProgress(
                session_id=event.session_id,
                started_at=event.timestamp,
                last_active_at=event.timestamp,
            )
            self._sessions[event.session_id] = session

        session.last_active_at = event.timestamp
        if event.service_type is not None:
            session.service_type = event.service_type
        if event.user_agent:
            session.user_agent = event.user_agent
        if event.device_type is not None:
            session.device_type = event.device_type.value

        if event.from_step is not None:
            self._leave(session, event)
        if event.to_step is not None:
            self._enter(session, event)

        if event.action is NavigationAction.EXIT:
            session.conversion_status = ConversionStatus.ABANDONED
            session.abandoned_at = event.from_step.value if event.from_step else None
        elif event.to_step is StepName.CONFIRMATION:
            session.conversion_status = ConversionStatus.COMPLETED
            session.completed_at = event.timestamp

    def _row(self, session: _SessionProgress, step_name: StepName, now: datetime) -> StepProgress:
        row = session.rows.get(step_name)
        if row is None:
            config = self.catalog.get(step_name)
            row = StepProgress(
                session_id=session.session_id,
                step_id=config.id,
                step_number=config.step_number,
                step_name=step_name,
                started_at=now,
                user_agent=session.user_agent,
                device_type=session.device_type,
            )
        return row

    def _store(self, session: _SessionProgress, row: StepProgress) -> None:
        session.rows[row.step_name] = row
        session.pending.append(row)

    def _leave(self, session: _SessionProgress, event: TransitionEvent) -> None:
        now = event.timestamp
        row = self._row(session, event.from_step, now)

        elapsed = event.duration_ms if event.duration_ms is not None else _elapsed_ms(row.started_at, now)
        nav = NavigationEvent(
            timestamp=now,
            action=event.action,
            from_step=event.from_step.value,
            to_step=event.to_step.value if event.to_step else None,
            duration=elapsed,
            errors=event.errors,
        )
        changes: dict[str, Any] = {
            "time_spent": row.time_spent + elapsed,
            "navigation_history": row.navigation_history + (nav,),
        }
        if event.step_data is not None:
            changes["user_input"] = event.step_data

        if event.action is NavigationAction.RETRY:
            changes["status"] = StepStatus.ERROR
            changes["attempt_count"] = row.attempt_count + 1
            changes["validation_errors"] = row.validation_errors + event.errors
            # Still on the step; time counts again from here
            changes["started_at"] = now
        elif event.action is NavigationAction.NEXT and event.committed:
            changes["status"] = StepStatus.COMPLETED
            changes["completed_at"] = now
            if event.to_step is not None:
                changes["next_step"] = event.to_step.value
            else:
                # Committed without leaving (review awaiting finalize)
                changes["started_at"] = now
        elif event.action is NavigationAction.SKIP:
            changes["status"] = StepStatus.SKIPPED
            changes["next_step"] = event.to_step.value if event.to_step else None
        elif event.action is NavigationAction.BACK:
            changes["status"] = StepStatus.IN_PROGRESS
        elif event.action is NavigationAction.EXIT:
            changes["exited_at"] = now

        self._store(session, replace(row, **changes))

    def _enter(self, session: _SessionProgress, event: TransitionEvent) -> None:
        now = event.timestamp
        existing = session.rows.get(event.to_step)
        row = self._row(session, event.to_step, now)

        changes: dict[str, Any] = {"started_at": now}
        if existing is not None:
            changes["attempt_count"] = existing.attempt_count + 1
        if event.from_step is not None:
            changes["previous_step"] = event.from_step.value

        if event.to_step is StepName.CONFIRMATION:
            changes["status"] = StepStatus.COMPLETED
            changes["completed_at"] = now
        else:
            changes["status"] = StepStatus.IN_PROGRESS

        self._store(session, replace(row, **changes))

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _session(self, session_id: str) -> _SessionProgress:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def progress_for(self, session_id: str) -> list[StepProgress]:
        """All StepProgress rows for a session in step order."""
        rows = self._session(session_id).rows.values()
        return sorted(rows, key=lambda r: r.step_number)

    def statuses(self, session_id: str) -> dict[StepName, StepStatus]:
        return {name: row.status for name, row in self._session(session_id).rows.items()}

    def drain_pending(self, session_id: str) -> list[StepProgress]:
        """Rows changed since the last drain, oldest first, for persistence."""
        session = self._sessions.get(session_id)
        if session is None:
            return []
        pending, session.pending = session.pending, []
        return pending

    def mark_submitted(self, session_id: str, submission_id: str) -> None:
        session = self._session(session_id)
        for name, row in list(session.rows.items()):
            self._store(session, replace(row, submission_id=submission_id))

    def snapshot(self, session_id: str) -> FlowAnalytics:
        """Recompute FlowAnalytics for a session. Safe to call at any time."""
        return self._analytics(self._session(session_id))

    def _analytics(self, session: _SessionProgress) -> FlowAnalytics:
        rows = dict(session.rows)
        submission_ids = {row.submission_id for row in rows.values() if row.submission_id}
        return compute_analytics(
            session.session_id,
            rows,
            self.catalog.tracked_steps(session.service_type),
            conversion_status=session.conversion_status,
            abandoned_at=session.abandoned_at,
            submission_id=next(iter(submission_ids), None),
            started_at=session.started_at,
            completed_at=session.completed_at,
            last_active_at=session.last_active_at,
            user_agent=session.user_agent,
            device_type=session.device_type,
        )

    # -------------------------------------------------------------------------
    # Rebuilding from storage
    # -------------------------------------------------------------------------

    def _rebuild(self, state: FlowState, rows: list[StepProgress]) -> _SessionProgress:
        latest = latest_by_step(rows)
        seen = [state.last_active_at]
        seen.extend(e.timestamp for row in latest for e in row.navigation_history)

        session = _SessionProgress(
            session_id=state.session_id,
            started_at=state.started_at,
            last_active_at=max(seen),
            rows={row.step_name: row for row in latest},
            service_type=state.service_type,
            user_agent=state.user_agent,
            device_type=state.device_type.value if state.device_type else None,
        )
        if state.is_abandoned:
            session.conversion_status = ConversionStatus.ABANDONED
            session.abandoned_at = state.current_step_name.value
        elif state.is_complete:
            session.conversion_status = ConversionStatus.COMPLETED
            confirmation = session.rows.get(StepName.CONFIRMATION)
            session.completed_at = confirmation.completed_at if confirmation else state.last_active_at
        return session

    def is_current(self, state: FlowState) -> bool:
        """False when this tracker never saw the session or another process moved it on since."""
        session = self._sessions.get(state.session_id)
        return session is not None and session.last_active_at >= state.last_active_at

    def restore(self, state: FlowState, rows: list[StepProgress]) -> None:
        """Replace what the tracker holds for a session with stored rows (oldest first)."""
        self._sessions[state.session_id] = self._rebuild(state, rows)

    def forget(self, session_id: str) -> None:
        """Drop a session, including rows not yet drained."""
        self._sessions.pop(session_id, None)

    def replay(self, state: FlowState, rows: list[StepProgress]) -> FlowAnalytics:
        """FlowAnalytics from stored rows without tracking the session."""
        return self._analytics(self._rebuild(state, rows))
