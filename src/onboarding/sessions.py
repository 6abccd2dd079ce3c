"""
Onboarding session storage.

FlowStates live in a SessionStore between requests, so any worker can pick
up a session and a restart does not lose it. Once a flow is submitted or
abandoned its final state moves out of the live store into an archive,
which still answers reads (resume screens, analytics, a repeated finalize)
but no longer grows the live set.
"""

import logging
from typing import Protocol, runtime_checkable

from .errors import SessionNotFound
from .repository import run_query
from .state import FlowState

logger = logging.getLogger(__name__)

SESSION_TABLE = "onboarding_sessions"
SESSION_ARCHIVE_TABLE = "onboarding_session_archive"


@runtime_checkable
class SessionStore(Protocol):
    """Storage for FlowStates keyed by session id."""

    async def get(self, session_id: str) -> FlowState:
        """Live or archived state. Raises SessionNotFound."""
        ...

    async def save(self, state: FlowState) -> None:
        ...

    async def close(self, state: FlowState) -> None:
        """Archive a submitted or abandoned session."""
        ...


class InMemorySessionStore:
    """Process-local store for development and tests. Archived states are kept serialized."""

    def __init__(self):
        self._live: dict[str, FlowState] = {}
        self._archive: dict[str, dict] = {}

    def __len__(self) -> int:
        return len(self._live)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._live

    @property
    def archived(self) -> int:
        return len(self._archive)

    async def get(self, session_id: str) -> FlowState:
        state = self._live.get(session_id)
        if state is not None:
            return state
        archived = self._archive.get(session_id)
        if archived is None:
            raise SessionNotFound(session_id)
        return FlowState.from_dict(archived)

    async def save(self, state: FlowState) -> None:
        self._live[state.session_id] = state

    async def close(self, state: FlowState) -> None:
        self._archive[state.session_id] = state.to_dict()
        self._live.pop(state.session_id, None)


class SupabaseSessionStore:
    """
    Sessions in the onboarding_sessions table, one row per live session.

    Closing copies the row into onboarding_session_archive and deletes the
    live row, in that order.
    """

    def __init__(self, client):
        self.client = client

    async def get(self, session_id: str) -> FlowState:
        for table in (SESSION_TABLE, SESSION_ARCHIVE_TABLE):
            data = await run_query(
                self.client.table(table).select("state").eq("session_id", session_id).limit(1)
            )
            if data:
                return FlowState.from_dict(data[0]["state"])
        raise SessionNotFound(session_id)

    async def save(self, state: FlowState) -> None:
        await run_query(self.client.table(SESSION_TABLE).upsert({
            "session_id": state.session_id,
            "user_id": state.user_id,
            "state": state.to_dict(),
            "current_step": state.current_step_name.value,
            "updated_at": state.last_active_at.isoformat(),
        }))

    async def close(self, state: FlowState) -> None:
        await run_query(self.client.table(SESSION_ARCHIVE_TABLE).upsert({
            "session_id": state.session_id,
            "user_id": state.user_id,
            "submission_id": state.submission_id,
            "outcome": "completed" if state.is_complete else "abandoned",
            "state": state.to_dict(),
            "closed_at": state.last_active_at.isoformat(),
        }))
        await run_query(self.client.table(SESSION_TABLE).delete().eq("session_id", state.session_id))
        logger.info(f"Session {state.session_id} archived")
