"""
Submission persistence.

The onboarding core only talks to a SubmissionRepository. The in-memory
implementation backs development and tests; the Supabase one writes the
onboarding_submission and onboarding_step_progress tables.
"""

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable

from .errors import PersistenceFailure
from .progress import StepProgress
from .submission import Submission

logger = logging.getLogger(__name__)

SUBMISSION_TABLE = "onboarding_submission"
STEP_PROGRESS_TABLE = "onboarding_step_progress"


async def run_query(query) -> list[dict]:
    """
    Execute a Supabase query builder in a worker thread.

    The client is synchronous; running it off the event loop lets the
    caller's timeout cancel the wait. Failures become PersistenceFailure.
    """
    try:
        response = await asyncio.to_thread(query.execute)
    except Exception as e:
        logger.error(f"Supabase request failed: {e}")
        raise PersistenceFailure(str(e)) from e
    return response.data or []


@runtime_checkable
class SubmissionRepository(Protocol):
    """Storage for submissions and step progress rows."""

    async def insert_submission(self, submission: Submission) -> Submission:
        ...

    async def get_submission(self, submission_id: str) -> Submission | None:
        ...

    async def update_submission(self, submission_id: str, updates: dict[str, Any]) -> Submission:
        ...

    async def append_step_progress(self, rows: list[StepProgress]) -> None:
        ...

    async def list_step_progress(self, session_id: str) -> list[StepProgress]:
        """Every progress row stored for a session, oldest first."""
        ...


class InMemoryRepository:
    """Process-local repository. Insert is an upsert keyed by submission id."""

    def __init__(self):
        self.submissions: dict[str, Submission] = {}
        self.step_progress: list[dict] = []

    async def insert_submission(self, submission: Submission) -> Submission:
        self.submissions[submission.id] = submission
        return submission

    async def get_submission(self, submission_id: str) -> Submission | None:
        return self.submissions.get(submission_id)

    async def update_submission(self, submission_id: str, updates: dict[str, Any]) -> Submission:
        current = self.submissions.get(submission_id)
        if current is None:
            raise PersistenceFailure(f"Submission {submission_id} does not exist")
        row = {**current.to_row(), **updates}
        updated = Submission.from_row(row)
        self.submissions[submission_id] = updated
        return updated

    async def append_step_progress(self, rows: list[StepProgress]) -> None:
        self.step_progress.extend(row.to_dict() for row in rows)

    async def list_step_progress(self, session_id: str) -> list[StepProgress]:
        return [StepProgress.from_dict(row) for row in self.step_progress if row["session_id"] == session_id]


class SupabaseRepository:
    """Repository over a Supabase client."""

    def __init__(self, client):
        self.client = client

    async def insert_submission(self, submission: Submission) -> Submission:
        # Upsert so a retried finalize does not duplicate the record
        data = await run_query(self.client.table(SUBMISSION_TABLE).upsert(submission.to_row()))
        return Submission.from_row(data[0]) if data else submission

    async def get_submission(self, submission_id: str) -> Submission | None:
        data = await run_query(
            self.client.table(SUBMISSION_TABLE).select("*").eq("id", submission_id).limit(1)
        )
        return Submission.from_row(data[0]) if data else None

    async def update_submission(self, submission_id: str, updates: dict[str, Any]) -> Submission:
        data = await run_query(
            self.client.table(SUBMISSION_TABLE).update(updates).eq("id", submission_id)
        )
        if not data:
            raise PersistenceFailure(f"Submission {submission_id} does not exist")
        return Submission.from_row(data[0])

    async def append_step_progress(self, rows: list[StepProgress]) -> None:
        if not rows:
            return
        await run_query(self.client.table(STEP_PROGRESS_TABLE).insert([row.to_dict() for row in rows]))

    async def list_step_progress(self, session_id: str) -> list[StepProgress]:
        data = await run_query(
            self.client.table(STEP_PROGRESS_TABLE).select("*").eq("session_id", session_id).order("id")
        )
        return [StepProgress.from_dict(row) for row in data]
