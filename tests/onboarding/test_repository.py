"""
Tests for submission repositories.
"""

from unittest.mock import MagicMock

import pytest

from onboarding.errors import PersistenceFailure
from onboarding.repository import (
    STEP_PROGRESS_TABLE,
    SUBMISSION_TABLE,
    InMemoryRepository,
    SubmissionRepository,
    SupabaseRepository,
)
from onboarding.progress import latest_by_step
from onboarding.submission import Submission


@pytest.fixture
def submission():
    return Submission(
        id="sub-1",
        project_name="Acme Site",
        email="a@acme.com",
        name="Acme",
        service_type="web_app",
        service_specific_data={"serviceType": "web_app", "requirements": {"features": ["auth"]}},
    )


class TestInMemoryRepository:

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryRepository(), SubmissionRepository)
        assert isinstance(SupabaseRepository(MagicMock()), SubmissionRepository)

    def test_insert_and_get(self, run, submission):
        repo = InMemoryRepository()
        run(repo.insert_submission(submission))
        assert run(repo.get_submission("sub-1")) == submission
        assert run(repo.get_submission("sub-2")) is None

    def test_update(self, run, submission):
        repo = InMemoryRepository()
        run(repo.insert_submission(submission))
        updated = run(repo.update_submission("sub-1", {"status": "reviewed", "priority": "high"}))
        assert updated.status == "reviewed"
        assert updated.priority == "high"
        assert updated.service_specific_data == submission.service_specific_data

    def test_update_missing(self, run):
        with pytest.raises(PersistenceFailure):
            run(InMemoryRepository().update_submission("nope", {"status": "reviewed"}))

    def test_step_progress_round_trip(self, run, walk_to_review, tracker):
        state = walk_to_review()
        repo = InMemoryRepository()
        run(repo.append_step_progress(tracker.drain_pending(state.session_id)))
        run(repo.append_step_progress(tracker.drain_pending("other-session")))

        stored = run(repo.list_step_progress(state.session_id))
        assert latest_by_step(stored) == tracker.progress_for(state.session_id)
        assert run(repo.list_step_progress("other-session")) == []


class TestSupabaseRepository:

    def test_insert_upserts_row(self, run, mock_supabase, submission):
        repo = SupabaseRepository(mock_supabase)
        result = run(repo.insert_submission(submission))

        mock_supabase.table.assert_called_with(SUBMISSION_TABLE)
        row = mock_supabase.table.return_value.upsert.call_args[0][0]
        assert row["id"] == "sub-1"
        assert row["project_name"] == "Acme Site"
        assert result == submission

    def test_get_parses_row(self, run, mock_supabase, submission):
        mock_supabase.table.return_value.execute.return_value = MagicMock(data=[submission.to_row()])
        fetched = run(SupabaseRepository(mock_supabase).get_submission("sub-1"))
        assert fetched.service_specific_data["requirements"] == {"features": ["auth"]}

    def test_client_error_becomes_persistence_failure(self, run, mock_supabase, submission):
        mock_supabase.table.return_value.execute.side_effect = RuntimeError("connection refused")
        with pytest.raises(PersistenceFailure):
            run(SupabaseRepository(mock_supabase).insert_submission(submission))

    def test_append_step_progress(self, run, mock_supabase, engine, tracker):
        state = engine.start()
        rows = tracker.drain_pending(state.session_id)
        run(SupabaseRepository(mock_supabase).append_step_progress(rows))
        mock_supabase.table.assert_called_with(STEP_PROGRESS_TABLE)
        inserted = mock_supabase.table.return_value.insert.call_args[0][0]
        assert inserted[0]["step_name"] == "service_selection"

    def test_append_nothing(self, run, mock_supabase):
        run(SupabaseRepository(mock_supabase).append_step_progress([]))
        mock_supabase.table.assert_not_called()

    def test_list_step_progress(self, run, mock_supabase, engine, tracker):
        state = engine.start()
        state = engine.submit_step(state, "service_selection", {"serviceType": "web_app"}).state
        stored_rows = [{"id": i, "recorded_at": "2025-03-01T09:00:00+00:00", **row.to_dict()}
                       for i, row in enumerate(tracker.drain_pending(state.session_id), start=1)]
        mock_supabase.table.return_value.execute.return_value = MagicMock(data=stored_rows)

        rows = run(SupabaseRepository(mock_supabase).list_step_progress(state.session_id))

        mock_supabase.table.return_value.eq.assert_called_with("session_id", state.session_id)
        mock_supabase.table.return_value.order.assert_called_with("id")
        assert latest_by_step(rows) == tracker.progress_for(state.session_id)
