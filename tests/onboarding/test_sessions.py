"""
Tests for session stores.
"""

from unittest.mock import MagicMock

import pytest

from onboarding.errors import SessionNotFound
from onboarding.sessions import (
    SESSION_ARCHIVE_TABLE,
    SESSION_TABLE,
    InMemorySessionStore,
    SessionStore,
    SupabaseSessionStore,
)


class TestInMemorySessionStore:

    def test_satisfies_protocol(self):
        assert isinstance(InMemorySessionStore(), SessionStore)
        assert isinstance(SupabaseSessionStore(MagicMock()), SessionStore)

    def test_save_and_get(self, run, engine):
        store = InMemorySessionStore()
        state = engine.start()
        run(store.save(state))
        assert run(store.get(state.session_id)) == state
        assert state.session_id in store

    def test_missing(self, run):
        with pytest.raises(SessionNotFound):
            run(InMemorySessionStore().get("nope"))

    def test_close_archives(self, run, engine):
        store = InMemorySessionStore()
        state = engine.start()
        run(store.save(state))
        closed = engine.abandon(state).state
        run(store.close(closed))

        assert len(store) == 0
        assert store.archived == 1
        restored = run(store.get(state.session_id))
        assert restored.is_abandoned
        assert restored.session_id == state.session_id


class TestSupabaseSessionStore:

    def test_save_upserts_live_row(self, run, engine, mock_supabase):
        state = engine.start()
        run(SupabaseSessionStore(mock_supabase).save(state))

        mock_supabase.table.assert_called_with(SESSION_TABLE)
        row = mock_supabase.table.return_value.upsert.call_args[0][0]
        assert row["session_id"] == state.session_id
        assert row["current_step"] == "service_selection"
        assert row["state"] == state.to_dict()

    def test_get_live(self, run, engine, mock_supabase):
        state = engine.start()
        mock_supabase.table.return_value.execute.return_value = MagicMock(data=[{"state": state.to_dict()}])
        assert run(SupabaseSessionStore(mock_supabase).get(state.session_id)) == state
        mock_supabase.table.assert_called_once_with(SESSION_TABLE)

    def test_get_falls_back_to_archive(self, run, engine, mock_supabase):
        state = engine.abandon(engine.start()).state
        mock_supabase.table.return_value.execute.side_effect = [
            MagicMock(data=[]),
            MagicMock(data=[{"state": state.to_dict()}]),
        ]
        restored = run(SupabaseSessionStore(mock_supabase).get(state.session_id))
        assert restored.is_abandoned
        assert [c.args[0] for c in mock_supabase.table.call_args_list] == [SESSION_TABLE, SESSION_ARCHIVE_TABLE]

    def test_get_missing(self, run, mock_supabase):
        with pytest.raises(SessionNotFound):
            run(SupabaseSessionStore(mock_supabase).get("nope"))

    def test_close_archives_then_deletes(self, run, engine, mock_supabase):
        state = engine.abandon(engine.start()).state
        run(SupabaseSessionStore(mock_supabase).close(state))

        table = mock_supabase.table.return_value
        assert [c.args[0] for c in mock_supabase.table.call_args_list] == [SESSION_ARCHIVE_TABLE, SESSION_TABLE]
        archived = table.upsert.call_args[0][0]
        assert archived["outcome"] == "abandoned"
        assert archived["submission_id"] is None
        table.delete.assert_called_once()
        table.eq.assert_called_with("session_id", state.session_id)
