"""
Tests for step progress tracking and flow analytics.
"""

import pytest

from onboarding.engine import FlowEngine
from onboarding.errors import SessionNotFound
from onboarding.progress import ProgressTracker
from onboarding.state import ConversionStatus, NavigationAction, StepName, StepStatus


def _rows(tracker, session_id):
    return {row.step_name: row for row in tracker.progress_for(session_id)}


class TestStepProgress:

    def test_start_opens_first_step(self, engine, tracker):
        state = engine.start()
        rows = _rows(tracker, state.session_id)
        assert list(rows) == [StepName.SERVICE_SELECTION]
        assert rows[StepName.SERVICE_SELECTION].status is StepStatus.IN_PROGRESS

    def test_commit_completes_and_links_steps(self, engine, tracker):
        state = engine.start()
        engine.submit_step(state, "service_selection", {"serviceType": "web_app"})
        rows = _rows(tracker, state.session_id)
        selection = rows[StepName.SERVICE_SELECTION]
        assert selection.status is StepStatus.COMPLETED
        assert selection.next_step == "basic_info"
        assert selection.user_input == {"serviceType": "web_app"}
        assert rows[StepName.BASIC_INFO].previous_step == "service_selection"
        assert rows[StepName.BASIC_INFO].status is StepStatus.IN_PROGRESS

    def test_time_spent_from_clock(self, engine, tracker, clock):
        state = engine.start()
        clock.advance(30)
        engine.submit_step(state, "service_selection", {"serviceType": "web_app"})
        assert _rows(tracker, state.session_id)[StepName.SERVICE_SELECTION].time_spent == 30_000

    def test_client_duration_wins(self, engine, tracker, clock):
        state = engine.start()
        clock.advance(30)
        engine.submit_step(state, "service_selection", {"serviceType": "web_app"}, duration_ms=12_500)
        assert _rows(tracker, state.session_id)[StepName.SERVICE_SELECTION].time_spent == 12_500

    def test_failed_submission_marks_error(self, engine, tracker, clock, basic_info_data):
        state = engine.start()
        state = engine.submit_step(state, "service_selection", {"serviceType": "web_app"}).state
        clock.advance(10)
        engine.submit_step(state, "basic_info", {**basic_info_data, "contactEmail": "nope"})

        row = _rows(tracker, state.session_id)[StepName.BASIC_INFO]
        assert row.status is StepStatus.ERROR
        assert row.attempt_count == 2
        assert row.validation_errors == ("contactEmail: Invalid email address",)
        assert row.navigation_history[-1].action is NavigationAction.RETRY
        assert row.time_spent == 10_000

        clock.advance(5)
        engine.submit_step(state, "basic_info", basic_info_data)
        row = _rows(tracker, state.session_id)[StepName.BASIC_INFO]
        assert row.status is StepStatus.COMPLETED
        assert row.time_spent == 15_000
        # Earlier events are kept
        assert [e.action for e in row.navigation_history] == [NavigationAction.RETRY, NavigationAction.NEXT]

    def test_revisit_counts_attempt(self, engine, tracker, basic_info_data):
        state = engine.start()
        state = engine.submit_step(state, "service_selection", {"serviceType": "web_app"}).state
        state = engine.submit_step(state, "basic_info", basic_info_data).state
        engine.back(state)
        row = _rows(tracker, state.session_id)[StepName.BASIC_INFO]
        assert row.attempt_count == 2
        assert row.previous_step == "service_requirements"
        assert row.status is StepStatus.IN_PROGRESS

    def test_pending_rows_drain_once(self, engine, tracker):
        state = engine.start()
        assert len(tracker.drain_pending(state.session_id)) == 1
        assert tracker.drain_pending(state.session_id) == []

    def test_mark_submitted(self, walk_to_review, tracker):
        state = walk_to_review()
        tracker.drain_pending(state.session_id)
        tracker.mark_submitted(state.session_id, "sub-9")
        pending = tracker.drain_pending(state.session_id)
        assert pending
        assert {row.submission_id for row in pending} == {"sub-9"}

    def test_row_shape(self, engine, tracker):
        state = engine.start()
        row = tracker.progress_for(state.session_id)[0].to_dict()
        assert row["step_id"] == "step-service-selection"
        assert row["status"] == "in_progress"
        assert "previous_step_id" in row
        assert "next_step_id" in row

    def test_unknown_session(self, tracker):
        with pytest.raises(SessionNotFound):
            tracker.progress_for("missing")


class TestAnalytics:

    def test_abandoned_at_basic_info(self, engine, tracker):
        state = engine.start()
        state = engine.submit_step(state, "service_selection", {"serviceType": "landing_page"}).state
        engine.abandon(state)

        analytics = tracker.snapshot(state.session_id)
        assert analytics.conversion_status is ConversionStatus.ABANDONED
        assert analytics.abandoned_at == "basic_info"

    def test_weighted_completion_rate(self, engine, tracker, basic_info_data):
        state = engine.start()
        state = engine.submit_step(state, "service_selection", {"serviceType": "landing_page"}).state
        engine.submit_step(state, "basic_info", basic_info_data)

        analytics = tracker.snapshot(state.session_id)
        assert analytics.total_steps == 4
        assert analytics.completed_steps == 2
        # (1 + 2) of 7
        assert analytics.completion_rate == 42
        assert analytics.conversion_status is ConversionStatus.IN_PROGRESS

    def test_completed_flow(self, walk_to_review, engine, tracker):
        state = walk_to_review()
        engine.complete(state, "sub-1")

        analytics = tracker.snapshot(state.session_id)
        assert analytics.completion_rate == 100
        assert analytics.completed_steps == analytics.total_steps == 4
        assert analytics.conversion_status is ConversionStatus.COMPLETED
        assert analytics.completed_at is not None

    def test_timing_metrics(self, engine, tracker, clock, basic_info_data):
        state = engine.start()
        clock.advance(20)
        state = engine.submit_step(state, "service_selection", {"serviceType": "landing_page"}).state
        clock.advance(100)
        engine.submit_step(state, "basic_info", basic_info_data)

        analytics = tracker.snapshot(state.session_id)
        assert analytics.total_time_spent == 120_000
        assert analytics.average_step_time == 60_000
        assert analytics.fastest_step == "service_selection"
        assert analytics.slowest_step == "basic_info"

    def test_back_and_retry_counts(self, engine, tracker, basic_info_data, landing_requirements):
        state = engine.start()
        state = engine.submit_step(state, "service_selection", {"serviceType": "landing_page"}).state
        state = engine.submit_step(state, "basic_info", basic_info_data).state
        engine.submit_step(state, "service_requirements", {**landing_requirements, "sections": []})
        engine.submit_step(state, "service_requirements", {})
        engine.back(state)

        analytics = tracker.snapshot(state.session_id)
        assert analytics.retry_count == 2
        assert analytics.back_navigation_count == 1
        assert analytics.error_count == 1

    def test_counts_never_exceed_total(self, engine, tracker, basic_info_data, landing_requirements, review_data):
        sequences = [
            [("submit", "service_selection", {"serviceType": "landing_page"}), ("abandon",)],
            [
                ("submit", "service_selection", {"serviceType": "landing_page"}),
                ("submit", "basic_info", {}),
                ("submit", "basic_info", basic_info_data),
                ("submit", "service_requirements", {"sections": []}),
                ("back",),
                ("next",),
                ("submit", "service_requirements", landing_requirements),
                ("submit", "review", {"agreeToTerms": False}),
                ("submit", "review", review_data),
                ("back",),
                ("skip",),
            ],
        ]
        for sequence in sequences:
            state = engine.start()
            for action, *args in sequence:
                if action == "submit":
                    state = engine.submit_step(state, args[0], args[1]).state
                elif action == "abandon":
                    state = engine.abandon(state).state
                else:
                    state = engine.navigate(state, action).state

                analytics = tracker.snapshot(state.session_id)
                assert (
                    analytics.completed_steps + analytics.skipped_steps + analytics.error_steps
                    <= analytics.total_steps
                )


class TestRestore:

    def _walk(self, engine, basic_info_data, landing_requirements):
        state = engine.start()
        state = engine.submit_step(state, "service_selection", {"serviceType": "landing_page"}).state
        state = engine.submit_step(state, "basic_info", basic_info_data).state
        engine.submit_step(state, "service_requirements", {})
        return engine.navigate(state, "back").state

    def test_replay_matches_snapshot(self, engine, tracker, basic_info_data, landing_requirements):
        state = self._walk(engine, basic_info_data, landing_requirements)
        rows = tracker.drain_pending(state.session_id)

        live = tracker.snapshot(state.session_id)
        replayed = ProgressTracker().replay(state, rows)
        assert replayed.completed_steps == live.completed_steps
        assert replayed.completion_rate == live.completion_rate
        assert replayed.retry_count == live.retry_count == 1
        assert replayed.back_navigation_count == live.back_navigation_count == 1
        assert replayed.conversion_status is ConversionStatus.IN_PROGRESS

    def test_restore_tracks_session(self, engine, tracker, basic_info_data, landing_requirements):
        state = self._walk(engine, basic_info_data, landing_requirements)
        rows = tracker.drain_pending(state.session_id)

        other = ProgressTracker()
        assert not other.is_current(state)
        other.restore(state, rows)
        assert other.is_current(state)
        assert other.statuses(state.session_id) == tracker.statuses(state.session_id)

    def test_stale_after_another_process_moves_on(self, engine, tracker, clock):
        state = engine.start()
        assert tracker.is_current(state)
        clock.advance(5)
        newer = FlowEngine(clock=clock).submit_step(state, "service_selection", {"serviceType": "web_app"}).state
        assert not tracker.is_current(newer)

    def test_abandoned_replay(self, engine, tracker):
        state = engine.start()
        state = engine.abandon(state).state
        analytics = ProgressTracker().replay(state, tracker.drain_pending(state.session_id))
        assert analytics.conversion_status is ConversionStatus.ABANDONED
        assert analytics.abandoned_at == "service_selection"

    def test_forget(self, engine, tracker):
        state = engine.start()
        tracker.forget(state.session_id)
        assert len(tracker) == 0
        assert not tracker.has_session(state.session_id)
        tracker.forget(state.session_id)
