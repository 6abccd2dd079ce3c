"""
Flow Analytics.

Aggregate metrics derived from a session's StepProgress rows. Nothing here is
stored independently; a snapshot is recomputed from the rows on every read.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Mapping

from .state import ConversionStatus, NavigationAction, StepName, StepStatus

if TYPE_CHECKING:
    from .progress import StepProgress
    from .steps import StepConfig


@dataclass(frozen=True)
class FlowAnalytics:
    session_id: str
    total_steps: int
    completed_steps: int = 0
    skipped_steps: int = 0
    error_steps: int = 0

    total_time_spent: int = 0          # ms
    average_step_time: int = 0         # ms, over steps with recorded time
    fastest_step: str | None = None
    slowest_step: str | None = None

    completion_rate: int = 0           # 0-100, weighted by progress_weight
    abandoned_at: str | None = None
    conversion_status: ConversionStatus = ConversionStatus.IN_PROGRESS

    back_navigation_count: int = 0
    error_count: int = 0
    retry_count: int = 0

    submission_id: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_active_at: datetime | None = None
    user_agent: str | None = None
    device_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "submission_id": self.submission_id,
            "total_steps": self.total_steps,
            "completed_steps": self.completed_steps,
            "skipped_steps": self.skipped_steps,
            "error_steps": self.error_steps,
            "total_time_spent": self.total_time_spent,
            "average_step_time": self.average_step_time,
            "fastest_step": self.fastest_step,
            "slowest_step": self.slowest_step,
            "completion_rate": self.completion_rate,
            "abandoned_at": self.abandoned_at,
            "conversion_status": self.conversion_status.value,
            "back_navigation_count": self.back_navigation_count,
            "error_count": self.error_count,
            "retry_count": self.retry_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "last_active_at": self.last_active_at.isoformat() if self.last_active_at else None,
            "user_agent": self.user_agent,
            "device_type": self.device_type,
        }


def _count_actions(rows: Iterable["StepProgress"], action: NavigationAction) -> int:
    return sum(1 for row in rows for event in row.navigation_history if event.action is action)


def compute_analytics(
    session_id: str,
    rows: Mapping[StepName, "StepProgress"],
    tracked_steps: list["StepConfig"],
    *,
    conversion_status: ConversionStatus = ConversionStatus.IN_PROGRESS,
    abandoned_at: str | None = None,
    **context,
) -> FlowAnalytics:
    """
    Fold StepProgress rows into a FlowAnalytics snapshot.

    Only steps in `tracked_steps` count toward totals and weighting, so the
    status counts can never exceed total_steps.
    """
    tracked_names = {c.step_name for c in tracked_steps}
    counted = [row for name, row in rows.items() if name in tracked_names]

    by_status = {status: 0 for status in StepStatus}
    for row in counted:
        by_status[row.status] += 1

    timed = [row for row in counted if row.time_spent > 0]
    total_time = sum(row.time_spent for row in counted)

    total_weight = sum(c.progress_weight for c in tracked_steps)
    completed_weight = sum(
        c.progress_weight for c in tracked_steps
        if c.step_name in rows and rows[c.step_name].status is StepStatus.COMPLETED
    )

    all_rows = list(rows.values())

    return FlowAnalytics(
        session_id=session_id,
        total_steps=len(tracked_steps),
        completed_steps=by_status[StepStatus.COMPLETED],
        skipped_steps=by_status[StepStatus.SKIPPED],
        error_steps=by_status[StepStatus.ERROR],
        total_time_spent=total_time,
        average_step_time=total_time // len(timed) if timed else 0,
        fastest_step=min(timed, key=lambda r: r.time_spent).step_name.value if timed else None,
        slowest_step=max(timed, key=lambda r: r.time_spent).step_name.value if timed else None,
        completion_rate=(100 * completed_weight) // total_weight if total_weight else 0,
        abandoned_at=abandoned_at,
        conversion_status=conversion_status,
        back_navigation_count=_count_actions(all_rows, NavigationAction.BACK),
        error_count=sum(1 for row in counted if row.validation_errors),
        retry_count=_count_actions(all_rows, NavigationAction.RETRY),
        **context,
    )
