"""
Two-minute alert poller.

Re-derives, from task data the client already holds, whether any running
task is inside its last two minutes, and raises a local alert at most once
per cooldown. It never talks to the server and never records that a
notification was sent; that belongs to the threshold sweep.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Mapping, Optional

from taskflow.enums import TaskStatus
from taskflow.timer import TimerState, compute_timer, utcnow

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 10
DEFAULT_COOLDOWN_SECONDS = 60


@dataclass(frozen=True)
class TaskSnapshot:
    id: int
    title: str
    status: TaskStatus
    started_at: Optional[datetime] = None
    estimated_time: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Mapping) -> "TaskSnapshot":
        """Build a snapshot from a task as returned by the tasks API."""
        started_at = payload.get("started_at")
        if isinstance(started_at, str):
            started_at = datetime.fromisoformat(started_at.replace("Z", "+00:00"))
            if started_at.tzinfo is not None:
                started_at = started_at.astimezone(timezone.utc).replace(tzinfo=None)
        return cls(
            id=payload["id"],
            title=payload.get("title", ""),
            status=TaskStatus(payload["status"]),
            started_at=started_at,
            estimated_time=payload.get("estimated_time"),
        )

    def timer(self, now: Optional[datetime] = None) -> Optional[TimerState]:
        if self.status != TaskStatus.in_progress:
            return None
        return compute_timer(self.started_at, self.estimated_time, now)


def two_minute_tasks(tasks: Iterable[TaskSnapshot], now: Optional[datetime] = None) -> List[TaskSnapshot]:
    now = now or utcnow()
    hits = []
    for task in tasks:
        state = task.timer(now)
        if state is not None and state.two_minute_warning:
            hits.append(task)
    return hits


class TwoMinuteAlertPoller:
    def __init__(
        self,
        tasks_source: Callable[[], Iterable[TaskSnapshot]],
        on_alert: Callable[[List[TaskSnapshot]], None],
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.tasks_source = tasks_source
        self.on_alert = on_alert
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self.clock = clock
        self.last_alert_at: Optional[datetime] = None
        self.job = None

    def tick(self) -> List[TaskSnapshot]:
        """
        One poll. Returns the tasks inside the two-minute window; the alert
        callback fires only if the cooldown since the last alert has passed.
        """
        now = self.clock()
        hits = two_minute_tasks(self.tasks_source(), now)
        if not hits:
            return hits

        if self.last_alert_at is None or now - self.last_alert_at >= self.cooldown:
            self.last_alert_at = now
            logger.info(f"Two-minute alert for {len(hits)} task(s)")
            self.on_alert(hits)
        return hits

    def attach(self, scheduler, interval_seconds: int = DEFAULT_INTERVAL_SECONDS):
        """Register tick as an interval job on an APScheduler scheduler."""
        self.job = scheduler.add_job(
            self.tick,
            "interval",
            seconds=interval_seconds,
            id="two_minute_alert_poller",
            replace_existing=True,
        )
        return self.job

    def detach(self) -> None:
        if self.job is not None:
            self.job.remove()
            self.job = None
