"""
Task timer math.

Pure functions over a task's start instant and its estimate in minutes.
All instants are naive UTC datetimes, the same convention the models use.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

TWO_MINUTE_WARNING_SECONDS = 120
FINAL_PHASE_RATIO = 0.2
HALF_ELAPSED_RATIO = 0.5


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimerPhase(str, enum.Enum):
    expired = "expired"
    final_phase = "final_phase"
    half_elapsed = "half_elapsed"
    good_pace = "good_pace"


# Evaluated in order, first match wins.
_PHASE_RULES: List[Tuple[TimerPhase, Callable[[int, int], bool]]] = [
    (TimerPhase.expired, lambda remaining, total: remaining == 0),
    (TimerPhase.final_phase, lambda remaining, total: remaining <= total * FINAL_PHASE_RATIO),
    (TimerPhase.half_elapsed, lambda remaining, total: remaining <= total * HALF_ELAPSED_RATIO),
    (TimerPhase.good_pace, lambda remaining, total: True),
]


@dataclass(frozen=True)
class TimerState:
    elapsed_seconds: int
    total_seconds: int
    remaining_seconds: int
    phase: TimerPhase
    two_minute_warning: bool

    @property
    def remaining_display(self) -> str:
        return format_time_remaining(self.remaining_seconds)

    def as_dict(self) -> dict:
        return {
            "elapsed_seconds": self.elapsed_seconds,
            "total_seconds": self.total_seconds,
            "remaining_seconds": self.remaining_seconds,
            "remaining_display": self.remaining_display,
            "phase": self.phase.value,
            "two_minute_warning": self.two_minute_warning,
        }


def elapsed_seconds(started_at: datetime, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    return max(0, int((now - started_at).total_seconds()))


def elapsed_minutes(started_at: datetime, now: Optional[datetime] = None) -> int:
    return elapsed_seconds(started_at, now) // 60


def remaining_seconds(started_at: datetime, estimated_minutes: int, now: Optional[datetime] = None) -> int:
    return max(0, estimated_minutes * 60 - elapsed_seconds(started_at, now))


def classify_phase(remaining: int, total: int) -> TimerPhase:
    for phase, matches in _PHASE_RULES:
        if matches(remaining, total):
            return phase
    return TimerPhase.good_pace


def is_two_minute_warning(remaining: int) -> bool:
    return 0 < remaining <= TWO_MINUTE_WARNING_SECONDS


def compute_timer(
    started_at: Optional[datetime],
    estimated_minutes: Optional[int],
    now: Optional[datetime] = None,
) -> Optional[TimerState]:
    """
    Derive the timer state for a task.

    Returns None when the task has no timer: it was never started or has no
    positive estimate.
    """
    if started_at is None or not estimated_minutes or estimated_minutes <= 0:
        return None

    total = estimated_minutes * 60
    elapsed = elapsed_seconds(started_at, now)
    remaining = max(0, total - elapsed)
    return TimerState(
        elapsed_seconds=elapsed,
        total_seconds=total,
        remaining_seconds=remaining,
        phase=classify_phase(remaining, total),
        two_minute_warning=is_two_minute_warning(remaining),
    )


def format_time_remaining(seconds: int) -> str:
    if seconds <= 0:
        return "00:00:00"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_time_spent(seconds: int) -> str:
    hours, rest = divmod(max(0, int(seconds)), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
