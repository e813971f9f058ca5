from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from taskflow.enums import TaskStatus
from taskflow.timer import utcnow

TOP_ESTIMATED_LIMIT = 8


def productivity_stats(tasks: Iterable, year: Optional[int] = None, month: Optional[int] = None) -> dict:
    """Aggregates behind the dashboard charts. Estimates are in minutes."""
    tasks = list(tasks)
    today = utcnow()
    year = year or today.year
    month = month or today.month

    total = len(tasks)
    by_status = {status: 0 for status in TaskStatus}
    for task in tasks:
        by_status[task.status] += 1

    total_estimated = sum(t.estimated_time or 0 for t in tasks)
    completed = [t for t in tasks if t.status == TaskStatus.completed]

    completions_by_date: Dict[str, int] = defaultdict(int)
    for task in completed:
        if task.completed_at:
            completions_by_date[task.completed_at.strftime("%Y-%m-%d")] += 1

    top_estimated: List = sorted(
        (t for t in tasks if t.estimated_time and t.estimated_time > 0),
        key=lambda t: t.estimated_time,
        reverse=True,
    )[:TOP_ESTIMATED_LIMIT]

    return {
        "total": total,
        "pending": by_status[TaskStatus.pending],
        "in_progress": by_status[TaskStatus.in_progress],
        "completed": by_status[TaskStatus.completed],
        "completion_rate": round(len(completed) / total * 100, 1) if total else 0.0,
        "total_estimated_minutes": total_estimated,
        "average_estimated_minutes": round(total_estimated / total, 1) if total else 0.0,
        "total_time_spent_seconds": sum(t.time_spent or 0 for t in tasks),
        "top_estimated": [
            {"id": t.id, "title": t.title, "estimated_time": t.estimated_time} for t in top_estimated
        ],
        "completions_by_date": dict(sorted(completions_by_date.items())),
        "month": {
            "year": year,
            "month": month,
            "completed": sum(
                1 for t in completed
                if t.completed_at and t.completed_at.year == year and t.completed_at.month == month
            ),
        },
    }
