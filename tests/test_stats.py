from datetime import datetime
from taskflow.enums import TaskStatus
from taskflow.models import Task
from taskflow.stats import productivity_stats


def make(task_id, status, estimated_time=None, time_spent=0, completed_at=None):
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        status=status,
        estimated_time=estimated_time,
        time_spent=time_spent,
        completed_at=completed_at,
    )


def test_productivity_stats():
    tasks = [
        make(1, TaskStatus.pending, estimated_time=30),
        make(2, TaskStatus.in_progress, estimated_time=60, time_spent=120),
        make(3, TaskStatus.completed, estimated_time=10, time_spent=600, completed_at=datetime(2024, 5, 1, 10, 0)),
        make(4, TaskStatus.completed, completed_at=datetime(2024, 4, 30, 9, 0)),
    ]

    stats = productivity_stats(tasks, year=2024, month=5)

    assert stats["total"] == 4
    assert stats["pending"] == 1
    assert stats["in_progress"] == 1
    assert stats["completed"] == 2
    assert stats["completion_rate"] == 50.0
    assert stats["total_estimated_minutes"] == 100
    assert stats["average_estimated_minutes"] == 25.0
    assert stats["total_time_spent_seconds"] == 720
    assert [t["id"] for t in stats["top_estimated"]] == [2, 1, 3]
    assert stats["completions_by_date"] == {"2024-04-30": 1, "2024-05-01": 1}
    assert stats["month"] == {"year": 2024, "month": 5, "completed": 1}


def test_productivity_stats_empty():
    stats = productivity_stats([])
    assert stats["total"] == 0
    assert stats["completion_rate"] == 0.0
    assert stats["average_estimated_minutes"] == 0.0
    assert stats["top_estimated"] == []
