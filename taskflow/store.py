from typing import List, Optional
from sqlalchemy import desc
from sqlalchemy.orm import Session
from taskflow.enums import TaskStatus
from taskflow.models import Task

# =========================================================
# TASK RECORD STORE
# =========================================================
def list_tasks_for_user(db: Session, user_id: int, status: Optional[TaskStatus] = None) -> List[Task]:
    """Tasks owned by a user, newest first, optionally filtered by status."""
    query = db.query(Task).filter(Task.user_id == user_id)
    if status is not None:
        query = query.filter(Task.status == status)
    return query.order_by(desc(Task.created_at), desc(Task.id)).all()

def get_task_for_user(db: Session, user_id: int, task_id: int) -> Optional[Task]:
    return db.query(Task).filter(
        Task.id == task_id,
        Task.user_id == user_id  # Owner isolation
    ).first()
