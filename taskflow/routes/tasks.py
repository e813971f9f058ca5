from typing import List, Optional
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from taskflow.dependencies import get_db, get_current_user
from taskflow.enums import TaskStatus, TimerAction
from taskflow.models import Task, User, Notification
from taskflow.notifications import notify_task_event, check_task_time_notifications
from taskflow.schemas import TaskCreate, TaskUpdate, TaskResponse, TaskTimeAction, CheckResponse, SuccessResponse
from taskflow.stats import productivity_stats
from taskflow.store import list_tasks_for_user, get_task_for_user
from taskflow.timer import utcnow, elapsed_seconds

logger = logging.getLogger(__name__)

router = APIRouter()

def _notify(db: Session, user_id: int, kind: str, task_title: str, task_id: Optional[int] = None, **extra) -> None:
    """Task-action notifications never fail the action that produced them."""
    try:
        notify_task_event(db, user_id, kind, task_title, task_id, **extra)
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create '{kind}' notification for task {task_id}: {e}")

def _get_owned_task(db: Session, current_user: User, task_id: int) -> Task:
    task = get_task_for_user(db, current_user.id, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task

# =========================================================
# THRESHOLD CHECKS
# =========================================================
def _run_check(db: Session, current_user: User):
    try:
        result = check_task_time_notifications(db, current_user.id)
    except Exception as e:
        db.rollback()
        logger.error(f"Threshold sweep failed for user {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Check failed")
    return {"success": True, "result": result}

@router.post("/check-time", response_model=CheckResponse)
def check_time(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _run_check(db, current_user)

@router.post("/check-overdue", response_model=CheckResponse)
def check_overdue(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _run_check(db, current_user)

@router.get("/stats")
def get_stats(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return productivity_stats(list_tasks_for_user(db, current_user.id), year=year, month=month)

# =========================================================
# TASK ENDPOINTS
# =========================================================
@router.get("/", response_model=List[TaskResponse])
def get_tasks(
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return list_tasks_for_user(db, current_user.id, status_filter)

@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = Task(
        **task_data.dict(),
        user_id=current_user.id,
        status=TaskStatus.pending,
        time_spent=0
    )
    db.add(task)
    db.commit()
    db.refresh(task)

    _notify(db, current_user.id, "created", task.title, task.id)
    db.refresh(task)
    return task

@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _get_owned_task(db, current_user, task_id)

@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    task_data: TaskUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _get_owned_task(db, current_user, task_id)

    update_data = task_data.dict(exclude_unset=True)
    if "title" in update_data and update_data["title"] is None:
        del update_data["title"]

    for key, value in update_data.items():
        setattr(task, key, value)

    task.updated_at = utcnow()
    db.commit()
    db.refresh(task)

    _notify(db, current_user.id, "updated", task.title, task.id)
    db.refresh(task)
    return task

@router.delete("/{task_id}", response_model=SuccessResponse)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _get_owned_task(db, current_user, task_id)
    title = task.title

    # Notify before the row goes; the notification outlives the task
    _notify(db, current_user.id, "deleted", title, task_id)

    db.query(Notification).filter(Notification.task_id == task_id).update(
        {Notification.task_id: None}, synchronize_session=False
    )
    db.delete(task)
    db.commit()
    logger.info(f"Deleted task {task_id} for user {current_user.id}")
    return {"success": True}

@router.post("/{task_id}/time", response_model=TaskResponse)
def task_time(
    task_id: int,
    body: TaskTimeAction,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    try:
        action = TimerAction(body.action)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid action")

    task = _get_owned_task(db, current_user, task_id)
    now = utcnow()

    if action == TimerAction.start:
        task.status = TaskStatus.in_progress
        task.started_at = now
        task.completed_at = None
        task.updated_at = now
        db.commit()
        _notify(db, current_user.id, "started", task.title, task.id, estimated_time=task.estimated_time)

    elif action == TimerAction.complete:
        if task.status == TaskStatus.completed:
            logger.info(f"Task {task_id} already completed, nothing to do")
            return task
        if task.status == TaskStatus.in_progress and task.started_at is not None:
            task.time_spent = (task.time_spent or 0) + elapsed_seconds(task.started_at, now)
        task.status = TaskStatus.completed
        task.completed_at = now
        task.updated_at = now
        db.commit()
        _notify(db, current_user.id, "completed", task.title, task.id, time_spent=task.time_spent)

    elif action == TimerAction.add:
        if body.seconds is None:
            raise HTTPException(status_code=400, detail="seconds is required for the add action")
        task.time_spent = (task.time_spent or 0) + body.seconds
        task.updated_at = now
        db.commit()

    db.refresh(task)
    return task
