"""
Notification ledger and the task threshold sweep.

Every notification goes through upsert_if_absent, which suppresses a new
row when the same user already received an identical title and message in
the last hour. The sweep recomputes thresholds on each call; the ledger's
window is what keeps repeated calls from piling up duplicates.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskflow import mailer
from taskflow.enums import NotificationType, TaskStatus
from taskflow.metrics import EMAIL_SEND_FAILURES, NOTIFICATIONS_CREATED, NOTIFICATIONS_DEDUPED, SWEEP_TASK_FAILURES
from taskflow.models import Notification, User
from taskflow.store import list_tasks_for_user
from taskflow.timer import elapsed_minutes, utcnow

logger = logging.getLogger(__name__)

DEDUPE_WINDOW = timedelta(hours=1)
ALMOST_EXPIRED_MINUTES = 30
TIME_EXPIRED_EVERY_MINUTES = 30
OVERDUE_AFTER = timedelta(hours=24)
FORGOTTEN_AFTER = timedelta(days=3)

SWEEP_KINDS = ("almost_expired", "time_expired", "half_time", "overdue", "forgotten")


@dataclass(frozen=True)
class NotificationTemplate:
    type: NotificationType
    title: str
    render: Callable[[str, dict], str]


def _started_message(title: str, extra: dict) -> str:
    message = f'Task "{title}" was started.'
    if extra.get("estimated_time"):
        message += f" Estimated time: {extra['estimated_time']} minutes."
    return message


def _completed_message(title: str, extra: dict) -> str:
    message = f'Task "{title}" was completed!'
    if extra.get("time_spent"):
        message += f" Total time: {extra['time_spent'] // 60} minutes."
    return message


def _time_expired_message(title: str, extra: dict) -> str:
    message = f'Task "{title}" exceeded its estimated time!'
    if extra.get("exceeded_minutes"):
        message += f" Exceeded by {extra['exceeded_minutes']} minutes."
    return message


TEMPLATES: Dict[str, NotificationTemplate] = {
    "created": NotificationTemplate(
        NotificationType.success, "Task created",
        lambda t, x: f'Task "{t}" was created successfully.'),
    "updated": NotificationTemplate(
        NotificationType.info, "Task updated",
        lambda t, x: f'Task "{t}" was updated.'),
    "deleted": NotificationTemplate(
        NotificationType.warning, "Task deleted",
        lambda t, x: f'Task "{t}" was deleted.'),
    "started": NotificationTemplate(NotificationType.info, "Task started", _started_message),
    "completed": NotificationTemplate(NotificationType.success, "Task completed", _completed_message),
    "almost_expired": NotificationTemplate(
        NotificationType.warning, "Task about to expire",
        lambda t, x: f'Task "{t}" is about to expire! {x.get("remaining_minutes") or ALMOST_EXPIRED_MINUTES} minutes left.'),
    "time_expired": NotificationTemplate(NotificationType.error, "Task time expired", _time_expired_message),
    "half_time": NotificationTemplate(
        NotificationType.info, "Task half time",
        lambda t, x: f'Task "{t}" has used half of its estimated time.'),
    "overdue": NotificationTemplate(
        NotificationType.warning, "Task overdue",
        lambda t, x: f'Task "{t}" has been in progress for more than 24 hours.'),
    "forgotten": NotificationTemplate(
        NotificationType.info, "Task forgotten",
        lambda t, x: f'Task "{t}" has been pending for more than 3 days.'),
}


# =========================================================
# LEDGER
# =========================================================
def find_recent(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    within: timedelta = DEDUPE_WINDOW,
    now: Optional[datetime] = None,
) -> Optional[Notification]:
    cutoff = (now or utcnow()) - within
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.title == title,
        Notification.message == message,
        Notification.created_at >= cutoff
    ).first()


def create(
    db: Session,
    user_id: int,
    type: NotificationType,
    title: str,
    message: str,
    task_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        task_id=task_id,
        type=type,
        title=title,
        message=message,
        read=False,
        created_at=now or utcnow(),
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def owner_lock(db: Session, user_id: int):
    """SELECT ... FOR UPDATE on the user row that owns the notifications."""
    return db.query(User.id).filter(User.id == user_id).with_for_update()


def upsert_if_absent(
    db: Session,
    user_id: int,
    type: NotificationType,
    title: str,
    message: str,
    task_id: Optional[int] = None,
    window: timedelta = DEDUPE_WINDOW,
    now: Optional[datetime] = None,
) -> Tuple[Notification, bool]:
    """
    Insert a notification unless an identical one exists inside the window.

    Returns (notification, created). The owning user row is locked first so
    that, on backends with row locks, the lookup and the insert of two
    concurrent callers for the same user cannot interleave. SQLite ignores
    the lock and relies on its single writer.
    """
    now = now or utcnow()
    owner_lock(db, user_id).first()

    existing = find_recent(db, user_id, title, message, within=window, now=now)
    if existing:
        # Release the lock taken above.
        db.commit()
        return existing, False

    return create(db, user_id, type, title, message, task_id=task_id, now=now), True


def _send_email_for(db: Session, user_id: int, title: str, message: str) -> None:
    """Email a stored notification. The row is already committed, so errors stop here."""
    try:
        user = db.query(User).filter(User.id == user_id).first()
    except SQLAlchemyError as e:
        db.rollback()
        EMAIL_SEND_FAILURES.inc()
        logger.error(f"Could not load user {user_id} to email '{title}': {e}")
        return
    if not user or not user.email:
        return
    mailer.send_notification_email(user.email, title, message)


def create_notification(
    db: Session,
    user_id: int,
    type: NotificationType,
    title: str,
    message: str,
    task_id: Optional[int] = None,
    send_email: bool = True,
    now: Optional[datetime] = None,
    kind: str = "system",
) -> Tuple[Notification, bool]:
    notification, created = upsert_if_absent(db, user_id, type, title, message, task_id=task_id, now=now)
    if not created:
        NOTIFICATIONS_DEDUPED.labels(kind=kind).inc()
        logger.debug(f"Deduplicated '{title}' notification for user {user_id}")
        return notification, False

    NOTIFICATIONS_CREATED.labels(kind=kind).inc()
    if send_email:
        _send_email_for(db, user_id, title, message)
    return notification, True


def notify_task_event(
    db: Session,
    user_id: int,
    kind: str,
    task_title: str,
    task_id: Optional[int] = None,
    now: Optional[datetime] = None,
    send_email: bool = True,
    **extra,
) -> Tuple[Notification, bool]:
    template = TEMPLATES.get(kind)
    if template is None:
        raise ValueError(f"Unknown task notification kind: {kind}")

    return create_notification(
        db,
        user_id,
        template.type,
        template.title,
        template.render(task_title, extra),
        task_id=task_id,
        send_email=send_email,
        now=now,
        kind=kind,
    )


# =========================================================
# THRESHOLD SWEEP
# =========================================================
def evaluate_time_thresholds(started_at: datetime, estimated_time: int, now: datetime) -> List[Tuple[str, dict]]:
    """Timer rules that apply to one in-progress task at `now`, as (kind, extra) pairs."""
    elapsed = elapsed_minutes(started_at, now)
    remaining = estimated_time - elapsed
    hits: List[Tuple[str, dict]] = []

    if 0 < remaining <= ALMOST_EXPIRED_MINUTES:
        hits.append(("almost_expired", {"remaining_minutes": remaining}))

    if elapsed > estimated_time:
        exceeded = elapsed - estimated_time
        if exceeded % TIME_EXPIRED_EVERY_MINUTES == 0:
            hits.append(("time_expired", {"exceeded_minutes": exceeded}))

    half = estimated_time // 2
    if half <= elapsed < half + 1:
        hits.append(("half_time", {}))

    return hits


@dataclass(frozen=True)
class _TaskSnapshot:
    id: int
    title: str
    status: TaskStatus
    estimated_time: Optional[int]
    started_at: Optional[datetime]
    created_at: Optional[datetime]


def _snapshot(tasks) -> List[_TaskSnapshot]:
    return [
        _TaskSnapshot(t.id, t.title, t.status, t.estimated_time, t.started_at, t.created_at)
        for t in tasks
    ]


def check_task_time_notifications(db: Session, user_id: int, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Run the threshold sweep for one user.

    Returns how many notifications of each kind were newly created. A store
    failure while notifying one task is logged and rolled back; the
    remaining tasks are still evaluated.
    """
    now = now or utcnow()
    result = {kind: 0 for kind in SWEEP_KINDS}

    in_progress = _snapshot(list_tasks_for_user(db, user_id, TaskStatus.in_progress))
    pending = _snapshot(list_tasks_for_user(db, user_id, TaskStatus.pending))

    planned: List[Tuple[_TaskSnapshot, str, dict]] = []
    for task in in_progress:
        if task.started_at is None or not task.estimated_time or task.estimated_time <= 0:
            continue
        for kind, extra in evaluate_time_thresholds(task.started_at, task.estimated_time, now):
            planned.append((task, kind, extra))

    overdue_cutoff = now - OVERDUE_AFTER
    for task in in_progress:
        if task.started_at is not None and task.started_at < overdue_cutoff:
            planned.append((task, "overdue", {}))

    forgotten_cutoff = now - FORGOTTEN_AFTER
    for task in pending:
        if task.created_at is not None and task.created_at < forgotten_cutoff:
            planned.append((task, "forgotten", {}))

    for task, kind, extra in planned:
        try:
            _, created = notify_task_event(db, user_id, kind, task.title, task.id, now=now, **extra)
        except SQLAlchemyError as e:
            db.rollback()
            SWEEP_TASK_FAILURES.inc()
            logger.error(f"Failed to write '{kind}' notification for task {task.id} (user {user_id}): {e}")
            continue
        if created:
            result[kind] += 1

    logger.info(f"Threshold sweep for user {user_id}: {result}")
    return result


def check_overdue_tasks(db: Session, user_id: int, now: Optional[datetime] = None) -> Dict[str, int]:
    return check_task_time_notifications(db, user_id, now=now)
