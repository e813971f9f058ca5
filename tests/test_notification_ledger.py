from datetime import datetime, timedelta
import pytest
from prometheus_client import REGISTRY
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from taskflow import notifications
from taskflow.enums import NotificationType, TaskStatus
from taskflow.models import Notification, Task, User
from taskflow.notifications import (
    SWEEP_KINDS,
    check_task_time_notifications,
    create,
    create_notification,
    evaluate_time_thresholds,
    find_recent,
    notify_task_event,
    owner_lock,
    upsert_if_absent,
)

NOW = datetime(2024, 5, 1, 12, 0, 0)


def make_task(db, user, title, status=TaskStatus.in_progress, estimated_time=None, started_at=None, created_at=None):
    task = Task(
        user_id=user.id,
        title=title,
        status=status,
        estimated_time=estimated_time,
        started_at=started_at,
        created_at=created_at or NOW - timedelta(hours=1),
        time_spent=0,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def titles(db, user):
    return [n.title for n in db.query(Notification).filter(Notification.user_id == user.id).order_by(Notification.id)]


# =========================================================
# LEDGER
# =========================================================
def test_upsert_suppresses_duplicates_inside_window(db_session, user):
    first, created = upsert_if_absent(db_session, user.id, NotificationType.info, "Hello", "World", now=NOW)
    assert created is True

    again, created = upsert_if_absent(
        db_session, user.id, NotificationType.info, "Hello", "World", now=NOW + timedelta(minutes=59)
    )
    assert created is False
    assert again.id == first.id

    later, created = upsert_if_absent(
        db_session, user.id, NotificationType.info, "Hello", "World", now=NOW + timedelta(minutes=61)
    )
    assert created is True
    assert later.id != first.id


def test_dedupe_key_is_user_title_and_message(db_session, user):
    other = User(email="other@example.com", email_verified=True)
    db_session.add(other)
    db_session.commit()

    upsert_if_absent(db_session, user.id, NotificationType.info, "Hello", "World", now=NOW)
    _, created = upsert_if_absent(db_session, user.id, NotificationType.info, "Hello", "Other message", now=NOW)
    assert created is True
    _, created = upsert_if_absent(db_session, other.id, NotificationType.info, "Hello", "World", now=NOW)
    assert created is True
    assert db_session.query(Notification).count() == 3


def test_new_notification_is_emailed_once(db_session, user, sent_emails):
    create_notification(db_session, user.id, NotificationType.success, "Done", "All done", now=NOW)
    create_notification(db_session, user.id, NotificationType.success, "Done", "All done", now=NOW)

    assert len(sent_emails) == 1
    assert sent_emails[0].to == user.email
    assert sent_emails[0].subject == "Done"
    assert "All done" in sent_emails[0].html


def test_send_email_flag(db_session, user, sent_emails):
    notification, created = create_notification(
        db_session, user.id, NotificationType.info, "Quiet", "No email", send_email=False, now=NOW
    )
    assert created is True
    assert notification.read is False
    assert sent_emails == []


def test_task_event_templates(db_session, user):
    notification, _ = notify_task_event(db_session, user.id, "started", "Write report", estimated_time=25, now=NOW)
    assert notification.title == "Task started"
    assert notification.type == NotificationType.info
    assert notification.message == 'Task "Write report" was started. Estimated time: 25 minutes.'

    notification, _ = notify_task_event(db_session, user.id, "completed", "Write report", time_spent=600, now=NOW)
    assert notification.message == 'Task "Write report" was completed! Total time: 10 minutes.'


def test_unknown_task_event_kind(db_session, user):
    with pytest.raises(ValueError):
        notify_task_event(db_session, user.id, "exploded", "Write report", now=NOW)


# =========================================================
# THRESHOLD RULES
# =========================================================
def test_threshold_rules():
    kinds = lambda elapsed, est: [k for k, _ in evaluate_time_thresholds(NOW - elapsed, est, NOW)]

    assert kinds(timedelta(minutes=10), 20) == ["almost_expired", "half_time"]
    assert kinds(timedelta(minutes=10, seconds=59), 20) == ["almost_expired", "half_time"]
    assert kinds(timedelta(minutes=11), 20) == ["almost_expired"]
    assert kinds(timedelta(minutes=5), 120) == []
    assert kinds(timedelta(minutes=60), 30) == ["time_expired"]
    assert kinds(timedelta(minutes=45), 30) == []
    assert kinds(timedelta(minutes=90), 30) == ["time_expired"]


def test_almost_expired_reports_remaining_minutes():
    hits = evaluate_time_thresholds(NOW - timedelta(minutes=45), 60, NOW)
    assert hits == [("almost_expired", {"remaining_minutes": 15})]


# =========================================================
# SWEEP
# =========================================================
def test_half_time_emitted_once(db_session, user):
    make_task(db_session, user, "Halfway", estimated_time=20, started_at=NOW - timedelta(minutes=10))

    result = check_task_time_notifications(db_session, user.id, now=NOW)
    assert set(result) == set(SWEEP_KINDS)
    assert result["half_time"] == 1

    result = check_task_time_notifications(db_session, user.id, now=NOW + timedelta(seconds=30))
    assert result["half_time"] == 0
    assert titles(db_session, user).count("Task half time") == 1


def test_forgotten_refires_after_window(db_session, user):
    task = make_task(db_session, user, "Old idea", status=TaskStatus.pending, created_at=NOW - timedelta(days=4))

    assert check_task_time_notifications(db_session, user.id, now=NOW)["forgotten"] == 1
    assert check_task_time_notifications(db_session, user.id, now=NOW + timedelta(minutes=30))["forgotten"] == 0
    assert check_task_time_notifications(db_session, user.id, now=NOW + timedelta(minutes=61))["forgotten"] == 1

    rows = db_session.query(Notification).filter(Notification.title == "Task forgotten").all()
    assert len(rows) == 2
    assert all(n.task_id == task.id for n in rows)


def test_recent_pending_task_is_not_forgotten(db_session, user):
    make_task(db_session, user, "Fresh", status=TaskStatus.pending, created_at=NOW - timedelta(days=2))
    assert check_task_time_notifications(db_session, user.id, now=NOW)["forgotten"] == 0


def test_task_without_estimate_is_skipped(db_session, user):
    make_task(db_session, user, "Open ended", started_at=NOW - timedelta(minutes=5))

    result = check_task_time_notifications(db_session, user.id, now=NOW)
    assert all(count == 0 for count in result.values())
    assert titles(db_session, user) == []


def test_overdue_in_progress_task(db_session, user):
    make_task(db_session, user, "Marathon", started_at=NOW - timedelta(hours=25))
    assert check_task_time_notifications(db_session, user.id, now=NOW)["overdue"] == 1


def test_completed_tasks_are_ignored(db_session, user):
    make_task(
        db_session, user, "Finished", status=TaskStatus.completed,
        estimated_time=20, started_at=NOW - timedelta(minutes=10), created_at=NOW - timedelta(days=5),
    )
    result = check_task_time_notifications(db_session, user.id, now=NOW)
    assert all(count == 0 for count in result.values())


def test_only_own_tasks_are_swept(db_session, user):
    other = User(email="other@example.com", email_verified=True)
    db_session.add(other)
    db_session.commit()
    make_task(db_session, other, "Not mine", estimated_time=20, started_at=NOW - timedelta(minutes=10))

    result = check_task_time_notifications(db_session, user.id, now=NOW)
    assert result["half_time"] == 0


def test_store_failure_on_one_task_does_not_stop_the_sweep(db_session, user, monkeypatch):
    broken_id = make_task(db_session, user, "Broken", estimated_time=20, started_at=NOW - timedelta(minutes=10)).id
    healthy_id = make_task(db_session, user, "Healthy", estimated_time=20, started_at=NOW - timedelta(minutes=10)).id

    real_notify = notifications.notify_task_event

    def flaky_notify(db, user_id, kind, task_title, task_id=None, **kwargs):
        if task_id == broken_id:
            raise OperationalError("INSERT INTO notifications", {}, Exception("database is locked"))
        return real_notify(db, user_id, kind, task_title, task_id, **kwargs)

    monkeypatch.setattr(notifications, "notify_task_event", flaky_notify)

    result = check_task_time_notifications(db_session, user.id, now=NOW)
    assert result["half_time"] == 1
    assert result["almost_expired"] == 1

    rows = db_session.query(Notification).all()
    assert {n.task_id for n in rows} == {healthy_id}


# =========================================================
# CONCURRENCY
# =========================================================
def test_owner_lock_is_select_for_update(db_session, user):
    statement = owner_lock(db_session, user.id).statement.compile(dialect=postgresql.dialect())
    assert "FOR UPDATE" in str(statement)


def test_known_race_find_then_create_without_lock_duplicates(db_session, user):
    """
    Known race: two writers that both look before either inserts will both
    insert. upsert_if_absent avoids it only where the user row lock is
    honoured; SQLite ignores FOR UPDATE, so this interleaving is possible there.
    """
    second = sessionmaker(bind=db_session.get_bind())()
    try:
        assert find_recent(db_session, user.id, "Hello", "World", now=NOW) is None
        assert find_recent(second, user.id, "Hello", "World", now=NOW) is None

        create(db_session, user.id, NotificationType.info, "Hello", "World", now=NOW)
        create(second, user.id, NotificationType.info, "Hello", "World", now=NOW)
    finally:
        second.close()

    assert db_session.query(Notification).filter(Notification.title == "Hello").count() == 2


# =========================================================
# EMAIL SIDE EFFECTS
# =========================================================
def fail_user_lookup(db, monkeypatch):
    real_query = db.query

    def query(*entities, **kwargs):
        if entities == (User,):
            raise OperationalError("SELECT users", {}, Exception("connection lost"))
        return real_query(*entities, **kwargs)

    monkeypatch.setattr(db, "query", query)


def test_email_lookup_failure_keeps_notification(db_session, user, sent_emails, monkeypatch):
    user_id = user.id
    fail_user_lookup(db_session, monkeypatch)
    before = REGISTRY.get_sample_value("email_send_failures_total") or 0.0

    notification, created = create_notification(db_session, user_id, NotificationType.info, "Saved", "Still saved", now=NOW)

    assert created is True
    assert notification.id is not None
    assert sent_emails == []
    assert REGISTRY.get_sample_value("email_send_failures_total") == before + 1


def test_email_lookup_failure_still_counts_in_sweep(db_session, user, monkeypatch):
    user_id = user.id
    make_task(db_session, user, "Halfway", estimated_time=20, started_at=NOW - timedelta(minutes=10))
    fail_user_lookup(db_session, monkeypatch)

    result = check_task_time_notifications(db_session, user_id, now=NOW)
    assert result["half_time"] == 1
    assert result["almost_expired"] == 1
