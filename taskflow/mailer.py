"""
Outbound email.

Emails go through an EmailDispatcher so a failed send never reaches the
write path that produced it. The inline dispatcher sends in the caller's
thread; the background dispatcher hands each send to an APScheduler job.
"""
import html
import logging
from dataclasses import dataclass
from typing import Optional
import pytz
import requests
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.background import BackgroundScheduler

from taskflow.config import config
from taskflow.metrics import EMAIL_SEND_FAILURES
from taskflow.timer import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    html: str


def _display_time() -> str:
    tz = pytz.timezone(config.DISPLAY_TIMEZONE)
    return pytz.utc.localize(utcnow()).astimezone(tz).strftime("%d/%m/%Y %H:%M:%S")


def render_notification_email(title: str, message: str) -> str:
    return f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #4f46e5;">{html.escape(title)}</h2>
          <p>{html.escape(message)}</p>
          <p style="color: #666; font-size: 14px;">{_display_time()}</p>
          <p style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #e5e7eb;">
            <a href="{config.APP_URL}/dashboard/notifications" style="color: #4f46e5; text-decoration: none;">
              View all notifications &rarr;
            </a>
          </p>
        </div>
    """


def render_verification_email(token: str) -> str:
    link = f"{config.API_URL}/auth/verify-email?token={token}"
    return f"""
        <h1>Welcome to TaskFlow!</h1>
        <p>Click the link below to verify your email:</p>
        <a href="{link}">Verify email</a>
    """


def send_email(email: OutboundEmail) -> bool:
    """
    Posts one email to the Resend API.

    Returns False, without raising, when the API key is missing or the
    request fails.
    """
    if not config.RESEND_API_KEY:
        logger.debug(f"RESEND_API_KEY not set, skipping email to {email.to}")
        return False

    headers = {
        "Content-type": "application/json",
        "Authorization": f"Bearer {config.RESEND_API_KEY}",
    }
    payload = {
        "from": config.EMAIL_FROM,
        "to": [email.to],
        "subject": email.subject,
        "html": email.html,
    }

    try:
        resp = requests.post(config.RESEND_API_URL, json=payload, headers=headers, timeout=15)
        resp.raise_for_status()
        return True
    except requests.Timeout:
        logger.error(f"Email request to {email.to} timed out")
    except requests.RequestException as e:
        logger.error(f"Email send error for {email.to}: {e}")

    EMAIL_SEND_FAILURES.inc()
    return False


class EmailDispatcher:
    def dispatch(self, email: OutboundEmail) -> None:
        raise NotImplementedError

    def shutdown(self) -> None:
        pass


class InlineEmailDispatcher(EmailDispatcher):
    def dispatch(self, email: OutboundEmail) -> None:
        try:
            send_email(email)
        except Exception:
            EMAIL_SEND_FAILURES.inc()
            logger.exception(f"Unexpected error sending email to {email.to}")


class BackgroundEmailDispatcher(EmailDispatcher):
    def __init__(self, scheduler: Optional[BackgroundScheduler] = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler(timezone=pytz.utc)
        self.scheduler.add_listener(self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
        if not self.scheduler.running:
            self.scheduler.start()

    def dispatch(self, email: OutboundEmail) -> None:
        # Runs once. No misfire limit, sends queued behind busy workers still run.
        self.scheduler.add_job(
            InlineEmailDispatcher().dispatch,
            args=[email],
            misfire_grace_time=None,
            coalesce=False,
        )

    def _on_job_event(self, event) -> None:
        EMAIL_SEND_FAILURES.inc()
        logger.error(f"Email job {event.job_id} did not run: {getattr(event, 'exception', None) or 'missed'}")

    def shutdown(self) -> None:
        self.scheduler.shutdown(wait=True)


_dispatcher: Optional[EmailDispatcher] = None


def get_dispatcher() -> EmailDispatcher:
    global _dispatcher
    if _dispatcher is None:
        if config.EMAIL_DISPATCH_MODE == "background":
            _dispatcher = BackgroundEmailDispatcher()
        else:
            _dispatcher = InlineEmailDispatcher()
        logger.info(f"Email dispatcher: {type(_dispatcher).__name__}")
    return _dispatcher


def set_dispatcher(dispatcher: Optional[EmailDispatcher]) -> None:
    global _dispatcher
    _dispatcher = dispatcher


def send_notification_email(user_email: str, title: str, message: str) -> None:
    get_dispatcher().dispatch(
        OutboundEmail(to=user_email, subject=title, html=render_notification_email(title, message))
    )


def send_verification_email(user_email: str, token: str) -> None:
    get_dispatcher().dispatch(
        OutboundEmail(
            to=user_email,
            subject="Verify your email - TaskFlow",
            html=render_verification_email(token),
        )
    )
