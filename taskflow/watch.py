"""
Terminal watcher for running task timers.

Logs in to the API, refreshes the task list on its own interval and runs
the two-minute alert poller every few seconds against the cached list.
Alerts ring the terminal bell and print the task timers.
"""
import argparse
import getpass
import logging
import os
import sys
import threading
from typing import List

import httpx
import pytz
from apscheduler.schedulers.blocking import BlockingScheduler

from taskflow.config import config
from taskflow.poller import TaskSnapshot, TwoMinuteAlertPoller

logger = logging.getLogger(__name__)


class TaskCache:
    """Latest task list fetched from the API. Poll ticks only read from it."""

    def __init__(self, client: httpx.Client) -> None:
        self.client = client
        self._lock = threading.Lock()
        self._tasks: List[TaskSnapshot] = []

    def refresh(self) -> None:
        try:
            resp = self.client.get("/tasks/", params={"status": "IN_PROGRESS"})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Task refresh failed, keeping cached list: {e}")
            return
        tasks = [TaskSnapshot.from_payload(item) for item in resp.json()]
        with self._lock:
            self._tasks = tasks
        logger.debug(f"Cached {len(tasks)} running task(s)")

    def snapshot(self) -> List[TaskSnapshot]:
        with self._lock:
            return list(self._tasks)


def print_alert(tasks: List[TaskSnapshot]) -> None:
    sys.stdout.write("\a")
    for task in tasks:
        state = task.timer()
        remaining = state.remaining_display if state else "--:--:--"
        print(f"[ALERT] {task.title} (#{task.id}): {remaining} left")
    sys.stdout.flush()


def login(client: httpx.Client, email: str, password: str) -> None:
    resp = client.post("/auth/login", json={"email": email, "password": password})
    if resp.status_code != 200:
        detail = resp.json().get("detail", resp.text) if resp.content else resp.status_code
        raise SystemExit(f"Login failed: {detail}")
    token = resp.json()["access_token"]
    client.headers["Authorization"] = f"Bearer {token}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Watch running TaskFlow timers and alert in the last two minutes.")
    parser.add_argument("--url", default=os.getenv("TASKFLOW_URL", config.API_URL), help="API base URL")
    parser.add_argument("--email", default=os.getenv("TASKFLOW_EMAIL"), help="account email")
    parser.add_argument("--interval", type=int, default=config.POLL_INTERVAL_SECONDS, help="seconds between alert checks")
    parser.add_argument("--refresh", type=int, default=60, help="seconds between task list refreshes")
    parser.add_argument("--cooldown", type=int, default=config.ALERT_COOLDOWN_SECONDS, help="minimum seconds between alerts")
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    email = args.email or input("Email: ")
    password = os.getenv("TASKFLOW_PASSWORD") or getpass.getpass("Password: ")

    with httpx.Client(base_url=args.url, timeout=10.0, follow_redirects=True) as client:
        login(client, email, password)
        cache = TaskCache(client)
        cache.refresh()

        poller = TwoMinuteAlertPoller(cache.snapshot, print_alert, cooldown_seconds=args.cooldown)
        scheduler = BlockingScheduler(timezone=pytz.utc)
        scheduler.add_job(cache.refresh, "interval", seconds=args.refresh, id="task_refresh_job", replace_existing=True)
        poller.attach(scheduler, interval_seconds=args.interval)

        logger.info(f"Watching {args.url}: alerts every {args.interval}s, refresh every {args.refresh}s")
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Watcher stopped")


if __name__ == "__main__":
    main()
