# app/services/time_tracking.py
"""
Time tracking engine: at most one running timer per user.

Starting is a read-check-then-write inside one transaction but without a row
lock on the user, so two sessions of the same user starting at the same moment
can both succeed. Stopping always re-reads the timer inside the transaction that
clears it, so an explicit stop racing an automatic stop logs the interval once.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.exceptions import ConflictError
from app.models import Task
from app.schemas import ActiveTimer, TimeLog
from app.services.store import EntityStore
from app.utils.time_utils import Clock, elapsed_seconds, from_iso, to_iso, utc_now

logger = logging.getLogger(__name__)


class TimeTracker:
    def __init__(self, store: EntityStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    def active_timer(self, user_id: str) -> Optional[ActiveTimer]:
        return self.store.read_user(user_id).active_timer

    def start_timer(self, user_id: str, task_id: str, project_id: str) -> ActiveTimer:
        with self.store.transaction() as session:
            user = self.store.get_user(session, user_id)
            if user.active_timer:
                running = user.active_timer.get("task_id")
                raise ConflictError(
                    "You already have a timer running on another task. Stop it before starting a new one."
                    if running != task_id else
                    "A timer is already running on this task.",
                    reason="timer_active",
                )
            self.store.get_task(session, task_id, project_id)

            timer = ActiveTimer(project_id=project_id, task_id=task_id, start_time=self.clock())
            user.active_timer = {
                "project_id": timer.project_id,
                "task_id": timer.task_id,
                "start_time": to_iso(timer.start_time),
            }

        logger.info(f"Timer started for user {user_id} on task {task_id}")
        return timer

    def stop_timer(self, user_id: str) -> Optional[TimeLog]:
        """Close the running interval. Returns the appended log, if any."""
        with self.store.transaction() as session:
            return self.stop_in_session(session, user_id)

    def stop_in_session(self, session: Session, user_id: str) -> Optional[TimeLog]:
        """
        Stop ``user_id``'s timer as part of the caller's transaction.

        No-op when no timer is running. Intervals shorter than one second clear
        the timer without appending a log entry.
        """
        user = self.store.get_user(session, user_id, for_update=True)
        timer = user.active_timer
        if not timer:
            logger.debug(f"No active timer for user {user_id}")
            return None

        now = self.clock()
        duration = elapsed_seconds(from_iso(timer["start_time"]), now)
        time_log = None
        if duration > 0:
            task = session.get(Task, timer["task_id"])
            if task is None:
                logger.warning(f"Timer task {timer['task_id']} no longer exists, discarding {duration}s")
            else:
                time_log = TimeLog(user_id=user_id, duration_in_seconds=duration, logged_at=now)
                self.store.array_union(task, "time_logs", {
                    "user_id": user_id,
                    "duration_in_seconds": duration,
                    "logged_at": to_iso(now),
                })

        user.active_timer = None
        logger.info(f"Timer stopped for user {user_id} on task {timer['task_id']} after {duration}s")
        return time_log
