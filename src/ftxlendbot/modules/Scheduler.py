import datetime
import sched
import threading
import time
from collections.abc import Callable
from typing import Any

import pytz


def next_run_time(now: datetime.datetime, minute: int) -> datetime.datetime:
    """
    Returns the next time the clock shows ``minute`` past the hour, strictly after ``now``.
    """
    candidate = now.replace(minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += datetime.timedelta(hours=1)
    return candidate


class HourlyScheduler:
    """
    Runs a job once per hour at a fixed minute, in a daemon thread.

    Only one run is active at a time and ticks missed while a job was running
    (or while the process was down) are not caught up.
    """

    def __init__(
        self,
        job: Callable[[], Any],
        minute: int,
        stop_event: threading.Event,
        log: Any,
        timezone: str = "",
    ) -> None:
        self.job = job
        self.minute = minute
        self.stop_event = stop_event
        self.log = log
        self.tz = pytz.timezone(timezone) if timezone else None
        self.scheduler = sched.scheduler(time.time, self._delay)
        self.thread: threading.Thread | None = None

    def _delay(self, seconds: float) -> None:
        if self.stop_event.wait(max(seconds, 0)):
            self._cancel_all()

    def _cancel_all(self) -> None:
        for event in list(self.scheduler.queue):
            try:
                self.scheduler.cancel(event)
            except ValueError:
                pass

    def now(self) -> datetime.datetime:
        if self.tz is None:
            return datetime.datetime.now().astimezone()
        return datetime.datetime.now(self.tz)

    def _schedule_next(self) -> datetime.datetime:
        run_at = next_run_time(self.now(), self.minute)
        self.scheduler.enterabs(run_at.timestamp(), 1, self._tick)
        return run_at

    def _tick(self) -> None:
        if self.stop_event.is_set():
            return
        self.job()
        if not self.stop_event.is_set():
            run_at = self._schedule_next()
            self.log.log(f"Next lending cycle at {run_at:%Y-%m-%d %H:%M %Z}")

    def start(self) -> None:
        run_at = self._schedule_next()
        self.log.log(f"First lending cycle at {run_at:%Y-%m-%d %H:%M %Z}")
        self.thread = threading.Thread(target=self.scheduler.run, name="lending-scheduler")
        self.thread.daemon = True
        self.thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self.stop_event.set()
        if self.thread is not None:
            self.thread.join(timeout)
