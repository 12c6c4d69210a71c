"""
Periodic trigger for the cleaning pipeline.

The only state is the time of the last fire, persisted as the
``<pipeline>:scheduled`` heartbeat so a restart knows when the next run is
due. At most one run happens per tick: after downtime spanning several
periods the scheduler either runs once (``catch_up=True``) or skips and
re-anchors the schedule at the current time (``catch_up=False``).
"""

import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from loguru import logger

from income_cleaning.cleaning import CleaningPipeline, CleaningReport, utcnow
from income_cleaning.config import settings


TRIGGER = "scheduled"

FIRE = "fire"
WAIT = "wait"
SKIP = "skip"


class Scheduler:
    """Fires ``pipeline.run`` every ``interval``."""

    def __init__(
        self,
        pipeline: CleaningPipeline,
        interval: timedelta | None = None,
        catch_up: bool | None = None,
        poll_seconds: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.pipeline = pipeline
        self.interval = interval or settings.cleaning.interval
        self.catch_up = settings.cleaning.catch_up if catch_up is None else catch_up
        self.poll_seconds = poll_seconds or settings.cleaning.poll_seconds
        self.clock = clock

        self.last_fire: datetime | None = None
        self._state_loaded = False
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def heartbeat_name(self) -> str:
        return f"{self.pipeline.name}:{TRIGGER}"

    def next_fire(self) -> datetime | None:
        """When the next run is due; None means immediately."""
        if self.last_fire is None:
            return None
        return self.last_fire + self.interval

    def decide(self, now: datetime) -> str:
        """FIRE, WAIT or SKIP for a tick at ``now``."""
        if self.last_fire is None:
            return FIRE
        if now < self.last_fire + self.interval:
            return WAIT
        missed = now >= self.last_fire + 2 * self.interval
        if missed and not self.catch_up:
            return SKIP
        return FIRE

    def tick(self, now: datetime | None = None) -> CleaningReport | None:
        """
        Check the schedule once and run the pipeline if due.

        Failures are logged, never raised; the next due tick retries.

        Returns:
            The run's report, or None if nothing ran
        """
        now = now or self.clock()
        try:
            self._load_state()
        except Exception:
            logger.exception("Could not load scheduler state")
            return None

        decision = self.decide(now)
        if decision == WAIT:
            return None

        self.last_fire = now

        if decision == SKIP:
            logger.warning(f"Missed scheduled runs while down; next run at {self.next_fire()}")
            try:
                self.pipeline.cleaned_store.record_heartbeat(self.heartbeat_name, now, "skipped")
            except Exception:
                logger.exception("Failed to write heartbeat")
            return None

        try:
            return self.pipeline.run(trigger=TRIGGER, blocking=True)
        except Exception:
            logger.exception("Scheduled cleaning run failed")
            return None

    def _load_state(self) -> None:
        if self._state_loaded:
            return
        self.pipeline.cleaned_store.ensure_table()
        heartbeat = self.pipeline.cleaned_store.last_heartbeat(self.heartbeat_name)
        if heartbeat is not None and self.last_fire is None:
            self.last_fire = heartbeat.last_fired_at
            logger.info(f"Last scheduled run at {self.last_fire}; next due {self.next_fire()}")
        self._state_loaded = True

    # -------------------------------------------------------------------------
    # Loop control
    # -------------------------------------------------------------------------

    def run_forever(self) -> None:
        """Tick every ``poll_seconds`` until ``stop`` is called."""
        logger.info(
            f"Scheduler started: every {self.interval}, catch_up={self.catch_up}, "
            f"poll={self.poll_seconds}s"
        )
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.poll_seconds)
        logger.info("Scheduler stopped")

    def start(self) -> threading.Thread:
        """Run the loop in a background daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="cleaning-scheduler", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
