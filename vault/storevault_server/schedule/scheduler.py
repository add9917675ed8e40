"""
Cron scheduler for automatic backups.

The Scheduler owns at most one SchedulerJob. A job is bound to one
5-field cron expression and runs as a background asyncio task:

    loop:
        next = croniter(expression, max(now, last fired instant)).get_next()
        sleep until next, again if woken early
        run the export callback, logging (never raising) any failure

States:
    Disabled --init(enabled)--> Scheduled --fire--> Running-Export --> Scheduled
    Scheduled/Disabled --init--> Disabled | Scheduled(new expression)

Invariants:
    - At most one active job per Scheduler; init_schedule() always stops
      the current job before starting a new one
    - A failed run never stops the job
    - Each cron instant fires at most once, never before it is due
    - A stopped job performs no further runs; a run already in progress
      is allowed to finish
    - Settings are only observed when init_schedule() is called

How to change safely:
    - Keep expression validation ahead of job creation
    - Test with an injected clock and sleep, never with wall-clock waits
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from croniter import croniter

from ..errors import ValidationError
from .settings import BackupSettings

logger = logging.getLogger(__name__)

CRON_FIELD_COUNT = 5


def validate_schedule_expression(expression: Any) -> str:
    """Validate a 5-field cron expression.

    Args:
        expression: Candidate expression, e.g. "0 2 * * *"

    Returns:
        The expression with surrounding whitespace removed

    Raises:
        ValidationError: If the expression is not a valid 5-field cron expression
    """
    if not isinstance(expression, str) or not expression.strip():
        raise ValidationError("Schedule expression is required", field_name="scheduleExpression")

    expression = expression.strip()
    if len(expression.split()) != CRON_FIELD_COUNT:
        raise ValidationError(
            f"Invalid schedule expression '{expression}': expected {CRON_FIELD_COUNT} fields",
            field_name="scheduleExpression",
        )
    if not croniter.is_valid(expression):
        raise ValidationError(
            f"Invalid schedule expression '{expression}'",
            field_name="scheduleExpression",
        )
    return expression


def local_now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


class SchedulerJob:
    """One recurring timer bound to a cron expression.

    Attributes:
        expression: Validated cron expression
        runs: Number of completed runs
        failures: Number of failed runs
        last_run_at: Start of the last run
        last_error: Message of the last failure

    Example:
        >>> job = SchedulerJob("0 2 * * *", exporter.export_snapshot)
        >>> job.start()
        >>> await job.stop()
    """

    def __init__(
        self,
        expression: str,
        callback: Callable[[], Awaitable[Any]],
        clock: Callable[[], datetime] = local_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.expression = validate_schedule_expression(expression)
        self._callback = callback
        self._clock = clock
        self._sleep = sleep

        self._task: asyncio.Task | None = None
        self._running = False
        self._in_flight = False
        self.next_fire_at: datetime | None = None

        self.runs = 0
        self.failures = 0
        self.last_run_at: datetime | None = None
        self.last_error: str | None = None

    @property
    def is_active(self) -> bool:
        return self._running

    def next_fire_time(self, after: datetime | None = None) -> datetime:
        """Next instant the expression matches, strictly after `after`."""
        return croniter(self.expression, after or self._clock()).get_next(datetime)

    def start(self) -> None:
        """Start the timer loop. Must be called with a running event loop."""
        if self._running:
            logger.warning("Scheduler job already running", extra={"expression": self.expression})
            return

        self._running = True
        self._task = asyncio.ensure_future(self._run())

    async def stop(self) -> None:
        """Stop the timer. Idempotent."""
        if not self._running and self._task is None:
            return

        self._running = False
        task, self._task = self._task, None
        self.next_fire_at = None

        if task is None or task.done():
            return

        if self._in_flight:
            # Let the current export finish; the loop exits right after it
            logger.info("Scheduler job stopping after in-progress run")
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        fired_at: datetime | None = None
        try:
            while self._running:
                now = self._clock()
                # Never match the same instant twice, even if the clock stepped back
                after = now if fired_at is None or now > fired_at else fired_at
                self.next_fire_at = self.next_fire_time(after)

                # Sleep again for the remainder when woken early
                while self._running:
                    delay = (self.next_fire_at - self._clock()).total_seconds()
                    if delay <= 0:
                        break
                    await self._sleep(delay)

                if not self._running:
                    break
                fired_at = self.next_fire_at
                await self.fire()

        except asyncio.CancelledError:
            logger.debug("Scheduler job cancelled", extra={"expression": self.expression})
            raise
        finally:
            self._running = False

    async def fire(self) -> bool:
        """Run the callback once, containing any failure.

        Returns:
            True if the run succeeded
        """
        self._in_flight = True
        self.last_run_at = self._clock()
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            self.last_error = str(e)
            logger.error(f"Scheduled backup failed: {e}", exc_info=True)
            return False
        finally:
            self._in_flight = False

        self.runs += 1
        self.last_error = None
        logger.info("Scheduled backup completed", extra={"expression": self.expression})
        return True

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "expression": self.expression,
            "active": self._running,
            "runs": self.runs,
            "failures": self.failures,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
            "next_fire_at": self.next_fire_at.isoformat() if self.next_fire_at else None,
        }


class Scheduler:
    """Owns the single active backup job of the process.

    Attributes:
        job: Active job, or None when scheduling is disabled

    Example:
        >>> scheduler = Scheduler(exporter.export_snapshot)
        >>> await scheduler.init_schedule(BackupSettings(enabled=True))
        >>> scheduler.is_active
        True
    """

    def __init__(
        self,
        run_export: Callable[[], Awaitable[Any]],
        clock: Callable[[], datetime] = local_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            run_export: Coroutine function invoked on every fire
            clock: Returns the current time cron expressions are evaluated in
            sleep: Coroutine function used to wait between fires
        """
        self._run_export = run_export
        self._clock = clock
        self._sleep = sleep
        self.job: SchedulerJob | None = None

    @property
    def is_active(self) -> bool:
        return self.job is not None and self.job.is_active

    @property
    def expression(self) -> str | None:
        return self.job.expression if self.job else None

    async def init_schedule(self, settings: BackupSettings) -> None:
        """(Re)configure scheduling from settings.

        Any current job is stopped first. Nothing is started when the
        settings are disabled or the expression is invalid.

        Raises:
            ValidationError: If enabled with an invalid schedule expression
        """
        await self.stop()

        if not settings.enabled:
            logger.info("Scheduled backups disabled")
            return

        expression = validate_schedule_expression(settings.schedule_expression)
        self.job = SchedulerJob(expression, self._run_export, clock=self._clock, sleep=self._sleep)
        self.job.start()
        logger.info(f"Scheduled backups at cron: {expression}")

    async def stop(self) -> None:
        """Stop the active job, if any. Idempotent."""
        if self.job is None:
            return
        job, self.job = self.job, None
        await job.stop()
        logger.debug("Stopped scheduler job", extra={"expression": job.expression})

    @property
    def stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        if self.job is None:
            return {"active": False}
        return self.job.stats
