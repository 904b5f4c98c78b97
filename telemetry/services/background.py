"""
Long-lived periodic tasks with a stop signal.

Ticks are serialized: the next tick is scheduled only after the current one
finishes, and an explicit ``run_once`` while a tick is in flight is skipped.
``stop()`` lets the in-flight tick finish (drain) before the loop exits.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class PeriodicTask:
    """Runs ``tick`` every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        tick: Callable[[], Awaitable[Any]],
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self.tick = tick
        self.ticks_completed = 0
        self.ticks_failed = 0
        self.logger = logger.bind(component="periodic_task", task=name)
        self._stop_event = asyncio.Event()
        self._tick_in_flight = False
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> bool:
        """Run a single tick. Returns False if skipped because another tick is running."""
        if self._tick_in_flight:
            self.logger.warning("periodic_task_tick_skipped")
            return False

        self._tick_in_flight = True
        try:
            await self.tick()
            self.ticks_completed += 1
        except Exception as e:
            self.ticks_failed += 1
            self.logger.exception("periodic_task_tick_failed", error=str(e))
        finally:
            self._tick_in_flight = False
        return True

    async def run_forever(self) -> None:
        self.logger.info("periodic_task_started", interval_seconds=self.interval_seconds)
        try:
            while not self._stop_event.is_set():
                tick_start = time.perf_counter()
                await self.run_once()

                elapsed = time.perf_counter() - tick_start
                sleep_time = max(0.0, self.interval_seconds - elapsed)
                if sleep_time == 0:
                    self.logger.warning(
                        "periodic_task_slower_than_interval",
                        elapsed_seconds=round(elapsed, 3),
                        interval_seconds=self.interval_seconds,
                    )

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_time)
                except TimeoutError:
                    pass
        except asyncio.CancelledError:
            self.logger.info("periodic_task_cancelled")
            raise
        finally:
            self.logger.info(
                "periodic_task_stopped",
                ticks_completed=self.ticks_completed,
                ticks_failed=self.ticks_failed,
            )

    def start(self) -> asyncio.Task[None]:
        if self.is_running:
            raise RuntimeError(f"Periodic task {self.name} already running")
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run_forever(), name=self.name)
        return self._task

    def stop(self) -> None:
        """Signal the loop to exit after the current tick."""
        self._stop_event.set()

    async def drain(self) -> None:
        """Stop and wait for the in-flight tick (if any) to finish."""
        self.stop()
        if self._task is not None:
            await self._task
