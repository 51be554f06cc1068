# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Cancellable periodic task bounded by an optional deadline.

Every polling loop in the service (deployment trackers, discovery, merge
supervision, workflow execution watches) runs on a PeriodicTask.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from resurrectci.utils.logging import get_logger

logger = get_logger(__name__)

TickFunc = Callable[[], Awaitable[bool]]


class TaskOutcome(str, Enum):
    """How a periodic task ended."""
    COMPLETED = "completed"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    CANCELLED = "cancelled"


class _TickDeadline(Exception):
    """A tick was still running when the deadline passed."""


class PeriodicTask:
    """
    Run `tick` every `interval` seconds until it returns True, the deadline
    passes, or the task is cancelled.

    The deadline is measured on the event loop clock from the moment the task
    starts running. The task never sleeps past its deadline, and a tick still
    running when the deadline passes is cancelled. An exception raised by
    `tick` is logged and the next tick is scheduled as usual.

    Example:
        ```python
        async def poll() -> bool:
            status = await platform.get_status(deployment_id)
            return status.is_terminal

        task = PeriodicTask("track:dpl_1", interval=10, tick=poll, deadline=600)
        task.start()
        outcome = await task.wait()
        ```
    """

    def __init__(
        self,
        name: str,
        interval: float,
        tick: TickFunc,
        deadline: Optional[float] = None,
        initial_delay: float = 0.0,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.name = name
        self.interval = interval
        self.deadline = deadline
        self.initial_delay = initial_delay
        self.ticks = 0
        self.outcome: Optional[TaskOutcome] = None
        self._tick = tick
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Schedule the loop on the running event loop. Idempotent."""
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=self.name)
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait(self) -> TaskOutcome:
        """Wait for the loop to end and return its outcome."""
        task = self.start()
        await asyncio.wait({task})
        if task.cancelled():
            self.outcome = TaskOutcome.CANCELLED
            return TaskOutcome.CANCELLED
        return task.result()

    async def _sleep(self, seconds: float, end: Optional[float]) -> bool:
        """Sleep without crossing the deadline. Returns False when the deadline is reached."""
        loop = asyncio.get_running_loop()
        if end is not None:
            remaining = end - loop.time()
            if remaining <= 0:
                return False
            seconds = min(seconds, remaining)
        await asyncio.sleep(seconds)
        return end is None or loop.time() < end

    async def _run_tick(self, end: Optional[float]) -> bool:
        """Run one tick, cut off at the deadline."""
        if end is None:
            return await self._tick()

        remaining = end - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise _TickDeadline()
        tick = asyncio.ensure_future(self._tick())
        try:
            done, _ = await asyncio.wait({tick}, timeout=remaining)
        except asyncio.CancelledError:
            tick.cancel()
            raise
        if not done:
            tick.cancel()
            await asyncio.gather(tick, return_exceptions=True)
            raise _TickDeadline()
        return tick.result()

    async def run(self) -> TaskOutcome:
        loop = asyncio.get_running_loop()
        end = loop.time() + self.deadline if self.deadline is not None else None

        try:
            if self.initial_delay > 0 and not await self._sleep(self.initial_delay, end):
                return self._finish(TaskOutcome.DEADLINE_EXCEEDED)

            while True:
                self.ticks += 1
                try:
                    done = await self._run_tick(end)
                except _TickDeadline:
                    return self._finish(TaskOutcome.DEADLINE_EXCEEDED)
                except Exception:
                    logger.exception("periodic_task_tick_failed", task=self.name, tick=self.ticks)
                    done = False

                if done:
                    return self._finish(TaskOutcome.COMPLETED)

                if not await self._sleep(self.interval, end):
                    return self._finish(TaskOutcome.DEADLINE_EXCEEDED)

        except asyncio.CancelledError:
            self._finish(TaskOutcome.CANCELLED)
            raise

    def _finish(self, outcome: TaskOutcome) -> TaskOutcome:
        self.outcome = outcome
        logger.debug("periodic_task_finished", task=self.name, outcome=outcome.value, ticks=self.ticks)
        return outcome
