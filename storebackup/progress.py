# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Progress reporting for backup and restore runs.

A progress sink is any callable taking ``(label, percent)``; it may be a
plain function or a coroutine function. The sink belongs to the caller.
"""

import inspect
from typing import Any, Callable

import structlog

logger = structlog.get_logger()

ProgressSink = Callable[[str, float], Any]


def log_progress(label: str, percent: float) -> None:
    """Progress sink that writes each step to the log."""
    logger.info("progress", step=label, percent=percent)


class ProgressTracker:
    """
    Turns completed-step counts into percentages for a sink.

    Percentages are clamped to 0..100 and never go backwards, even if
    the step estimate turns out to be wrong.
    """

    def __init__(self, sink: ProgressSink | None, total_steps: int):
        self.sink = sink
        self.total_steps = max(total_steps, 1)
        self.completed = 0
        self.last_percent = 0.0

    async def report(self, label: str, percent: float) -> None:
        percent = min(max(float(percent), self.last_percent), 100.0)
        self.last_percent = percent
        if self.sink is None:
            return
        result = self.sink(label, percent)
        if inspect.isawaitable(result):
            await result

    async def step(self, label: str) -> None:
        """Mark one more step as done and report it."""
        self.completed += 1
        await self.report(label, round(self.completed * 100.0 / self.total_steps, 1))

    async def finish(self, label: str) -> None:
        await self.report(label, 100.0)
