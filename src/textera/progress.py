from __future__ import annotations

import asyncio
import contextlib
import random
from typing import Callable, Optional


class ProgressSimulator:
    """Perceived-progress ticker, decoupled from the real request.

    The value creeps up by a random step every ``interval`` seconds but never
    reaches 100 on its own; only ``finish()`` sets it to exactly 100, once.
    """

    def __init__(
        self,
        *,
        interval: float = 0.2,
        max_step: float = 1.2,
        ceiling: float = 99.0,
        rng: Optional[random.Random] = None,
        on_change: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.interval = interval
        self.max_step = max_step
        self.ceiling = min(ceiling, 99.0)
        self.value = 0.0
        self.completed = False
        self._rng = rng or random.Random()
        self._on_change = on_change
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.completed or self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.advance()

    def advance(self) -> float:
        if self.completed or self.value >= self.ceiling:
            return self.value
        self.value = min(self.ceiling, self.value + self._rng.uniform(0, self.max_step))
        self._notify()
        return self.value

    def finish(self) -> None:
        if self.completed:
            return
        if self._task is not None:
            self._task.cancel()
        self.completed = True
        self.value = 100.0
        self._notify()

    async def aclose(self) -> None:
        """Finish and wait for the ticker task to unwind."""
        self.finish()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.value)
