import asyncio
import logging
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerLoop(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class RoundScheduler:
    """Owns the single pending timer of a round.

    Scheduling a new callback cancels the previous one, and every callback is
    tagged with a generation number so a handle that fires after ``cancel`` is a
    no-op.
    """

    def __init__(self, loop: TimerLoop | None = None) -> None:
        self._loop = loop
        self._handle: TimerHandle | None = None
        self._generation = 0

    @property
    def loop(self) -> TimerLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        self.cancel()
        generation = self._generation
        self._handle = self.loop.call_later(delay, self._fire, generation, callback)

    def cancel(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, generation: int, callback: Callable[[], None]) -> None:
        if generation != self._generation:
            logger.debug("Dropping stale timer callback %s", callback)
            return
        self._handle = None
        callback()
