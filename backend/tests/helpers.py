import heapq
import itertools
from typing import Any, Callable

from xspin.config import Settings
from xspin.game.exceptions import InvalidSegmentSet
from xspin.game.wheel import WheelOutcomeGenerator


class ManualHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualLoop:
    """call_later stand-in whose clock only moves through ``advance``."""

    def __init__(self) -> None:
        self.time = 0.0
        self._queue: list[tuple[float, int, ManualHandle]] = []
        self._counter = itertools.count()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualHandle:
        handle = ManualHandle(self.time + delay, callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while self._queue and self._queue[0][0] <= target + 1e-9:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.time = when
            handle.callback(*handle.args)
        self.time = target

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)


class SequenceWheel(WheelOutcomeGenerator):
    """Returns the queued indexes in order, repeating the last one."""

    def __init__(self, outcomes: list[int]) -> None:
        super().__init__(seed=0)
        self.outcomes = list(outcomes)
        self.calls = 0

    def resolve(self, segments):
        if not segments:
            raise InvalidSegmentSet("Cannot spin a wheel without segments")
        index = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        return index


def quiet_settings(**overrides: Any) -> Settings:
    values = {"bot_confirm_probability": 0.0, "openai_api_key": None}
    values.update(overrides)
    return Settings(**values)
