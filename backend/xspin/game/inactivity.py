import math
from dataclasses import dataclass
from enum import Enum


class WatchdogSignal(str, Enum):
    WARN = "warn"
    KICK = "kick"


@dataclass(frozen=True)
class WatchdogEvent:
    signal: WatchdogSignal
    seconds_remaining: int


class InactivityMonitor:
    """Warns and then evicts a player who has not confirmed a bet in time.

    Deadlines are measured from the start of the betting window. The controller
    feeds elapsed time on every tick; ``disarm`` is synchronous, so nothing is
    reported after the player confirms.
    """

    def __init__(self, window_seconds: float, warning_fraction: float = 2 / 3) -> None:
        if not 0 < warning_fraction < 1:
            raise ValueError("warning_fraction must be between 0 and 1")
        self.window_seconds = window_seconds
        self.warning_deadline = round(window_seconds * warning_fraction, 6)
        self.kick_deadline = window_seconds
        self.armed = False
        self.warning_shown = False
        self.has_been_kicked = False

    def arm(self) -> None:
        self.armed = True
        self.warning_shown = False

    def disarm(self) -> None:
        self.armed = False

    def seconds_remaining(self, elapsed: float) -> int:
        return max(0, math.ceil(self.kick_deadline - elapsed))

    def check(self, elapsed: float) -> WatchdogEvent | None:
        if not self.armed or self.has_been_kicked:
            return None
        if elapsed >= self.kick_deadline:
            self.has_been_kicked = True
            self.armed = False
            return WatchdogEvent(WatchdogSignal.KICK, 0)
        if elapsed >= self.warning_deadline and not self.warning_shown:
            self.warning_shown = True
            return WatchdogEvent(WatchdogSignal.WARN, self.seconds_remaining(elapsed))
        return None
