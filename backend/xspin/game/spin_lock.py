from ..enums import SpinState


class SpinLock:
    """Per-round spin guard: IDLE -> IN_PROGRESS -> COMPLETE, each step once."""

    def __init__(self) -> None:
        self.state = SpinState.IDLE

    def begin(self) -> bool:
        if self.state != SpinState.IDLE:
            return False
        self.state = SpinState.IN_PROGRESS
        return True

    def finish(self) -> bool:
        if self.state != SpinState.IN_PROGRESS:
            return False
        self.state = SpinState.COMPLETE
        return True

    @property
    def in_progress(self) -> bool:
        return self.state == SpinState.IN_PROGRESS

    def __repr__(self) -> str:
        return f"SpinLock({self.state.value})"
