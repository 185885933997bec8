class XSpinError(Exception):
    """Base class for every error raised by the round engine."""


class BetRejected(XSpinError, ValueError):
    """A bet operation was refused; no state was changed."""


class InvalidBetAmount(BetRejected):
    def __init__(self, amount: int, reason: str) -> None:
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid bet amount {amount}: {reason}")


class InsufficientFunds(BetRejected):
    def __init__(self, player_id: str, amount: int, balance: int) -> None:
        self.player_id = player_id
        self.amount = amount
        self.balance = balance
        super().__init__(f"Player {player_id} cannot cover {amount} (balance {balance})")


class InvalidSegmentSet(XSpinError):
    """The wheel has no segments, so no outcome can be committed."""


class NoWinner(XSpinError):
    """No confirmed player holds the resolved outcome."""

    def __init__(self, outcome: str) -> None:
        self.outcome = outcome
        super().__init__(f"No confirmed player holds {outcome}")


class InvalidPhase(XSpinError):
    """The operation is not allowed in the current phase or status."""


class PlayerNotFound(XSpinError):
    def __init__(self, player_id: str) -> None:
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class RoomNotFound(XSpinError):
    def __init__(self, room_id: str) -> None:
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class RankTooLow(XSpinError):
    """The player's rank does not unlock the requested feature."""


class CommentaryUnavailable(XSpinError):
    """The commentary collaborator failed or timed out."""
