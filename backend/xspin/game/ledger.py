"""Bet ledger and balance store.

The ledger is the only code path allowed to move money. Stakes are debited at
``confirm`` and credits are applied by ``settle``; both go through
``BalanceStore.apply_delta`` and ``settle`` runs at most once per round.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from ..enums import PlayerStatus
from .exceptions import InsufficientFunds, InvalidBetAmount, InvalidPhase, NoWinner
from .players import Player
from .segments import Segment

logger = logging.getLogger(__name__)


class BalanceStore(Protocol):
    def balance_of(self, player_id: str) -> int: ...

    def apply_delta(self, player_id: str, amount: int) -> int: ...


class InMemoryBalanceStore:
    def __init__(self, default_balance: int = 0) -> None:
        self.default_balance = default_balance
        self._balances: dict[str, int] = {}

    def open_account(self, player_id: str, balance: int | None = None) -> None:
        if player_id not in self._balances:
            self._balances[player_id] = self.default_balance if balance is None else balance

    def balance_of(self, player_id: str) -> int:
        return self._balances.get(player_id, self.default_balance)

    def apply_delta(self, player_id: str, amount: int) -> int:
        balance = self.balance_of(player_id) + amount
        if balance < 0:
            raise InsufficientFunds(player_id, -amount, balance - amount)
        self._balances[player_id] = balance
        return balance


@dataclass(frozen=True)
class Settlement:
    winner_id: str | None
    amount: int
    pot: int
    refunds: dict[str, int] = field(default_factory=dict)

    @property
    def no_winner(self) -> bool:
        return self.winner_id is None


class BetLedger:
    def __init__(self, balances: BalanceStore, *, min_bet: int = 10, max_bet: int | None = None) -> None:
        self.balances = balances
        self.min_bet = min_bet
        self.max_bet = max_bet
        self._players: dict[str, Player] = {}
        self._locked_pot: int | None = None
        self._settlement: Settlement | None = None

    def register(self, players: Iterable[Player]) -> None:
        for player in players:
            self._players[player.id] = player

    def forget(self, player_id: str) -> None:
        self._players.pop(player_id, None)

    @property
    def players(self) -> list[Player]:
        return list(self._players.values())

    @property
    def confirmed(self) -> list[Player]:
        return [player for player in self._players.values() if player.status == PlayerStatus.CONFIRMED]

    @property
    def is_locked(self) -> bool:
        return self._locked_pot is not None

    def place(self, player: Player, amount: int) -> None:
        if self.is_locked:
            raise InvalidPhase("Bets are locked for this round")
        if player.status != PlayerStatus.IDLE:
            raise InvalidPhase(f"Cannot place a bet while {player.status.value}")
        if amount < self.min_bet:
            raise InvalidBetAmount(amount, f"minimum bet is {self.min_bet}")
        if self.max_bet is not None and amount > self.max_bet:
            raise InvalidBetAmount(amount, f"maximum bet is {self.max_bet}")
        if amount > self.balances.balance_of(player.id):
            raise InvalidBetAmount(amount, "exceeds balance")
        player.bet_amount = amount
        player.status = PlayerStatus.PLACED
        self._players.setdefault(player.id, player)

    def confirm(self, player: Player) -> None:
        if self.is_locked:
            raise InvalidPhase("Bets are locked for this round")
        if player.status != PlayerStatus.PLACED:
            raise InvalidPhase(f"Cannot confirm a bet while {player.status.value}")
        balance = self.balances.balance_of(player.id)
        if balance < player.bet_amount:
            raise InsufficientFunds(player.id, player.bet_amount, balance)
        self.balances.apply_delta(player.id, -player.bet_amount)
        player.status = PlayerStatus.CONFIRMED
        logger.debug("Player %s confirmed %s on %s", player.id, player.bet_amount, player.assigned_color)

    def cancel(self, player: Player) -> None:
        if player.status != PlayerStatus.PLACED:
            raise InvalidPhase(f"Cannot cancel a bet while {player.status.value}")
        player.reset()

    def live_pot(self) -> int:
        return sum(player.bet_amount for player in self.confirmed)

    def lock(self) -> int:
        if self._locked_pot is None:
            self._locked_pot = self.live_pot()
        return self._locked_pot

    def pot(self) -> int:
        if self._locked_pot is not None:
            return self._locked_pot
        return self.live_pot()

    def winner_for(self, segment: Segment, *, is_duel: bool = False, seats: list[Player] | None = None) -> Player:
        if is_duel:
            seats = seats if seats is not None else self.players
            if not 0 <= segment.value < len(seats):
                raise NoWinner(f"seat {segment.value}")
            candidate = seats[segment.value]
            if candidate.status != PlayerStatus.CONFIRMED:
                raise NoWinner(f"seat {segment.value}")
            return candidate
        for player in self.confirmed:
            if player.assigned_color == segment.color:
                return player
        raise NoWinner(segment.color)

    def payout(self, segment: Segment, *, is_duel: bool = False, seats: list[Player] | None = None) -> tuple[Player, int]:
        winner = self.winner_for(segment, is_duel=is_duel, seats=seats)
        return winner, self.pot() * segment.multiplier

    @property
    def settlement(self) -> Settlement | None:
        return self._settlement

    def settle(self, segment: Segment, *, is_duel: bool = False, seats: list[Player] | None = None) -> Settlement:
        if self._settlement is not None:
            return self._settlement
        pot = self.lock()
        try:
            winner, amount = self.payout(segment, is_duel=is_duel, seats=seats)
        except NoWinner as exc:
            logger.info("No winner for %s, returning stakes", exc.outcome)
            self._settlement = self.refund_all()
            return self._settlement
        self.balances.apply_delta(winner.id, amount)
        logger.info("Paid %s to %s (pot %s, x%s)", amount, winner.id, pot, segment.multiplier)
        self._settlement = Settlement(winner_id=winner.id, amount=amount, pot=pot)
        return self._settlement

    def award(self, winner: Player, amount: int) -> Settlement:
        """Credit a precomputed prize exactly once (used by the grand final)."""
        if self._settlement is not None:
            return self._settlement
        self.balances.apply_delta(winner.id, amount)
        self._settlement = Settlement(winner_id=winner.id, amount=amount, pot=amount)
        return self._settlement

    def refund_all(self) -> Settlement:
        if self._settlement is not None:
            return self._settlement
        refunds: dict[str, int] = {}
        for player in self.confirmed:
            self.balances.apply_delta(player.id, player.bet_amount)
            refunds[player.id] = player.bet_amount
        self._settlement = Settlement(winner_id=None, amount=0, pot=self.pot(), refunds=refunds)
        return self._settlement

    def reset(self) -> None:
        for player in self._players.values():
            player.reset()
        self._locked_pot = None
        self._settlement = None
