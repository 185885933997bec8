"""Grand Prix bracket: 10 parallel groups, color elimination, one grand final.

The coordinator reuses the room primitives (ledger, generator, spin lock,
scheduler) once per group and once more for the final. Dwell timers between
stages only pace the UI; ``group_winners`` is frozen before any of them runs.
"""
import logging
import math
import random
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Literal

from ..config import Settings, get_settings
from ..enums import CloseReason, TournamentStage
from ..events.manager import EventStream
from ..services.commentary import CommentaryService
from .exceptions import InsufficientFunds, InvalidPhase, InvalidSegmentSet
from .ledger import BalanceStore, BetLedger, Settlement
from .players import BotPlayer, HumanPlayer, Player, Profile, Seating, make_bots
from .ranks import RankTracker, RankUp
from .room import EPSILON, CommentaryDispatcher, RoundState
from .scheduler import RoundScheduler, TimerLoop
from .segments import Segment, duel_wheel, finalist_wheel, group_wheel, palette
from .spin_lock import SpinLock
from .wheel import WheelOutcomeGenerator

logger = logging.getLogger(__name__)

SpinStage = Literal["groups", "final"]


@dataclass(eq=False)
class Group:
    group_number: int
    seating: Seating
    ledger: BetLedger
    state: RoundState = field(default_factory=RoundState)
    total_pot: int = 0
    winner: Player | None = None

    @property
    def players(self) -> list[Player]:
        return list(self.seating)


@dataclass
class TournamentState:
    groups: list[Group] = field(default_factory=list)
    group_winners: tuple[Player, ...] = ()
    finalists: tuple[Player, ...] = ()
    grand_winner: Player | None = None

    @property
    def total_pot(self) -> int:
        return sum(group.total_pot for group in self.groups)


class TournamentCoordinator:
    def __init__(
        self,
        tournament_id: str,
        profile: Profile,
        *,
        balances: BalanceStore,
        events: EventStream,
        rank_tracker: RankTracker,
        settings: Settings | None = None,
        loop: TimerLoop | None = None,
        generator: WheelOutcomeGenerator | None = None,
        rng: random.Random | None = None,
        commentary: CommentaryService | None = None,
        on_closed: Callable[[str], None] | None = None,
    ) -> None:
        self.tournament_id = tournament_id
        self.settings = settings or get_settings()
        self.balances = balances
        self.events = events
        self.rank_tracker = rank_tracker
        self.scheduler = RoundScheduler(loop)
        self.generator = generator or WheelOutcomeGenerator()
        self.rng = rng or random.Random()
        self.commentary = CommentaryDispatcher(commentary, events)
        self.on_closed = on_closed

        self.stage = TournamentStage.ENTRY
        self.timer = 0
        self.human = HumanPlayer.from_profile(profile)
        self.human_group: Group | None = None
        self.group_colors = palette(self.settings.tournament_group_size)
        self.group_segments: list[Segment] = group_wheel(self.group_colors)
        self.final_segments: list[Segment] = []
        self.final_state = RoundState()
        self.final_ledger = BetLedger(balances, min_bet=0)
        self.group_spin = SpinLock()
        self.state = TournamentState(groups=self._compose_groups())
        self.eliminated = False
        self.rank_up: RankUp | None = None

        self._countdown_seconds = 0
        self._elapsed = 0.0
        self._on_expire: Callable[[], None] | None = None

    @property
    def group_winners(self) -> tuple[Player, ...]:
        return self.state.group_winners

    @property
    def grand_winner(self) -> Player | None:
        return self.state.grand_winner

    @property
    def closed(self) -> bool:
        return self.stage == TournamentStage.CLOSED

    @property
    def human_advanced(self) -> bool:
        return any(winner.id == self.human.id for winner in self.state.group_winners)

    def _compose_groups(self) -> list[Group]:
        settings = self.settings
        human_group = self.rng.randrange(settings.tournament_groups)
        human_seat = self.rng.randrange(settings.tournament_group_size)
        open_account = getattr(self.balances, "open_account", None)
        groups: list[Group] = []
        for group_index in range(settings.tournament_groups):
            group_number = group_index + 1
            bots = make_bots(
                settings.tournament_group_size,
                rng=self.rng,
                prefix=f"{self.tournament_id}-g{group_number}",
                confirm_probability=settings.tournament_bot_entry_probability,
                min_bet=settings.tournament_entry_fee,
                max_bet=settings.tournament_entry_fee,
                numbered=True,
            )
            players: list[Player] = list(bots)
            if group_index == human_group:
                players[human_seat] = self.human
            if open_account is not None:
                for bot in players:
                    if isinstance(bot, BotPlayer):
                        open_account(bot.id, settings.bot_starting_balance)
            seating = Seating(players)
            seating.assign_colors(self.group_colors)
            ledger = BetLedger(self.balances, min_bet=settings.tournament_entry_fee)
            ledger.register(seating)
            group = Group(group_number=group_number, seating=seating, ledger=ledger)
            if group_index == human_group:
                self.human_group = group
            groups.append(group)
        return groups

    def _set_stage(self, stage: TournamentStage, timer: int = 0) -> None:
        previous = self.stage
        self.stage = stage
        self.timer = timer
        logger.info("Tournament %s: %s -> %s", self.tournament_id, previous.value, stage.value)
        self.events.publish("tournament_stage", stage=stage.value, previous=previous.value, timer=timer)

    def _countdown(self, stage: TournamentStage, seconds: int, on_expire: Callable[[], None]) -> None:
        self._set_stage(stage, seconds)
        self._countdown_seconds = seconds
        self._elapsed = 0.0
        self._on_expire = on_expire
        if seconds <= 0:
            self._expire()
            return
        self.scheduler.schedule(self.settings.tick_seconds, self._tick)

    def _tick(self) -> None:
        self._elapsed += self.settings.tick_seconds
        self.timer = max(0, math.ceil(self._countdown_seconds - self._elapsed - EPSILON))
        if self._elapsed >= self._countdown_seconds - EPSILON:
            self._expire()
            return
        self.events.publish("timer", stage=self.stage.value, seconds=self.timer)
        self.scheduler.schedule(self.settings.tick_seconds, self._tick)

    def _expire(self) -> None:
        on_expire, self._on_expire = self._on_expire, None
        if on_expire is not None:
            on_expire()

    # entry ------------------------------------------------------------

    def enter(self) -> None:
        if self.stage != TournamentStage.ENTRY:
            raise InvalidPhase(f"Tournament already in {self.stage.value}")
        fee = self.settings.tournament_entry_fee
        balance = self.balances.balance_of(self.human.id)
        if balance < fee:
            raise InsufficientFunds(self.human.id, fee, balance)
        group = self.human_group
        group.ledger.place(self.human, fee)
        group.ledger.confirm(self.human)

        for group in self.state.groups:
            for player in group.seating:
                if not isinstance(player, BotPlayer) or not player.decides_to_bet(self.rng):
                    continue
                if self.balances.balance_of(player.id) < fee:
                    continue
                group.ledger.place(player, fee)
                group.ledger.confirm(player)
            self.events.publish("group_roster", **self._group_payload(group))

        self._countdown(TournamentStage.BRACKET_VIEW, self.settings.bracket_view_seconds, self._start_group_countdown)

    def _start_group_countdown(self) -> None:
        self._countdown(TournamentStage.GROUP_COUNTDOWN, self.settings.group_countdown_seconds, self.trigger_group_spin)

    # group stage ------------------------------------------------------

    def trigger_group_spin(self) -> bool:
        if self.stage != TournamentStage.GROUP_COUNTDOWN or not self.group_spin.begin():
            logger.debug("Ignoring group spin trigger in %s", self.stage.value)
            return False
        self.scheduler.cancel()
        targets: dict[int, int] = {}
        try:
            for group in self.state.groups:
                group.total_pot = group.ledger.lock()
                group.state.pot = group.total_pot
                targets[group.group_number] = self.generator.resolve(self.group_segments)
        except InvalidSegmentSet:
            logger.exception("Tournament %s has no group segments, aborting", self.tournament_id)
            self._finish_without_champion()
            return False
        for group in self.state.groups:
            group.state.commit_target(targets[group.group_number])
            group.state.spin_lock.begin()
        self._set_stage(TournamentStage.GROUP_SPIN)
        self.events.publish(
            "spin_started",
            stage="groups",
            targets={str(number): index for number, index in targets.items()},
        )
        return True

    def spin_ended(self, stage: SpinStage | None = None) -> bool:
        if stage is not None and stage != self._spinning_stage():
            logger.debug("Ignoring %s spin signal for tournament %s in %s", stage, self.tournament_id, self.stage.value)
            return False
        if self.stage == TournamentStage.GROUP_SPIN and self.group_spin.finish():
            self._resolve_groups()
            return True
        if self.stage == TournamentStage.FINAL_SPIN and self.final_state.spin_lock.finish():
            self._resolve_final()
            return True
        logger.debug("Ignoring duplicate spin signal for tournament %s in %s", self.tournament_id, self.stage.value)
        return False

    def _spinning_stage(self) -> SpinStage | None:
        if self.stage == TournamentStage.GROUP_SPIN:
            return "groups"
        if self.stage == TournamentStage.FINAL_SPIN:
            return "final"
        return None

    def _resolve_groups(self) -> None:
        winners: list[Player] = []
        for group in self.state.groups:
            group.state.spin_lock.finish()
            winning_color = self.group_segments[group.state.target_index].color
            matches = [player for player in group.ledger.confirmed if player.assigned_color == winning_color]
            if matches:
                group.winner = self.rng.choice(matches)
                winners.append(group.winner)
            else:
                logger.info("Group %s has no confirmed %s player, nobody advances", group.group_number, winning_color)
        self.state.group_winners = tuple(winners)
        self.events.publish(
            "group_winners",
            winners=[self._player_payload(winner) for winner in winners],
            user_advanced=self.human_advanced,
        )
        dwell = self.settings.winner_dwell_seconds if self.human_advanced else self.settings.loser_dwell_seconds
        self._countdown(TournamentStage.GROUP_RESULT, dwell, self._after_group_result)

    def _after_group_result(self) -> None:
        if not self.human_advanced:
            self.eliminated = True
            self.events.publish("eliminated", player_id=self.human.id)
        if not self.state.group_winners:
            self._finish_without_champion()
            return
        colors = palette(len(self.state.group_winners))
        self.state.finalists = tuple(
            replace(winner, assigned_color=color) for winner, color in zip(self.state.group_winners, colors)
        )
        self.final_ledger.register(self.state.finalists)
        if len(self.state.finalists) == 2:
            self.final_segments = duel_wheel(colors)
        else:
            self.final_segments = finalist_wheel([finalist.username for finalist in self.state.finalists], colors)
        self.events.publish(
            "final_roster",
            finalists=[self._player_payload(finalist) for finalist in self.state.finalists],
        )
        self._countdown(TournamentStage.FINAL_COLOR, self.settings.final_color_seconds, self._start_final_countdown)

    # grand final ------------------------------------------------------

    def _start_final_countdown(self) -> None:
        self._countdown(TournamentStage.FINAL_COUNTDOWN, self.settings.final_countdown_seconds, self.trigger_final_spin)

    def trigger_final_spin(self) -> bool:
        if self.stage != TournamentStage.FINAL_COUNTDOWN or self.final_state.target_index is not None:
            logger.debug("Ignoring final spin trigger in %s", self.stage.value)
            return False
        try:
            target = self.generator.resolve(self.final_segments)
        except InvalidSegmentSet:
            logger.exception("Tournament %s has no final segments, aborting", self.tournament_id)
            self._finish_without_champion()
            return False
        self.scheduler.cancel()
        self.final_state.pot = self.state.total_pot
        self.final_state.commit_target(target)
        self.final_state.spin_lock.begin()
        self._set_stage(TournamentStage.FINAL_SPIN)
        self.events.publish("spin_started", stage="final", target_index=target)
        return True

    def _final_winner(self, segment: Segment) -> Player:
        finalists = self.state.finalists
        if len(finalists) == 2:
            return finalists[segment.value]
        return next(finalist for finalist in finalists if finalist.assigned_color == segment.color)

    def _resolve_final(self) -> None:
        segment = self.final_segments[self.final_state.target_index]
        winner = self._final_winner(segment)
        settlement = self.final_ledger.award(winner, self.state.total_pot)
        self.state.grand_winner = winner
        logger.info("Tournament %s champion %s wins %s", self.tournament_id, winner.id, settlement.amount)
        if winner.id == self.human.id:
            self.rank_up = self.rank_tracker.record_win()
            if self.rank_up is not None:
                self.events.publish(
                    "rank_up",
                    player_id=self.human.id,
                    previous=self.rank_up.previous.value,
                    current=self.rank_up.current.value,
                    rank_xp=self.rank_up.rank_xp,
                )
        self._set_stage(TournamentStage.FINAL_RESULT)
        self._publish_grand_winner(settlement)
        self.commentary.dispatch(
            winner.username,
            settlement.amount,
            sum(len(group.seating) for group in self.state.groups),
            stage="final",
        )

    def _finish_without_champion(self) -> None:
        self.scheduler.cancel()
        refunds: dict[str, int] = {}
        for group in self.state.groups:
            refunds.update(group.ledger.refund_all().refunds)
        self._set_stage(TournamentStage.FINAL_RESULT)
        self._publish_grand_winner(Settlement(winner_id=None, amount=0, pot=self.state.total_pot, refunds=refunds))

    def _publish_grand_winner(self, settlement: Settlement) -> None:
        self.events.publish(
            "grand_winner",
            winner_id=settlement.winner_id,
            amount=settlement.amount,
            is_user_win=settlement.winner_id == self.human.id,
            pot_returned=bool(settlement.refunds),
        )

    # teardown ---------------------------------------------------------

    def leave(self) -> None:
        self.close(CloseReason.LEFT)

    def close(self, reason: CloseReason) -> None:
        if self.closed:
            return
        self.scheduler.cancel()
        self.commentary.cancel()
        self._set_stage(TournamentStage.CLOSED)
        self.events.publish("room_closed", room_id=self.tournament_id, reason=reason.value)
        if self.on_closed is not None:
            self.on_closed(self.tournament_id)

    # views ------------------------------------------------------------

    @staticmethod
    def _player_payload(player: Player) -> dict[str, Any]:
        return {
            "id": player.id,
            "username": player.username,
            "avatar": player.avatar,
            "rank": player.rank,
            "assigned_color": player.assigned_color,
            "bet_amount": player.bet_amount,
            "status": player.status,
            "is_bot": player.is_bot,
        }

    def _group_payload(self, group: Group) -> dict[str, Any]:
        return {
            "group_number": group.group_number,
            "total_pot": group.ledger.pot(),
            "players": [self._player_payload(player) for player in group.seating],
            "winner_id": group.winner.id if group.winner else None,
            "target_index": group.state.target_index,
        }

    def snapshot(self) -> dict[str, Any]:
        return {
            "tournament_id": self.tournament_id,
            "stage": self.stage,
            "timer": self.timer,
            "total_pot": sum(group.ledger.pot() for group in self.state.groups),
            "user_group": self.human_group.group_number if self.human_group else None,
            "user_color": self.human.assigned_color,
            "eliminated": self.eliminated,
            "groups": [self._group_payload(group) for group in self.state.groups],
            "group_winners": [self._player_payload(winner) for winner in self.state.group_winners],
            "finalists": [self._player_payload(finalist) for finalist in self.state.finalists],
            "final_target_index": self.final_state.target_index,
            "grand_winner": None
            if self.state.grand_winner is None
            else self._player_payload(self.state.grand_winner),
            "rank_up": None
            if self.rank_up is None
            else {"previous": self.rank_up.previous, "current": self.rank_up.current, "rank_xp": self.rank_up.rank_xp},
        }

