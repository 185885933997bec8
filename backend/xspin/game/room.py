"""Room session controller.

Drives one room through ``PRE_GAME -> BETTING -> LOCKED -> SPINNING -> RESULT``
and back. Every timed phase is a countdown owned by a single
``RoundScheduler``; ``SPINNING`` is left only through ``spin_ended``.
"""
import asyncio
import logging
import math
import random
from dataclasses import dataclass, field
from typing import Any, Callable

from ..config import Settings, get_settings
from ..enums import CloseReason, Phase, PlayerStatus, RoomMode, SpinState
from ..events.manager import EventStream
from ..services.commentary import CommentaryService, fallback_commentary
from .exceptions import BetRejected, CommentaryUnavailable, InvalidPhase, InvalidSegmentSet, PlayerNotFound
from .inactivity import InactivityMonitor, WatchdogSignal
from .ledger import BalanceStore, BetLedger, Settlement
from .players import BotPlayer, HumanPlayer, Player, Profile, Seating, make_bots
from .scheduler import RoundScheduler, TimerLoop
from .segments import Segment, color_wheel, duel_wheel, palette
from .spin_lock import SpinLock
from .wheel import WheelOutcomeGenerator

logger = logging.getLogger(__name__)

EPSILON = 1e-9
DUEL_COLOR_POOL = 12


@dataclass
class RoundState:
    phase: Phase = Phase.PRE_GAME
    timer: int = 0
    target_index: int | None = None
    pot: int = 0
    round_number: int = 1
    spin_lock: SpinLock = field(default_factory=SpinLock)

    def commit_target(self, index: int) -> None:
        if self.target_index is not None:
            raise InvalidPhase(f"Round {self.round_number} already committed segment {self.target_index}")
        self.target_index = index


@dataclass(frozen=True)
class RoundResult:
    round_number: int
    winner_id: str | None
    amount: int
    pot: int
    is_user_win: bool
    segment: Segment | None = None
    refunds: dict[str, int] = field(default_factory=dict)
    aborted: bool = False

    @property
    def no_winner(self) -> bool:
        return self.winner_id is None

    def as_payload(self) -> dict[str, Any]:
        return {
            "round_number": self.round_number,
            "winner_id": self.winner_id,
            "amount": self.amount,
            "pot": self.pot,
            "is_user_win": self.is_user_win,
            "no_winner": self.no_winner,
            "pot_returned": bool(self.refunds),
            "aborted": self.aborted,
            "segment": None
            if self.segment is None
            else {"label": self.segment.label, "color": self.segment.color, "value": self.segment.value},
        }


class CommentaryDispatcher:
    """Fire-and-forget commentary requests that never block phase progression."""

    def __init__(self, service: CommentaryService | None, events: EventStream) -> None:
        self.service = service
        self.events = events
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, winner_name: str | None, amount: int, player_count: int, **tags: Any) -> None:
        if self.service is None or not winner_name:
            self.events.publish("commentary", text=fallback_commentary(winner_name, amount), **tags)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop for commentary, using fallback line")
            self.events.publish("commentary", text=fallback_commentary(winner_name, amount), **tags)
            return
        task = loop.create_task(self._commentate(winner_name, amount, player_count, tags))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _commentate(self, winner_name: str, amount: int, player_count: int, tags: dict[str, Any]) -> None:
        try:
            text = await self.service.request_commentary(winner_name, amount, player_count)
        except CommentaryUnavailable as exc:
            logger.warning("Commentary unavailable: %s", exc)
            text = fallback_commentary(winner_name, amount)
        except Exception:  # noqa: BLE001
            logger.exception("Commentary collaborator failed")
            text = fallback_commentary(winner_name, amount)
        self.events.publish("commentary", text=text, **tags)

    def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


class RoomSessionController:
    def __init__(
        self,
        room_id: str,
        mode: RoomMode,
        profile: Profile,
        *,
        balances: BalanceStore,
        events: EventStream,
        settings: Settings | None = None,
        loop: TimerLoop | None = None,
        generator: WheelOutcomeGenerator | None = None,
        rng: random.Random | None = None,
        commentary: CommentaryService | None = None,
        name: str | None = None,
        min_bet: int | None = None,
        on_closed: Callable[[str], None] | None = None,
    ) -> None:
        self.room_id = room_id
        self.mode = mode
        self.settings = settings or get_settings()
        self.name = name or f"{mode.value.upper()} {room_id}"
        self.balances = balances
        self.events = events
        self.scheduler = RoundScheduler(loop)
        self.generator = generator or WheelOutcomeGenerator()
        self.rng = rng or random.Random()
        self.commentary = CommentaryDispatcher(commentary, events)
        self.on_closed = on_closed

        self.human = HumanPlayer.from_profile(profile)
        bot_count = 1 if mode == RoomMode.DUEL else self.settings.blitz_seats - 1
        bots = make_bots(
            bot_count,
            rng=self.rng,
            prefix=f"{room_id}-bot",
            confirm_probability=self.settings.bot_confirm_probability,
            min_bet=self.settings.bot_min_bet,
            max_bet=self.settings.bot_max_bet,
        )
        open_account = getattr(balances, "open_account", None)
        if open_account is not None:
            for bot in bots:
                open_account(bot.id, self.settings.bot_starting_balance)
        self.seating = Seating([self.human, *bots])

        self.min_bet = min_bet if min_bet is not None else self.settings.min_bet
        self.ledger = BetLedger(balances, min_bet=self.min_bet, max_bet=self.settings.max_bet)
        self.ledger.register(self.seating)
        self.state = RoundState()
        self.monitor = self._new_monitor()
        self.result: RoundResult | None = None
        self.play_again_offered = False
        self.inactivity_warning: int | None = None

        self._room_colors = palette(len(self.seating)) if mode != RoomMode.DUEL else []
        self.segments: list[Segment] = []
        self._assign_colors()

        self._countdown_seconds = 0
        self._elapsed = 0.0
        self._on_expire: Callable[[], None] | None = None
        self._on_tick: Callable[[], None] | None = None

    @property
    def is_duel(self) -> bool:
        return self.mode == RoomMode.DUEL

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def closed(self) -> bool:
        return self.state.phase == Phase.CLOSED

    def _new_monitor(self) -> InactivityMonitor:
        return InactivityMonitor(self.settings.betting_seconds, self.settings.warning_fraction)

    def _assign_colors(self) -> None:
        if self.is_duel:
            colors = self.rng.sample(palette(DUEL_COLOR_POOL), 2)
            self.seating.assign_colors(colors)
            self.segments = duel_wheel(colors)
            return
        colors = list(self._room_colors)
        self.rng.shuffle(colors)
        self.seating.assign_colors(colors)
        self.segments = color_wheel(self._room_colors, multipliers=self.settings.segment_multipliers)

    def _player(self, player_id: str) -> Player:
        player = self.seating.get(player_id)
        if player is None:
            raise PlayerNotFound(player_id)
        return player

    def _set_phase(self, phase: Phase) -> None:
        previous = self.state.phase
        self.state.phase = phase
        logger.info("Room %s round %s: %s -> %s", self.room_id, self.state.round_number, previous.value, phase.value)
        self.events.publish(
            "phase_changed",
            phase=phase.value,
            previous=previous.value,
            round_number=self.state.round_number,
            timer=self.state.timer,
        )

    def _publish_player(self, player: Player) -> None:
        self.events.publish(
            "player_status",
            player_id=player.id,
            status=player.status.value,
            bet_amount=player.bet_amount,
            assigned_color=player.assigned_color,
        )

    def _publish_pot(self) -> None:
        self.events.publish("pot_updated", pot=self.ledger.pot(), locked=self.ledger.is_locked)

    # countdowns -------------------------------------------------------

    def _start_countdown(
        self,
        seconds: int,
        on_expire: Callable[[], None],
        on_tick: Callable[[], None] | None = None,
    ) -> None:
        self._countdown_seconds = seconds
        self._elapsed = 0.0
        self._on_expire = on_expire
        self._on_tick = on_tick
        self.state.timer = seconds
        self.scheduler.schedule(self.settings.tick_seconds, self._tick)

    def _tick(self) -> None:
        self._elapsed += self.settings.tick_seconds
        self.state.timer = max(0, math.ceil(self._countdown_seconds - self._elapsed - EPSILON))
        if self._on_tick is not None:
            self._on_tick()
            if self.closed:
                return
        if self._elapsed >= self._countdown_seconds - EPSILON:
            on_expire = self._on_expire
            self._on_expire = None
            self._on_tick = None
            if on_expire is not None:
                on_expire()
            return
        self.events.publish("timer", phase=self.state.phase.value, seconds=self.state.timer)
        self.scheduler.schedule(self.settings.tick_seconds, self._tick)

    # player operations ------------------------------------------------

    def place_bet(self, player_id: str, amount: int) -> Player:
        if self.state.phase not in (Phase.PRE_GAME, Phase.BETTING):
            raise InvalidPhase(f"Bets are not accepted during {self.state.phase.value}")
        player = self._player(player_id)
        self.ledger.place(player, amount)
        self._publish_player(player)
        return player

    def confirm_bet(self, player_id: str) -> Player:
        if self.state.phase != Phase.BETTING:
            raise InvalidPhase(f"Bets can only be confirmed during BETTING, not {self.state.phase.value}")
        player = self._player(player_id)
        self.ledger.confirm(player)
        if player is self.human:
            self.monitor.disarm()
            self.inactivity_warning = None
        self._publish_player(player)
        self._publish_pot()
        return player

    def cancel_bet(self, player_id: str) -> Player:
        if self.state.phase not in (Phase.PRE_GAME, Phase.BETTING):
            raise InvalidPhase(f"Bets cannot be cancelled during {self.state.phase.value}")
        player = self._player(player_id)
        self.ledger.cancel(player)
        self._publish_player(player)
        return player

    def ready(self) -> None:
        if self.state.phase != Phase.PRE_GAME:
            raise InvalidPhase(f"Room is already in {self.state.phase.value}")
        if self.human.status != PlayerStatus.PLACED:
            raise InvalidPhase("Place an entry bet before joining the betting window")
        self._enter_betting()

    # phases -----------------------------------------------------------

    def _enter_betting(self) -> None:
        self.state.timer = self.settings.betting_seconds
        if self.human.status != PlayerStatus.CONFIRMED:
            self.monitor.arm()
        self._set_phase(Phase.BETTING)
        self._start_countdown(self.settings.betting_seconds, self._enter_locked, self._betting_tick)

    def _betting_tick(self) -> None:
        self._bots_act()
        event = self.monitor.check(self._elapsed)
        if event is None:
            return
        if event.signal == WatchdogSignal.WARN:
            self.inactivity_warning = event.seconds_remaining
            self.events.publish(
                "inactivity_warning",
                player_id=self.human.id,
                seconds_remaining=event.seconds_remaining,
            )
        elif event.signal == WatchdogSignal.KICK:
            self._evict(self.human)

    def _bots_act(self) -> None:
        for player in self.seating:
            if not isinstance(player, BotPlayer) or player.status != PlayerStatus.IDLE:
                continue
            if not player.decides_to_bet(self.rng):
                continue
            amount = min(player.pick_amount(self.rng), self.balances.balance_of(player.id))
            try:
                self.ledger.place(player, amount)
                self.ledger.confirm(player)
            except BetRejected as exc:
                logger.debug("Bot %s skipped this round: %s", player.id, exc)
                player.reset()
                continue
            self._publish_player(player)
            self._publish_pot()

    def _enter_locked(self) -> None:
        self.monitor.disarm()
        self.inactivity_warning = None
        self.state.pot = self.ledger.lock()
        self.state.timer = self.settings.locked_seconds
        self._set_phase(Phase.LOCKED)
        self._publish_pot()
        self._start_countdown(self.settings.locked_seconds, self.trigger_spin)

    def trigger_spin(self) -> bool:
        if self.state.phase != Phase.LOCKED:
            logger.debug("Ignoring spin trigger in %s", self.state.phase.value)
            return False
        if self.state.spin_lock.state != SpinState.IDLE:
            logger.debug("Ignoring spin trigger, %r", self.state.spin_lock)
            return False
        try:
            target = self.generator.resolve(self.segments)
        except InvalidSegmentSet:
            logger.exception("Room %s has no wheel segments, aborting round", self.room_id)
            self._abort_round()
            return False
        self.scheduler.cancel()
        self.state.commit_target(target)
        self.state.spin_lock.begin()
        self.state.timer = 0
        self._set_phase(Phase.SPINNING)
        segment = self.segments[target]
        self.events.publish(
            "spin_started",
            round_number=self.state.round_number,
            target_index=target,
            segment={"label": segment.label, "color": segment.color, "value": segment.value},
        )
        return True

    def spin_ended(self, round_number: int | None = None) -> bool:
        if self.state.phase != Phase.SPINNING:
            logger.debug("Ignoring spin signal for room %s in %s", self.room_id, self.state.phase.value)
            return False
        if round_number is not None and round_number != self.state.round_number:
            logger.debug("Ignoring spin signal for round %s in round %s", round_number, self.state.round_number)
            return False
        if not self.state.spin_lock.finish():
            logger.debug("Ignoring duplicate spin signal for room %s, %r", self.room_id, self.state.spin_lock)
            return False
        self._enter_result()
        return True

    def _enter_result(self) -> None:
        segment = self.segments[self.state.target_index]
        settlement = self.ledger.settle(segment, is_duel=self.is_duel, seats=list(self.seating))
        self.result = self._result_from(settlement, segment)
        self.state.timer = self.settings.result_dwell_seconds
        self._set_phase(Phase.RESULT)
        self.events.publish("round_result", **self.result.as_payload())
        winner = self.seating.get(settlement.winner_id) if settlement.winner_id else None
        self.commentary.dispatch(
            winner.username if winner else None,
            settlement.amount,
            len(self.seating),
            round_number=self.state.round_number,
        )
        self._start_countdown(self.settings.result_dwell_seconds, self._offer_play_again)

    def _abort_round(self) -> None:
        self.scheduler.cancel()
        settlement = self.ledger.refund_all()
        self.result = self._result_from(settlement, None, aborted=True)
        self.state.timer = self.settings.result_dwell_seconds
        self._set_phase(Phase.RESULT)
        self.events.publish("round_result", **self.result.as_payload())
        self._start_countdown(self.settings.result_dwell_seconds, self._offer_play_again)

    def _result_from(self, settlement: Settlement, segment: Segment | None, *, aborted: bool = False) -> RoundResult:
        return RoundResult(
            round_number=self.state.round_number,
            winner_id=settlement.winner_id,
            amount=settlement.amount,
            pot=settlement.pot,
            is_user_win=settlement.winner_id == self.human.id,
            segment=segment,
            refunds=dict(settlement.refunds),
            aborted=aborted,
        )

    def _offer_play_again(self) -> None:
        self.play_again_offered = True
        self.events.publish("play_again_offered", round_number=self.state.round_number)

    def play_again(self, *, rebet: bool = False) -> None:
        if self.state.phase != Phase.RESULT:
            raise InvalidPhase(f"Cannot start a new round during {self.state.phase.value}")
        if not self.play_again_offered:
            raise InvalidPhase("Play again is offered once the result has been shown")
        previous_stake = self.human.bet_amount
        self.scheduler.cancel()
        self.ledger.reset()
        self.state = RoundState(round_number=self.state.round_number + 1)
        self.monitor = self._new_monitor()
        self.result = None
        self.play_again_offered = False
        self._assign_colors()
        self.events.publish(
            "round_reset",
            round_number=self.state.round_number,
            assigned_colors={player.id: player.assigned_color for player in self.seating},
        )
        self._set_phase(Phase.PRE_GAME)
        if rebet and previous_stake:
            try:
                self.place_bet(self.human.id, previous_stake)
            except BetRejected as exc:
                logger.info("Rebet of %s refused for %s: %s", previous_stake, self.human.id, exc)
                return
            self._enter_betting()

    # teardown ---------------------------------------------------------

    def _evict(self, player: Player) -> None:
        logger.info("Evicting %s from room %s for inactivity", player.id, self.room_id)
        if player.status == PlayerStatus.PLACED:
            player.reset()
        self.seating.remove(player.id)
        self.ledger.forget(player.id)
        self.events.publish("player_evicted", player_id=player.id, requires_ack=True)
        self.close(CloseReason.INACTIVITY)

    def leave(self) -> None:
        self.close(CloseReason.LEFT)

    def close(self, reason: CloseReason) -> None:
        if self.closed:
            return
        self.scheduler.cancel()
        self.monitor.disarm()
        self.commentary.cancel()
        self._set_phase(Phase.CLOSED)
        self.events.publish("room_closed", room_id=self.room_id, reason=reason.value)
        if self.on_closed is not None:
            self.on_closed(self.room_id)

    # views ------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        spinning_or_later = self.state.phase in (Phase.SPINNING, Phase.RESULT)
        return {
            "room_id": self.room_id,
            "name": self.name,
            "mode": self.mode,
            "phase": self.state.phase,
            "round_number": self.state.round_number,
            "timer": self.state.timer,
            "pot": self.ledger.pot(),
            "min_bet": self.min_bet,
            "spin_state": self.state.spin_lock.state,
            "target_index": self.state.target_index if spinning_or_later else None,
            "inactivity_warning": self.inactivity_warning,
            "play_again_offered": self.play_again_offered,
            "players": [
                {
                    "id": player.id,
                    "username": player.username,
                    "avatar": player.avatar,
                    "rank": player.rank,
                    "assigned_color": player.assigned_color,
                    "bet_amount": player.bet_amount,
                    "status": player.status,
                    "is_bot": player.is_bot,
                }
                for player in self.seating
            ],
            "segments": [
                {"label": segment.label, "color": segment.color, "value": segment.value}
                for segment in self.segments
            ],
            "result": None if self.result is None else self.result.as_payload(),
        }