import logging
import random
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict

from ..config import Settings, get_settings
from ..enums import CloseReason, Phase, RoomMode, TournamentStage
from ..events.manager import ConnectionManager, manager
from ..game.exceptions import RankTooLow, RoomNotFound
from ..game.ledger import InMemoryBalanceStore
from ..game.players import Profile
from ..game.ranks import RankTracker
from ..game.room import RoomSessionController
from ..game.scheduler import TimerLoop
from ..game.tournament import TournamentCoordinator
from ..game.wheel import WheelOutcomeGenerator
from .commentary import CommentaryService, get_commentary_service

logger = logging.getLogger(__name__)

IDLE_ROOM_PHASES = (Phase.PRE_GAME, Phase.RESULT, Phase.SPINNING)
IDLE_TOURNAMENT_STAGES = (TournamentStage.GROUP_SPIN, TournamentStage.FINAL_SPIN, TournamentStage.FINAL_RESULT)


@dataclass
class Session:
    controller: RoomSessionController | TournamentCoordinator
    owner_id: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    touched_at: datetime = field(default_factory=datetime.utcnow)

    def touch(self) -> None:
        self.touched_at = datetime.utcnow()


class SessionRegistry:
    """Live rooms and tournaments of this process, with their shared balances."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        connections: ConnectionManager | None = None,
        balances: InMemoryBalanceStore | None = None,
        commentary: CommentaryService | None = None,
        loop: TimerLoop | None = None,
        generator_factory: Callable[[], WheelOutcomeGenerator] = WheelOutcomeGenerator,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.connections = connections or manager
        self.balances = balances or InMemoryBalanceStore(self.settings.starting_balance)
        self.commentary = commentary
        self.loop = loop
        self.generator_factory = generator_factory
        self.rng = rng or random.Random()
        self.rooms: Dict[str, Session] = {}
        self.tournaments: Dict[str, Session] = {}
        self.trackers: Dict[str, RankTracker] = {}

    def _generate_code(self) -> str:
        while True:
            code = "".join(self.rng.choices(string.ascii_uppercase + string.digits, k=6))
            if code not in self.rooms and code not in self.tournaments:
                return code

    def _commentary(self) -> CommentaryService:
        if self.commentary is None:
            self.commentary = get_commentary_service(self.settings)
        return self.commentary

    def rank_tracker(self, profile: Profile) -> RankTracker:
        tracker = self.trackers.get(profile.id)
        if tracker is None:
            tracker = RankTracker(profile.rank, profile.rank_xp, wins_per_rank=self.settings.wins_per_rank)
            self.trackers[profile.id] = tracker
        return tracker

    def current_profile(self, profile: Profile) -> Profile:
        """The token's profile with the rank this process has tracked since."""
        tracker = self.rank_tracker(profile)
        return Profile(
            id=profile.id,
            username=profile.username,
            avatar=profile.avatar,
            rank=tracker.rank,
            rank_xp=tracker.rank_xp,
        )

    def register_player(self, profile: Profile) -> Profile:
        self.balances.open_account(profile.id)
        return self.current_profile(profile)

    # rooms ------------------------------------------------------------

    def create_room(
        self,
        profile: Profile,
        mode: RoomMode,
        *,
        name: str | None = None,
        min_bet: int | None = None,
    ) -> RoomSessionController:
        profile = self.register_player(profile)
        if mode == RoomMode.CUSTOM and not self.rank_tracker(profile).can_create_rooms():
            raise RankTooLow(f"{profile.rank.value} players cannot create custom rooms")
        room_id = self._generate_code()
        controller = RoomSessionController(
            room_id,
            mode,
            profile,
            balances=self.balances,
            events=self.connections.stream(room_id),
            settings=self.settings,
            loop=self.loop,
            generator=self.generator_factory(),
            rng=random.Random(self.rng.random()),
            commentary=self._commentary(),
            name=name,
            min_bet=min_bet,
            on_closed=self._room_closed,
        )
        self.rooms[room_id] = Session(controller=controller, owner_id=profile.id)
        logger.info("Room %s (%s) created by %s", room_id, mode.value, profile.id)
        return controller

    def get_room(self, room_id: str, *, touch: bool = True) -> RoomSessionController:
        session = self.rooms.get(room_id)
        if session is None:
            raise RoomNotFound(room_id)
        if touch:
            session.touch()
        return session.controller

    def _room_closed(self, room_id: str) -> None:
        if self.rooms.pop(room_id, None) is not None:
            logger.info("Room %s closed", room_id)
        self.connections.drop_stream(room_id)

    # tournaments ------------------------------------------------------

    def enter_tournament(self, profile: Profile) -> TournamentCoordinator:
        profile = self.register_player(profile)
        tournament_id = f"GP-{self._generate_code()}"
        coordinator = TournamentCoordinator(
            tournament_id,
            profile,
            balances=self.balances,
            events=self.connections.stream(tournament_id),
            rank_tracker=self.rank_tracker(profile),
            settings=self.settings,
            loop=self.loop,
            generator=self.generator_factory(),
            rng=random.Random(self.rng.random()),
            commentary=self._commentary(),
            on_closed=self._tournament_closed,
        )
        coordinator.enter()
        self.tournaments[tournament_id] = Session(controller=coordinator, owner_id=profile.id)
        logger.info("Tournament %s entered by %s", tournament_id, profile.id)
        return coordinator

    def get_tournament(self, tournament_id: str, *, touch: bool = True) -> TournamentCoordinator:
        session = self.tournaments.get(tournament_id)
        if session is None:
            raise RoomNotFound(tournament_id)
        if touch:
            session.touch()
        return session.controller

    def _tournament_closed(self, tournament_id: str) -> None:
        if self.tournaments.pop(tournament_id, None) is not None:
            logger.info("Tournament %s closed", tournament_id)
        self.connections.drop_stream(tournament_id)

    # cleanup ----------------------------------------------------------

    def delete_idle_rooms(self, *, cutoff: datetime, reason: CloseReason = CloseReason.IDLE_CLEANUP) -> int:
        stale_rooms = [
            session.controller
            for session in self.rooms.values()
            if session.touched_at < cutoff and session.controller.phase in IDLE_ROOM_PHASES
        ]
        stale_tournaments = [
            session.controller
            for session in self.tournaments.values()
            if session.touched_at < cutoff and session.controller.stage in IDLE_TOURNAMENT_STAGES
        ]
        for controller in [*stale_rooms, *stale_tournaments]:
            controller.close(reason)
        return len(stale_rooms) + len(stale_tournaments)


registry = SessionRegistry()
