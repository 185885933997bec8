import random
from dataclasses import dataclass, field
from typing import ClassVar, Literal, Union

from ..enums import PlayerStatus, UserRank

BOT_NAMES = (
    "CryptoKing",
    "LuckySpinner",
    "WheelMaster",
    "JackpotJoe",
    "RiskTaker99",
    "SafeBetSally",
    "NeonGhost",
    "CyberVortex",
    "PixelKing",
    "ShadowEcho",
    "VortexRider",
    "ThunderStrike",
    "NovaBlast",
    "SilentRunner",
    "IceReaper",
    "PhantomEye",
    "CrimsonFury",
    "VoidWalker",
    "TitanForce",
    "SolarFlare",
)

RANK_CYCLE = (UserRank.ROOKIE, UserRank.PRO, UserRank.MASTER, UserRank.LEGEND)


@dataclass(frozen=True)
class Profile:
    id: str
    username: str
    avatar: str = ""
    rank: UserRank = UserRank.ROOKIE
    rank_xp: int = 0


@dataclass(eq=False)
class Player:
    id: str
    username: str
    avatar: str = ""
    rank: UserRank = UserRank.ROOKIE
    assigned_color: str = ""
    bet_amount: int = 0
    status: PlayerStatus = PlayerStatus.IDLE

    kind: ClassVar[str] = "player"

    @property
    def is_bot(self) -> bool:
        return self.kind == "bot"

    def reset(self) -> None:
        self.bet_amount = 0
        self.status = PlayerStatus.IDLE


@dataclass(eq=False)
class HumanPlayer(Player):
    kind: ClassVar[Literal["human"]] = "human"

    @classmethod
    def from_profile(cls, profile: Profile) -> "HumanPlayer":
        return cls(id=profile.id, username=profile.username, avatar=profile.avatar, rank=profile.rank)


@dataclass(eq=False)
class BotPlayer(Player):
    confirm_probability: float = 0.4
    min_bet: int = 50
    max_bet: int = 549
    kind: ClassVar[Literal["bot"]] = "bot"

    def decides_to_bet(self, rng: random.Random) -> bool:
        return rng.random() < self.confirm_probability

    def pick_amount(self, rng: random.Random) -> int:
        return rng.randint(self.min_bet, self.max_bet)


SeatPlayer = Union[HumanPlayer, BotPlayer]


def make_bots(
    count: int,
    *,
    rng: random.Random,
    prefix: str = "bot",
    confirm_probability: float = 0.4,
    min_bet: int = 50,
    max_bet: int = 549,
    numbered: bool = False,
) -> list[BotPlayer]:
    bots: list[BotPlayer] = []
    for index in range(count):
        name = rng.choice(BOT_NAMES)
        if numbered:
            name = f"{name}{rng.randint(0, 998)}"
        bots.append(
            BotPlayer(
                id=f"{prefix}-{index}",
                username=name,
                avatar=f"https://api.dicebear.com/7.x/pixel-art/svg?seed={name}",
                rank=RANK_CYCLE[index % len(RANK_CYCLE)],
                confirm_probability=confirm_probability,
                min_bet=min_bet,
                max_bet=max_bet,
            )
        )
    return bots


@dataclass
class Seating:
    """Ordered seats of a room or group, with a one-color-per-player guarantee."""

    players: list[SeatPlayer] = field(default_factory=list)

    def get(self, player_id: str) -> SeatPlayer | None:
        return next((player for player in self.players if player.id == player_id), None)

    def remove(self, player_id: str) -> SeatPlayer | None:
        player = self.get(player_id)
        if player is not None:
            self.players.remove(player)
        return player

    def holder_of(self, color: str) -> SeatPlayer | None:
        return next((player for player in self.players if player.assigned_color == color), None)

    def assign_colors(self, colors: list[str]) -> None:
        if len(colors) < len(self.players):
            raise ValueError("Not enough distinct colors for every seat")
        if len(set(colors)) != len(colors):
            raise ValueError("Seat colors must be pairwise distinct")
        for player, color in zip(self.players, colors):
            player.assigned_color = color

    def __iter__(self):
        return iter(self.players)

    def __len__(self) -> int:
        return len(self.players)
