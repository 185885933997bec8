from dataclasses import dataclass

from ..enums import UserRank

RANK_PROGRESSION = (UserRank.ROOKIE, UserRank.PRO, UserRank.MASTER, UserRank.LEGEND)

RANK_CONFIG = {
    UserRank.ROOKIE: {"label": "ROOKIE", "color": "#64748b", "min_wins": 0, "privilege": "Standard Access"},
    UserRank.PRO: {"label": "PRO", "color": "#ffd700", "min_wins": 5, "privilege": "4% Deposit Bonus"},
    UserRank.MASTER: {"label": "MASTER", "color": "#bf00ff", "min_wins": 10, "privilege": "Create Room Access"},
    UserRank.LEGEND: {"label": "LEGEND", "color": "#00ffff", "min_wins": 15, "privilege": "10% Winnings Bonus"},
}

ROOM_CREATOR_RANKS = (UserRank.MASTER, UserRank.LEGEND)


@dataclass(frozen=True)
class RankUp:
    previous: UserRank
    current: UserRank
    rank_xp: int


class RankTracker:
    """Tournament win counter for one player, alive for the whole session."""

    def __init__(self, rank: UserRank = UserRank.ROOKIE, rank_xp: int = 0, *, wins_per_rank: int = 5) -> None:
        self.rank = rank
        self.rank_xp = rank_xp
        self.wins_per_rank = wins_per_rank

    def record_win(self) -> RankUp | None:
        self.rank_xp += 1
        if self.rank_xp % self.wins_per_rank != 0:
            return None
        index = RANK_PROGRESSION.index(self.rank)
        if index >= len(RANK_PROGRESSION) - 1:
            return None
        previous = self.rank
        self.rank = RANK_PROGRESSION[index + 1]
        return RankUp(previous=previous, current=self.rank, rank_xp=self.rank_xp)

    def can_create_rooms(self) -> bool:
        return self.rank in ROOM_CREATOR_RANKS
