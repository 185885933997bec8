from typing import Literal

from pydantic import BaseModel

from ..enums import TournamentStage, UserRank
from .room import PlayerPublic


class TournamentSpinCompleteRequest(BaseModel):
    stage: Literal["groups", "final"] | None = None


class GroupPublic(BaseModel):
    group_number: int
    total_pot: int
    players: list[PlayerPublic]
    winner_id: str | None
    target_index: int | None


class RankUpPublic(BaseModel):
    previous: UserRank
    current: UserRank
    rank_xp: int


class TournamentPublic(BaseModel):
    tournament_id: str
    stage: TournamentStage
    timer: int
    total_pot: int
    user_group: int | None
    user_color: str
    eliminated: bool
    groups: list[GroupPublic]
    group_winners: list[PlayerPublic]
    finalists: list[PlayerPublic]
    final_target_index: int | None
    grand_winner: PlayerPublic | None
    rank_up: RankUpPublic | None
