from .user import UserPublic
from .room import (
    RoomCreate,
    RoomPublic,
    BetRequest,
    SpinCompleteRequest,
    PlayAgainRequest,
    PlayerPublic,
    SegmentPublic,
    RoundResultPublic,
)
from .tournament import GroupPublic, RankUpPublic, TournamentPublic, TournamentSpinCompleteRequest

__all__ = [
    "UserPublic",
    "RoomCreate",
    "RoomPublic",
    "BetRequest",
    "SpinCompleteRequest",
    "PlayAgainRequest",
    "PlayerPublic",
    "SegmentPublic",
    "RoundResultPublic",
    "GroupPublic",
    "RankUpPublic",
    "TournamentPublic",
    "TournamentSpinCompleteRequest",
]
