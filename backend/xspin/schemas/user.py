from pydantic import BaseModel

from ..enums import UserRank


class UserPublic(BaseModel):
    id: str
    username: str
    avatar: str
    rank: UserRank
    rank_xp: int
    balance: int
    can_create_rooms: bool
    rank_label: str
    rank_privilege: str
