from pydantic import BaseModel, Field, model_validator

from ..enums import Phase, PlayerStatus, RoomMode, SpinState, UserRank


class RoomCreate(BaseModel):
    mode: RoomMode = RoomMode.BLITZ
    name: str | None = Field(default=None, max_length=40)
    min_bet: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def validate_configuration(self) -> "RoomCreate":
        if self.mode != RoomMode.CUSTOM and (self.name is not None or self.min_bet is not None):
            raise ValueError("Only custom rooms accept a name and a minimum bet")
        return self


class BetRequest(BaseModel):
    amount: int = Field(gt=0)


class SpinCompleteRequest(BaseModel):
    round_number: int | None = None


class PlayAgainRequest(BaseModel):
    rebet: bool = False


class PlayerPublic(BaseModel):
    id: str
    username: str
    avatar: str
    rank: UserRank
    assigned_color: str
    bet_amount: int
    status: PlayerStatus
    is_bot: bool


class SegmentPublic(BaseModel):
    label: str
    color: str
    value: int


class RoundResultPublic(BaseModel):
    round_number: int
    winner_id: str | None
    amount: int
    pot: int
    is_user_win: bool
    no_winner: bool
    pot_returned: bool
    aborted: bool
    segment: SegmentPublic | None = None


class RoomPublic(BaseModel):
    room_id: str
    name: str
    mode: RoomMode
    phase: Phase
    round_number: int
    timer: int
    pot: int
    min_bet: int
    spin_state: SpinState
    target_index: int | None
    inactivity_warning: int | None
    play_again_offered: bool
    players: list[PlayerPublic]
    segments: list[SegmentPublic]
    result: RoundResultPublic | None = None
