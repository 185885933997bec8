from fastapi import APIRouter, Depends

from ..dependencies import get_current_profile, get_registry
from ..game.players import Profile
from ..game.ranks import RANK_CONFIG
from ..schemas.user import UserPublic
from ..services.lobby import SessionRegistry

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserPublic)
async def read_current_user(
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    tracker = sessions.rank_tracker(profile)
    config = RANK_CONFIG[tracker.rank]
    return {
        "id": profile.id,
        "username": profile.username,
        "avatar": profile.avatar,
        "rank": tracker.rank,
        "rank_xp": tracker.rank_xp,
        "balance": sessions.balances.balance_of(profile.id),
        "can_create_rooms": tracker.can_create_rooms(),
        "rank_label": config["label"],
        "rank_privilege": config["privilege"],
    }
