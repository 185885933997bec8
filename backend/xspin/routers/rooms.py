from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import engine_http_error, get_current_profile, get_registry
from ..game.exceptions import XSpinError
from ..game.players import Profile
from ..game.room import RoomSessionController
from ..schemas.room import BetRequest, PlayAgainRequest, RoomCreate, RoomPublic, SpinCompleteRequest
from ..services.lobby import SessionRegistry

router = APIRouter(prefix="/rooms", tags=["rooms"])


def _get_room_or_404(sessions: SessionRegistry, room_id: str, profile: Profile) -> RoomSessionController:
    try:
        room = sessions.get_room(room_id)
    except XSpinError as exc:
        raise engine_http_error(exc) from None
    if room.human.id != profile.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="You are not seated in this room")
    return room


@router.post("", response_model=RoomPublic, status_code=status.HTTP_201_CREATED)
async def create_room(
    payload: RoomCreate,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    try:
        room = sessions.create_room(profile, payload.mode, name=payload.name, min_bet=payload.min_bet)
    except XSpinError as exc:
        raise engine_http_error(exc) from None
    return room.snapshot()


@router.get("/{room_id}", response_model=RoomPublic)
async def read_room(
    room_id: str,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    return _get_room_or_404(sessions, room_id, profile).snapshot()


@router.post("/{room_id}/bets", response_model=RoomPublic)
async def place_bet(
    room_id: str,
    payload: BetRequest,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    room = _get_room_or_404(sessions, room_id, profile)
    try:
        room.place_bet(profile.id, payload.amount)
    except XSpinError as exc:
        raise engine_http_error(exc) from None
    return room.snapshot()


@router.post("/{room_id}/bets/confirm", response_model=RoomPublic)
async def confirm_bet(
    room_id: str,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    room = _get_room_or_404(sessions, room_id, profile)
    try:
        room.confirm_bet(profile.id)
    except XSpinError as exc:
        raise engine_http_error(exc) from None
    return room.snapshot()


@router.post("/{room_id}/bets/cancel", response_model=RoomPublic)
async def cancel_bet(
    room_id: str,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    room = _get_room_or_404(sessions, room_id, profile)
    try:
        room.cancel_bet(profile.id)
    except XSpinError as exc:
        raise engine_http_error(exc) from None
    return room.snapshot()


@router.post("/{room_id}/ready", response_model=RoomPublic)
async def ready(
    room_id: str,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    room = _get_room_or_404(sessions, room_id, profile)
    try:
        room.ready()
    except XSpinError as exc:
        raise engine_http_error(exc) from None
    return room.snapshot()


@router.post("/{room_id}/spin-complete", response_model=RoomPublic)
async def spin_complete(
    room_id: str,
    payload: SpinCompleteRequest | None = None,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    room = _get_room_or_404(sessions, room_id, profile)
    room.spin_ended(payload.round_number if payload else None)
    return room.snapshot()


@router.post("/{room_id}/play-again", response_model=RoomPublic)
async def play_again(
    room_id: str,
    payload: PlayAgainRequest | None = None,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    room = _get_room_or_404(sessions, room_id, profile)
    try:
        room.play_again(rebet=payload.rebet if payload else False)
    except XSpinError as exc:
        raise engine_http_error(exc) from None
    return room.snapshot()


@router.delete("/{room_id}/participants/me", status_code=status.HTTP_204_NO_CONTENT)
async def leave_room(
    room_id: str,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> None:
    _get_room_or_404(sessions, room_id, profile).leave()
