from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import engine_http_error, get_current_profile, get_registry
from ..game.exceptions import XSpinError
from ..game.players import Profile
from ..game.tournament import TournamentCoordinator
from ..schemas.tournament import TournamentPublic, TournamentSpinCompleteRequest
from ..services.lobby import SessionRegistry

router = APIRouter(prefix="/tournaments", tags=["tournaments"])


def _get_tournament_or_404(sessions: SessionRegistry, tournament_id: str, profile: Profile) -> TournamentCoordinator:
    try:
        tournament = sessions.get_tournament(tournament_id)
    except XSpinError as exc:
        raise engine_http_error(exc) from None
    if tournament.human.id != profile.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="You did not enter this tournament")
    return tournament


@router.post("", response_model=TournamentPublic, status_code=status.HTTP_201_CREATED)
async def enter_tournament(
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    try:
        tournament = sessions.enter_tournament(profile)
    except XSpinError as exc:
        raise engine_http_error(exc) from None
    return tournament.snapshot()


@router.get("/{tournament_id}", response_model=TournamentPublic)
async def read_tournament(
    tournament_id: str,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    return _get_tournament_or_404(sessions, tournament_id, profile).snapshot()


@router.post("/{tournament_id}/spin-complete", response_model=TournamentPublic)
async def spin_complete(
    tournament_id: str,
    payload: TournamentSpinCompleteRequest | None = None,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> dict:
    tournament = _get_tournament_or_404(sessions, tournament_id, profile)
    tournament.spin_ended(payload.stage if payload else None)
    return tournament.snapshot()


@router.delete("/{tournament_id}/participants/me", status_code=status.HTTP_204_NO_CONTENT)
async def leave_tournament(
    tournament_id: str,
    profile: Profile = Depends(get_current_profile),
    sessions: SessionRegistry = Depends(get_registry),
) -> None:
    _get_tournament_or_404(sessions, tournament_id, profile).leave()
