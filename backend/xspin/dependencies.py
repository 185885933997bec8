from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .game.exceptions import PlayerNotFound, RankTooLow, RoomNotFound, XSpinError
from .game.players import Profile
from .security import decode_token, profile_from_claims
from .services.lobby import SessionRegistry, registry

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_registry() -> SessionRegistry:
    return registry


def get_current_profile(
    token: str | None = Depends(oauth2_scheme),
    sessions: SessionRegistry = Depends(get_registry),
) -> Profile:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    try:
        profile = profile_from_claims(decode_token(token))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from None

    return sessions.register_player(profile)


def engine_http_error(exc: XSpinError) -> HTTPException:
    if isinstance(exc, RankTooLow):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, (RoomNotFound, PlayerNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
