from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt

from .config import get_settings
from .enums import UserRank
from .game.players import Profile

settings = get_settings()
ALGORITHM = "HS256"


def create_access_token(profile: Profile, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {
        "sub": profile.id,
        "username": profile.username,
        "avatar": profile.avatar,
        "rank": profile.rank.value,
        "rank_xp": profile.rank_xp,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
        return payload
    except JWTError as exc:
        raise ValueError("Token verification failed") from exc


def profile_from_claims(claims: dict[str, Any]) -> Profile:
    sub = claims.get("sub")
    if not sub:
        raise ValueError("Token carries no subject")
    try:
        rank = UserRank(claims.get("rank") or UserRank.ROOKIE.value)
    except ValueError as exc:
        raise ValueError(f"Unknown rank {claims.get('rank')!r}") from exc
    return Profile(
        id=str(sub),
        username=claims.get("username") or str(sub),
        avatar=claims.get("avatar") or "",
        rank=rank,
        rank_xp=int(claims.get("rank_xp") or 0),
    )
