import json
import secrets
from functools import lru_cache
from typing import List

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CORS_ORIGINS = ["http://localhost:3000"]


def _parse_cors_origins(value: str | List[str] | None) -> List[str] | None:
    if value is None:
        return None

    if isinstance(value, (list, tuple, set)):
        return [str(origin).strip() for origin in value if str(origin).strip()]

    stripped = str(value).strip()
    if not stripped:
        return []

    if stripped.startswith("[") and stripped.endswith("]"):
        try:
            loaded = json.loads(stripped)
        except json.JSONDecodeError:
            inner = stripped[1:-1].strip()
            if not inner:
                return []
            stripped = inner
        else:
            if isinstance(loaded, list):
                return [str(origin).strip() for origin in loaded if str(origin).strip()]

    return [origin.strip() for origin in stripped.split(",") if origin.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "X Spin"
    api_prefix: str = "/api"
    secret_key: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    access_token_expire_minutes: int = 60 * 12
    cors_origins_raw: str | None = Field(default=None, alias="CORS_ORIGINS")

    # Bet ledger
    min_bet: int = 10
    max_bet: int | None = None
    starting_balance: int = 1000
    bot_starting_balance: int = 5000
    segment_multipliers: dict[str, int] = Field(default_factory=dict)

    # Round phases, in seconds
    tick_seconds: float = 1.0
    betting_seconds: int = 15
    locked_seconds: int = 3
    result_dwell_seconds: int = 6
    warning_fraction: float = Field(default=2 / 3, gt=0, lt=1)

    # Simulated opponents
    blitz_seats: int = 15
    bot_confirm_probability: float = Field(default=0.4, ge=0, le=1)
    bot_min_bet: int = 50
    bot_max_bet: int = 549

    # Grand Prix
    tournament_groups: int = 10
    tournament_group_size: int = 10
    tournament_entry_fee: int = 10
    tournament_bot_entry_probability: float = Field(default=1.0, ge=0, le=1)
    bracket_view_seconds: int = 10
    group_countdown_seconds: int = 3
    winner_dwell_seconds: int = 8
    loser_dwell_seconds: int = 9
    final_color_seconds: int = 5
    final_countdown_seconds: int = 3
    wins_per_rank: int = 5

    # Commentary collaborator
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    commentary_timeout_seconds: float = 4.0

    room_idle_minutes: int = 30
    room_cleanup_interval_seconds: int = 300

    @field_validator("bot_max_bet")
    @classmethod
    def ensure_bot_range(cls, value: int, info: ValidationInfo) -> int:
        lower = info.data.get("bot_min_bet", 0)
        if value < lower:
            raise ValueError("bot_max_bet must not be lower than bot_min_bet")
        return value

    @property
    def cors_origins(self) -> List[str]:
        parsed = _parse_cors_origins(self.cors_origins_raw)
        if not parsed:
            return DEFAULT_CORS_ORIGINS
        return parsed


@lru_cache
def get_settings() -> Settings:
    return Settings()
