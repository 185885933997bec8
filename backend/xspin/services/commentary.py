import asyncio
import logging
import random
from typing import Protocol

from openai import AsyncOpenAI, OpenAIError

from ..config import Settings, get_settings
from ..game.exceptions import CommentaryUnavailable

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an elite, high-energy casino commentator for 'X Spin'. Generate a short, hype "
    "sentence (max 15 words) congratulating the winner. Use gambling slang and keep it intense."
)

FALLBACK_LINES = (
    "UNBELIEVABLE! {winner} clears the table for ${amount}!",
    "THE HOUSE SHUDDERS! {winner} takes it all!",
)

NO_WINNER_LINE = "Nobody held the winning color. The pot goes back to the table."


class CommentaryService(Protocol):
    async def request_commentary(self, winner_name: str, amount: int, player_count: int) -> str: ...


def fallback_commentary(winner_name: str | None, amount: int) -> str:
    if not winner_name:
        return NO_WINNER_LINE
    return random.choice(FALLBACK_LINES).format(winner=winner_name, amount=amount)


class OpenAICommentaryService:
    def __init__(self, settings: Settings | None = None, client: AsyncOpenAI | None = None) -> None:
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise CommentaryUnavailable("OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def request_commentary(self, winner_name: str, amount: int, player_count: int) -> str:
        prompt = f"Winner: {winner_name}. Amount Won: ${amount}. Players in room: {player_count}."
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.settings.openai_model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=0.9,
                ),
                timeout=self.settings.commentary_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise CommentaryUnavailable("Commentary request timed out") from exc
        except OpenAIError as exc:
            raise CommentaryUnavailable(f"Commentary request failed: {exc}") from exc

        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise CommentaryUnavailable("Commentary response was empty")
        return content


class StaticCommentaryService:
    """Commentary without a model behind it; used when no API key is configured."""

    async def request_commentary(self, winner_name: str, amount: int, player_count: int) -> str:
        return fallback_commentary(winner_name, amount)


def get_commentary_service(settings: Settings | None = None) -> CommentaryService:
    settings = settings or get_settings()
    if settings.openai_api_key:
        return OpenAICommentaryService(settings)
    logger.info("No OpenAI key configured, using static commentary")
    return StaticCommentaryService()
