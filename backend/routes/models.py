"""Pydantic request bodies for API endpoints."""

from pydantic import BaseModel

from storyquest.images import DEFAULT_STYLE
from storyquest.models import GameSettings, GameState


class CheckConnectionBody(BaseModel):
    provider_url: str
    api_key: str = ""
    provider_format: str = "gemini"


class GenerateImageBody(BaseModel):
    prompt: str
    style: str = DEFAULT_STYLE


class TurnBody(BaseModel):
    message: str


class NewGameBody(BaseModel):
    settings: GameSettings | None = None
    preset: str | None = None


class CreateSaveBody(BaseModel):
    game_state: GameState | None = None
