"""Core domain models.

The reducer, normalizer, session and storage all operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Emotion = Literal["default", "happy", "sad"]

EMOTIONS: tuple[str, ...] = ("default", "happy", "sad")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

DEFAULT_UNIVERSE_DESCRIPTION = (
    "A medieval fantasy realm where magic and technology coexist. Ancient "
    "castles dot the landscape, while dragons and other mystical creatures "
    "roam the wilderness."
)


class UniverseSettings(BaseModel):
    type: str = "fantasy"
    description: str = DEFAULT_UNIVERSE_DESCRIPTION
    preset: str = "Medieval Fantasy"


class CharacterSettings(BaseModel):
    gender: str = "Female"
    type: str = "Anime"
    consistent_appearance: bool = True
    dynamic_clothing: bool = True


class BackgroundSettings(BaseModel):
    mood: str = "epic"
    dynamic_time_of_day: bool = True
    weather_effects: bool = False


class GameSettings(BaseModel):
    """User-chosen universe, character and background configuration."""

    universe: UniverseSettings = Field(default_factory=UniverseSettings)
    character: CharacterSettings = Field(default_factory=CharacterSettings)
    background: BackgroundSettings = Field(default_factory=BackgroundSettings)


class CharacterSettingsPatch(BaseModel):
    gender: str | None = None
    type: str | None = None
    consistent_appearance: bool | None = None
    dynamic_clothing: bool | None = None


class SettingsPatch(BaseModel):
    """Partial settings carried by a state update.

    universe and background replace the stored sub-object wholesale;
    character is merged field by field.
    """

    universe: UniverseSettings | None = None
    character: CharacterSettingsPatch | None = None
    background: BackgroundSettings | None = None


UNIVERSE_PRESETS: list[dict[str, str]] = [
    {
        "name": "Medieval Fantasy",
        "type": "fantasy",
        "description": DEFAULT_UNIVERSE_DESCRIPTION,
    },
    {
        "name": "Space Opera",
        "type": "sci-fi",
        "description": (
            "A vast universe where interstellar travel is common, alien "
            "civilizations form complex political alliances, and advanced "
            "technology borders on magical."
        ),
    },
    {
        "name": "Cyberpunk City",
        "type": "sci-fi",
        "description": (
            "A neon-lit metropolis where corporations rule, technology has "
            "become inseparable from humanity, and the divide between rich and "
            "poor is measured in augmentations."
        ),
    },
    {
        "name": "Mythological",
        "type": "fantasy",
        "description": (
            "A world where ancient gods walk among mortals, legendary creatures "
            "guard sacred treasures, and heroes prove themselves through epic "
            "quests."
        ),
    },
    {
        "name": "Wild West",
        "type": "historical",
        "description": (
            "The untamed frontier where law is scarce, gunslingers and outlaws "
            "make their own rules, and the promise of gold draws brave souls to "
            "lawless towns."
        ),
    },
]


def preset_settings(name: str, base: GameSettings | None = None) -> GameSettings:
    """Return settings with the named universe preset applied.

    Raises KeyError for an unknown preset name.
    """
    for preset in UNIVERSE_PRESETS:
        if preset["name"] == name:
            settings = (base or GameSettings()).model_copy(deep=True)
            settings.universe = UniverseSettings(
                type=preset["type"],
                description=preset["description"],
                preset=name,
            )
            return settings
    raise KeyError(name)


# ---------------------------------------------------------------------------
# Game state
# ---------------------------------------------------------------------------

class HistoryEntry(BaseModel):
    """Snapshot of a turn as it was before the following update."""

    model_config = ConfigDict(frozen=True)

    narrative: str
    scene: str
    character: Emotion | None = None
    chapter: int | None = None


class GameState(BaseModel):
    """The single root of one player's story."""

    current_scene: str = Field(default="forest", min_length=1)
    character: Emotion = "default"
    narrative: str = ""
    history: list[HistoryEntry] = Field(default_factory=list)
    loading: bool = False
    chapter: int = Field(default=1, ge=1)
    is_new_chapter: bool = False
    chapter_title: str | None = None
    settings: GameSettings = Field(default_factory=GameSettings)
    timestamp: int | None = None


class StateUpdate(BaseModel):
    """Partial update accepted by reducer.apply().

    Only fields explicitly set count as present (see model_fields_set).
    """

    current_scene: str | None = None
    character: Emotion | None = None
    narrative: str | None = None
    loading: bool | None = None
    chapter: int | None = Field(default=None, ge=1)
    is_new_chapter: bool | None = None
    settings: SettingsPatch | None = None
    timestamp: int | None = None


class NormalizedResponse(BaseModel):
    """Structured turn data recovered from raw text back-end output."""

    narrative: str
    scene: str
    emotion: Emotion = "default"
    chapter: int = Field(default=1, ge=1)
    is_new_chapter: bool = False


# ---------------------------------------------------------------------------
# Art + saves
# ---------------------------------------------------------------------------

ImageSource = Literal["generated", "cache", "static"]


class ImageResult(BaseModel):
    """A rendered (or placeholder) image for the presentation layer."""

    image: str  # data URL, or a static asset path when source == "static"
    source: ImageSource
    background_removed: bool = False


class SceneArt(BaseModel):
    background: ImageResult
    character: ImageResult


class SaveRecord(BaseModel):
    id: str
    user_id: str
    created_at: str
    game_state: GameState

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "chapter": self.game_state.chapter,
            "scene": self.game_state.current_scene,
        }
