"""Narrative turn — runs one request against the text backend.

Turn flow:
  1. Chapter policy decides, from the pre-update history, whether this turn
     opens a new chapter.
  2. Render the narrative prompt (last 3 narratives, scene, settings,
     settings-change and chapter directives).
  3. Call the text backend (maxOutputTokens 300, or 500 when the settings
     changed; temperature 0.7).
  4. Normalize the raw reply into a NormalizedResponse.
  5. Keep the policy's chapter decision over whatever chapter fields the
     model wrote, and when the reply carries no emotion (or "default"), tag
     the narrative with the keyword classifier.

Backend failures never propagate: the caller gets a fallback record that
keeps the current scene and chapter.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from storyquest import emotions
from storyquest.chapters import resolve_chapter
from storyquest.llm import LLM, GenerationConfig, LLMError
from storyquest.models import GameSettings, HistoryEntry, NormalizedResponse
from storyquest.normalizer import DEFAULT_SCENE, normalize
from storyquest.prompts import build_narrative_prompt

logger = logging.getLogger(__name__)

FAILURE_NARRATIVE = "Something unexpected happened. Your journey continues nonetheless."

DEFAULT_GENERATION: dict[str, Any] = {
    "max_output_tokens": 300,
    "settings_change_max_output_tokens": 500,
    "temperature": 0.7,
}


class NarrativeRequest(BaseModel):
    """Input of one narrative turn.

    `game_history` ends with the turn currently on screen.
    """

    user_input: str = Field(min_length=1)
    game_history: list[HistoryEntry] = Field(default_factory=list)
    current_chapter: int = Field(default=1, ge=1)
    settings: GameSettings | None = None
    settings_changed: bool = False


def settings_transition_narrative(settings: GameSettings) -> str:
    """Deterministic narrative used when a settings change cannot be narrated."""
    return (
        "As you blink, the world around you shifts dramatically. The "
        "environment transforms to match your new journey in "
        f"{settings.universe.type} with a {settings.background.mood} atmosphere."
    )


def generation_config(
    settings_changed: bool, generation: dict[str, Any] | None = None
) -> GenerationConfig:
    values = {**DEFAULT_GENERATION, **(generation or {})}
    max_tokens = (
        values["settings_change_max_output_tokens"]
        if settings_changed
        else values["max_output_tokens"]
    )
    return GenerationConfig(
        max_output_tokens=max_tokens, temperature=values["temperature"]
    )


def fallback_response(request: NarrativeRequest) -> NormalizedResponse:
    scene = request.game_history[-1].scene if request.game_history else DEFAULT_SCENE
    if request.settings_changed and request.settings is not None:
        narrative = settings_transition_narrative(request.settings)
    else:
        narrative = FAILURE_NARRATIVE
    return NormalizedResponse(
        narrative=narrative,
        scene=scene or DEFAULT_SCENE,
        emotion="default",
        chapter=request.current_chapter,
        is_new_chapter=False,
    )


async def generate_narrative(
    *,
    llm: LLM,
    request: NarrativeRequest,
    generation: dict[str, Any] | None = None,
) -> NormalizedResponse:
    """Produce the structured outcome of one player action."""
    history = request.game_history
    fallback_scene = history[-1].scene if history else DEFAULT_SCENE

    chapter, advance = resolve_chapter(history, request.user_input, request.current_chapter)
    if advance:
        logger.info("chapter transition %d -> %d", request.current_chapter, chapter)

    prompt = build_narrative_prompt(
        history,
        request.user_input,
        chapter,
        advance,
        settings=request.settings,
        settings_changed=request.settings_changed,
    )
    stage = "settings_transition" if request.settings_changed else "narrative"

    try:
        raw = await llm(stage, prompt, generation_config(request.settings_changed, generation))
    except LLMError as e:
        logger.warning("text backend failed (%s), using fallback narrative", e)
        return fallback_response(request)

    result = normalize(raw, fallback_scene, chapter, advance)
    if (result.chapter, result.is_new_chapter) != (chapter, advance):
        logger.debug(
            "model chapter fields (%d, %s) replaced by policy (%d, %s)",
            result.chapter, result.is_new_chapter, chapter, advance,
        )
    changes: dict[str, Any] = {"chapter": chapter, "is_new_chapter": advance}
    if result.emotion == "default":
        changes["emotion"] = emotions.classify(result.narrative)
    return result.model_copy(update=changes)
