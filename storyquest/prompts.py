"""Handlebars prompt rendering for the narrative request."""

from collections.abc import Callable, Sequence
from typing import Any

import pybars

from storyquest.models import GameSettings, HistoryEntry

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

# Narratives from the end of history included as story context.
CONTEXT_TURNS = 3


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


NARRATIVE_PROMPT = """\
You are an AI-powered visual novel game that tells stories in chapters. \
Continue the story based on the player's input.

Current Chapter: {{chapter}}

Previous story context:
{{#last history 3}}
{{{narrative}}}
{{/last}}

Current scene: {{{scene}}}
{{#if settings_changed}}

The player has just updated the game settings. This is important and \
requires a significant change in the narrative:
- Universe type: {{{settings.universe.type}}}
- Universe description: {{{settings.universe.description}}}
- Mood: {{{settings.background.mood}}}

Please completely transform the narrative to reflect these new settings. \
The narrative should:
1. Describe how the world visibly shifts and transforms around the character
2. Introduce the new environment with vivid descriptive language matching \
the new universe type and mood
3. Reference any interesting elements from the new universe description
4. Allow the character to notice and react to these changes
5. Maintain continuity with the previous story events, but adapt them to the \
new universe

This transition should feel magical or surreal, as if reality itself is \
being rewritten.
{{/if}}
{{#if settings}}

IMPORTANT GAME SETTINGS TO INCORPORATE:
- Universe type: {{{settings.universe.type}}}
- Universe description: {{{settings.universe.description}}}
- Mood/atmosphere: {{{settings.background.mood}}}
- Character gender: {{{settings.character.gender}}}
- Character style: {{{settings.character.type}}}
{{/if}}

Player's action: {{{user_input}}}
{{#if entering_chapter}}

The story is now entering Chapter {{chapter}}. This should represent a \
significant progression in the storyline or a new phase of the adventure.
{{/if}}

{{#if advance_chapter}}
Begin this chapter with a brief chapter title and introduction like \
"Chapter {{chapter}}: [Creative Title]" followed by a slightly longer \
narrative (3-4 sentences) to set the stage.
{{else}}{{#if settings_changed}}
Generate a longer narrative response (5-6 sentences) that fully transforms \
the environment according to the new settings.
Make sure your response fully reflects the new game settings!
{{else}}
Generate a short narrative response (2-3 sentences) and include a new scene \
name if the location changes.
{{/if}}{{/if}}

Also determine the character's emotion based on the narrative (one of: \
default, happy, sad).

IMPORTANT: You must respond in valid JSON format with this exact structure:
{"narrative": "Text here", "scene": "scene_name", "emotion": "emotion_name", \
"chapter": chapter_number, "isNewChapter": true/false}

Where emotion_name must be one of: default, happy, sad.
Make sure all property names have double quotes around them.\
"""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}}: iterate over the last N items."""
    result = []
    for item in list(items or [])[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_narrative_context(
    history: Sequence[HistoryEntry],
    user_input: str,
    chapter: int,
    advance_chapter: bool,
    settings: GameSettings | None = None,
    settings_changed: bool = False,
) -> dict[str, Any]:
    """Assemble template variables for NARRATIVE_PROMPT.

    `history` already ends with the turn currently on screen; its scene is
    the scene the player is acting in.
    """
    scene = history[-1].scene if history else "forest"
    return {
        "chapter": chapter,
        "history": [{"narrative": h.narrative} for h in history[-CONTEXT_TURNS:]],
        "scene": scene or "forest",
        "settings": settings.model_dump() if settings else None,
        "settings_changed": settings_changed and settings is not None,
        "user_input": user_input,
        "advance_chapter": advance_chapter,
        "entering_chapter": advance_chapter and chapter > 1,
    }


def build_narrative_prompt(
    history: Sequence[HistoryEntry],
    user_input: str,
    chapter: int,
    advance_chapter: bool,
    settings: GameSettings | None = None,
    settings_changed: bool = False,
) -> str:
    ctx = build_narrative_context(
        history, user_input, chapter, advance_chapter,
        settings=settings, settings_changed=settings_changed,
    )
    return render_prompt(NARRATIVE_PROMPT, ctx)
