"""Game state reducer — the only code that produces new GameState values.

apply() handles a player turn: it appends the previous turn to history,
resolves the chapter and its title, merges settings and refreshes the
timestamp. The remaining functions are transitions that are not turns and so
never touch history (loading flag, chapter acknowledgement, settings
replacement, fresh states).

Settings merge rule: a patch replaces `universe` and `background` wholesale
but merges `character` field by field, because the character panel is the
one most often updated partially.
"""

from __future__ import annotations

import re
import time

from storyquest.models import (
    GameSettings,
    GameState,
    HistoryEntry,
    SettingsPatch,
    StateUpdate,
)

INITIAL_NARRATIVE = (
    "You're lost in a green forest. The trees tower above you, and sunlight "
    "filters through the leaves."
)
INITIAL_CHAPTER_TITLE = "Chapter 1: Lost in the Woods"
NEW_GAME_CHAPTER_TITLE = "Chapter 1: The Beginning"

_CHAPTER_TITLE_RE = re.compile(r"Chapter \d+:([^.]+)(\.)?", re.IGNORECASE)


def now_ms() -> int:
    return int(time.time() * 1000)


def extract_chapter_title(narrative: str, chapter: int) -> tuple[str, str]:
    """Find a "Chapter N: Title." heading in narrative text.

    Returns (chapter_title, narrative). When a heading is found the title is
    renumbered to `chapter` and the heading is removed from the narrative;
    otherwise the title is just "Chapter {chapter}".
    """
    match = _CHAPTER_TITLE_RE.search(narrative)
    if not match or not match.group(1).strip():
        return f"Chapter {chapter}", narrative
    title = f"Chapter {chapter}: {match.group(1).strip()}"
    if match.group(2):
        narrative = (narrative[: match.start()] + narrative[match.end():]).strip()
    return title, narrative


def merge_settings(current: GameSettings, patch: SettingsPatch) -> GameSettings:
    merged = current.model_copy(deep=True)
    if patch.universe is not None:
        merged.universe = patch.universe.model_copy()
    if patch.background is not None:
        merged.background = patch.background.model_copy()
    if patch.character is not None:
        changes = patch.character.model_dump(exclude_none=True)
        merged.character = merged.character.model_copy(update=changes)
    return merged


def apply(prev: GameState, update: StateUpdate) -> GameState:
    """Return the state after one turn's partial update."""
    present = update.model_fields_set

    chapter = prev.chapter
    if "chapter" in present and update.chapter is not None:
        chapter = max(prev.chapter, update.chapter)

    is_new_chapter = bool(update.is_new_chapter) if "is_new_chapter" in present else False

    narrative = prev.narrative
    if "narrative" in present and update.narrative is not None:
        narrative = update.narrative

    chapter_title = prev.chapter_title
    if is_new_chapter:
        if "narrative" in present and update.narrative is not None:
            chapter_title, narrative = extract_chapter_title(update.narrative, chapter)
        else:
            chapter_title = f"Chapter {chapter}"

    settings = prev.settings
    if "settings" in present and update.settings is not None:
        settings = merge_settings(prev.settings, update.settings)

    snapshot = HistoryEntry(
        narrative=prev.narrative,
        scene=prev.current_scene,
        character=prev.character,
        chapter=prev.chapter,
    )

    changes: dict = {
        "narrative": narrative,
        "chapter": chapter,
        "is_new_chapter": is_new_chapter,
        "chapter_title": chapter_title,
        "settings": settings,
        "history": [*prev.history, snapshot],
        "timestamp": update.timestamp or now_ms(),
    }
    for field in ("current_scene", "character", "loading"):
        value = getattr(update, field)
        if field in present and value is not None:
            changes[field] = value

    return prev.model_copy(update=changes)


# ---------------------------------------------------------------------------
# Non-turn transitions
# ---------------------------------------------------------------------------

def set_loading(state: GameState, loading: bool) -> GameState:
    return state.model_copy(update={"loading": loading})


def acknowledge_chapter(state: GameState) -> GameState:
    """Clear the transition flag once presentation has shown it."""
    if not state.is_new_chapter:
        return state
    return state.model_copy(update={"is_new_chapter": False})


def replace_settings(state: GameState, settings: GameSettings) -> GameState:
    return state.model_copy(
        update={"settings": settings.model_copy(deep=True), "timestamp": now_ms()}
    )


def initial_state(settings: GameSettings | None = None) -> GameState:
    """The state a brand new session starts in."""
    return GameState(
        current_scene="forest",
        character="default",
        narrative=INITIAL_NARRATIVE,
        history=[],
        loading=False,
        chapter=1,
        is_new_chapter=True,
        chapter_title=INITIAL_CHAPTER_TITLE,
        settings=settings.model_copy(deep=True) if settings else GameSettings(),
    )


def new_game(settings: GameSettings) -> GameState:
    """A fresh story opening in the chosen universe."""
    opening = settings.universe.description.split(".")[0].strip()
    if opening:
        opening = opening[0].lower() + opening[1:]
    state = initial_state(settings)
    return state.model_copy(update={
        "narrative": f"You find yourself in {opening}." if opening else INITIAL_NARRATIVE,
        "chapter_title": NEW_GAME_CHAPTER_TITLE,
        "timestamp": now_ms(),
    })
