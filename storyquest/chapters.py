"""Chapter progression policy.

Decides from pre-update history and the player's input whether the story
moves on to a new chapter. The policy never mutates state; the session turns
its decision into a StateUpdate for the reducer.
"""

from collections.abc import Sequence

from storyquest.models import HistoryEntry

# Interactions needed per chapter before the volume trigger can fire.
ENTRIES_PER_CHAPTER = 8
# Distinct scenes needed per chapter for the same trigger.
SCENES_PER_CHAPTER = 2

NARRATIVE_MARKERS: tuple[str, ...] = (
    "completed the",
    "finally reached",
    "succeeded in",
    "discovered the",
    "ended",
    "concluded",
)

PLAYER_COMMANDS: tuple[str, ...] = (
    "continue to next chapter",
    "advance to chapter",
)


def _volume_trigger(history: Sequence[HistoryEntry], current_chapter: int) -> bool:
    if len(history) < ENTRIES_PER_CHAPTER * current_chapter:
        return False
    scenes = {entry.scene for entry in history}
    return len(scenes) >= SCENES_PER_CHAPTER * current_chapter


def _marker_trigger(history: Sequence[HistoryEntry]) -> bool:
    if not history:
        return False
    last = history[-1].narrative
    return any(marker in last for marker in NARRATIVE_MARKERS)


def _command_trigger(user_input: str) -> bool:
    lower = (user_input or "").lower()
    return any(command in lower for command in PLAYER_COMMANDS)


def should_advance(
    history: Sequence[HistoryEntry], user_input: str, current_chapter: int
) -> bool:
    """True when any of the volume, narrative-marker or command triggers fires.

    Marker matching is case-sensitive; command matching is not.
    """
    return (
        _volume_trigger(history, current_chapter)
        or _marker_trigger(history)
        or _command_trigger(user_input)
    )


def resolve_chapter(
    history: Sequence[HistoryEntry], user_input: str, current_chapter: int
) -> tuple[int, bool]:
    """Return (chapter to use for this turn, whether it advanced)."""
    if should_advance(history, user_input, current_chapter):
        return current_chapter + 1, True
    return current_chapter, False
