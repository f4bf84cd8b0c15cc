"""Turn raw text back-end output into a NormalizedResponse.

The text back end is asked for a JSON object
{"narrative", "scene", "emotion", "chapter", "isNewChapter"} but frequently
returns something else. normalize() tries, in order:

  1. strict JSON parse of the whole reply
  2. repair_json(): greedy {...} extraction plus quoting fixes
  3. the reply as prose, with code fences and brace spans stripped

and then validates every field, so callers always receive a usable record.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from storyquest.models import EMOTIONS, Emotion, NormalizedResponse

logger = logging.getLogger(__name__)

DEFAULT_SCENE = "forest"
CONTINUE_NARRATIVE = "The story continues as you explore this world."

# Variants the back end (or a presentation layer) may use for an emotion tag.
EMOTION_SYNONYMS: dict[str, Emotion] = {
    "joy": "happy",
    "excited": "happy",
    "pleased": "happy",
    "upset": "sad",
    "depressed": "sad",
    "disappointed": "sad",
}

_BRACE_SPAN_RE = re.compile(r"\{.*\}", re.DOTALL)
_UNQUOTED_KEY_RE = re.compile(r"([{,])\s*([A-Za-z0-9_]+)\s*:")
_LEADING_EMOTION_RE = re.compile(r"^(?:happy|sad|default)\s+", re.IGNORECASE)
_MISSING_SPACE_RE = re.compile(r"([.!?])([A-Za-z])")
_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Parsing tiers
# ---------------------------------------------------------------------------

def parse_strict(raw_text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(raw_text)
    except (ValueError, RecursionError, TypeError):
        return None
    return data if isinstance(data, dict) else None


def repair_json(raw_text: str) -> dict[str, Any] | None:
    """Best-effort parse of a JSON object embedded in free text.

    Takes everything from the first "{" to the last "}", then:
      - quotes bare keys that follow "{" or ","
      - turns escaped quotes (\\") into plain quotes
      - turns literal "\\n" escape sequences into spaces
    and parses with control characters allowed inside strings, which covers
    raw newlines in values.

    Limitations: a bare word followed by ":" right after a comma inside a
    string value is also quoted, and single-quoted JSON is not handled.
    Returns None when no object can be recovered.
    """
    match = _BRACE_SPAN_RE.search(raw_text or "")
    if not match:
        return None
    fixed = _UNQUOTED_KEY_RE.sub(r'\1"\2":', match.group(0))
    fixed = fixed.replace('\\"', '"')
    fixed = fixed.replace("\\n", " ")
    try:
        data = json.loads(fixed, strict=False)
    except (ValueError, RecursionError):
        return None
    return data if isinstance(data, dict) else None


def prose_narrative(raw_text: str) -> str:
    """Strip code fences and any brace-delimited span from a prose reply."""
    text = (raw_text or "").replace("```json", "").replace("```", "")
    text = _BRACE_SPAN_RE.sub("", text, count=1).strip()
    return text or (raw_text or "").strip()


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------

def clean_narrative(text: str) -> str:
    """Remove a leading emotion token and fix spacing after punctuation."""
    cleaned = _LEADING_EMOTION_RE.sub("", text.strip())
    if cleaned:
        cleaned = cleaned[0].upper() + cleaned[1:]
    return _MISSING_SPACE_RE.sub(r"\1 \2", cleaned)


def scene_id(name: str) -> str:
    """Canonical scene id: "Dark Cave" -> "dark_cave"."""
    return _WHITESPACE_RE.sub("_", name.strip().lower())


def coerce_emotion(value: Any) -> Emotion:
    if not isinstance(value, str):
        return "default"
    tag = value.strip().lower()
    if tag in EMOTIONS:
        return tag  # type: ignore[return-value]
    return EMOTION_SYNONYMS.get(tag, "default")


def _coerce_chapter(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int) and value >= 1:
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        try:
            number = int(value)
        except ValueError:
            return fallback
        if number >= 1:
            return number
    return fallback


def _validate(
    data: dict[str, Any],
    fallback_scene: str,
    fallback_chapter: int,
    should_advance_chapter: bool,
) -> NormalizedResponse:
    narrative = data.get("narrative")
    if not isinstance(narrative, str) or not narrative.strip():
        narrative = CONTINUE_NARRATIVE
    narrative = clean_narrative(narrative) or CONTINUE_NARRATIVE

    scene = data.get("scene")
    if not isinstance(scene, str) or not scene.strip():
        scene = fallback_scene
    else:
        scene = scene_id(scene)

    is_new = data.get("isNewChapter", data.get("is_new_chapter"))
    if not isinstance(is_new, bool):
        is_new = should_advance_chapter

    return NormalizedResponse(
        narrative=narrative,
        scene=scene,
        emotion=coerce_emotion(data.get("emotion")),
        chapter=_coerce_chapter(data.get("chapter"), fallback_chapter),
        is_new_chapter=is_new,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def normalize(
    raw_text: str,
    fallback_scene: str,
    fallback_chapter: int,
    should_advance_chapter: bool,
) -> NormalizedResponse:
    """Convert raw back-end text into a validated NormalizedResponse. Never raises."""
    fallback_scene = (fallback_scene or "").strip() or DEFAULT_SCENE
    fallback_chapter = fallback_chapter if fallback_chapter and fallback_chapter >= 1 else 1
    raw_text = (raw_text or "").strip()

    data = parse_strict(raw_text)
    if data is not None:
        logger.debug("narrative reply parsed as strict JSON")
    else:
        data = repair_json(raw_text)
        if data is not None:
            logger.debug("narrative reply parsed after JSON repair")
        else:
            logger.warning("narrative reply is not JSON, using it as prose: %r", raw_text[:200])
            data = {
                "narrative": prose_narrative(raw_text),
                "scene": fallback_scene,
                "emotion": "default",
                "chapter": fallback_chapter,
                "isNewChapter": should_advance_chapter,
            }

    return _validate(data, fallback_scene, fallback_chapter, should_advance_chapter)
