"""Tests for storyquest.normalizer — raw back-end text to NormalizedResponse."""

import json
import random
import string

import pytest

from storyquest.normalizer import (
    CONTINUE_NARRATIVE,
    clean_narrative,
    coerce_emotion,
    normalize,
    parse_strict,
    prose_narrative,
    repair_json,
    scene_id,
)


def _norm(raw: str, scene: str = "forest", chapter: int = 1, advance: bool = False):
    return normalize(raw, scene, chapter, advance)


# ── totality ────────────────────────────────────────────────


GARBLED = [
    "",
    "   ",
    "{",
    "}",
    "{{}}",
    "null",
    "[1, 2, 3]",
    '"just a string"',
    '{"narrative": ""}',
    '{"narrative": 5, "scene": null, "emotion": 3}',
    '{"scene": "   "}',
    "{narrative: unquoted}",
    "```json```",
    "happy",
    "sad   ",
    "\x00\x01",
    "The wind howls through the trees.",
    '{"narrative": "You enter.", "scene": "cave", "emotion": "happy"}',
    '{narrative: "You enter.", scene: "cave", emotion: "sad"}',
    'Sure! Here you go:\n```json\n{"narrative": "Hi", "scene": "inn"}\n```',
    '{"narrative": "x", "chapter": ' + "9" * 5000 + "}",
    '{"narrative": "x", "chapter": "' + "9" * 5000 + '"}',
    "[" * 200000,
    "{\"a\": " * 100000 + "1" + "}" * 100000,
]


@pytest.mark.parametrize("raw", GARBLED)
def test_always_returns_usable_record(raw):
    result = _norm(raw)
    assert result.narrative.strip()
    assert result.scene.strip()
    assert result.emotion in ("default", "happy", "sad")
    assert result.chapter >= 1


_ALPHABET = string.printable + "{}[]\":,\\" + "\u00e9\u4e2d\U0001f600\x00"
_FRAGMENTS = [
    "{", "}", "[", "]", '"narrative"', '"scene"', '"emotion"', '"chapter"',
    ":", ",", '"happy"', "null", "true", "-1", "1e999", "\\n", "```json", "Chapter 2:",
]


def _random_text(seed: int) -> str:
    rng = random.Random(seed)
    if seed % 2:
        return "".join(rng.choice(_ALPHABET) for _ in range(rng.randint(0, 300)))
    return " ".join(rng.choice(_FRAGMENTS) for _ in range(rng.randint(0, 60)))


@pytest.mark.parametrize("seed", range(200))
def test_random_input_returns_usable_record(seed):
    result = _norm(_random_text(seed), chapter=2)
    assert result.narrative.strip()
    assert result.scene.strip()
    assert result.emotion in ("default", "happy", "sad")
    assert result.chapter >= 1


# ── tiers ───────────────────────────────────────────────────


class TestStrictJson:
    def test_all_fields(self) -> None:
        raw = json.dumps({
            "narrative": "You enter the cave.",
            "scene": "cave",
            "emotion": "sad",
            "chapter": 2,
            "isNewChapter": True,
        })
        r = _norm(raw)
        assert r.narrative == "You enter the cave."
        assert r.scene == "cave"
        assert r.emotion == "sad"
        assert r.chapter == 2
        assert r.is_new_chapter is True

    def test_snake_case_flag_accepted(self) -> None:
        r = _norm('{"narrative": "x", "is_new_chapter": true}')
        assert r.is_new_chapter is True

    def test_non_object_is_rejected(self) -> None:
        assert parse_strict("[1, 2]") is None
        assert parse_strict("not json") is None

    def test_oversized_integer_is_rejected(self) -> None:
        assert parse_strict('{"chapter": ' + "9" * 5000 + "}") is None

    def test_deep_nesting_is_rejected(self) -> None:
        assert parse_strict("[" * 200000) is None


class TestRepair:
    def test_unquoted_keys(self) -> None:
        data = repair_json('{narrative: "You enter.", scene: "cave"}')
        assert data == {"narrative": "You enter.", "scene": "cave"}

    def test_surrounding_text_and_fences(self) -> None:
        raw = 'Here:\n```json\n{"narrative": "Hi there.", "scene": "inn"}\n```\nEnjoy!'
        assert repair_json(raw) == {"narrative": "Hi there.", "scene": "inn"}

    def test_raw_newline_inside_value(self) -> None:
        data = repair_json('{"narrative": "Line one.\nLine two."}')
        assert data == {"narrative": "Line one.\nLine two."}

    def test_escaped_newline_becomes_space(self) -> None:
        data = repair_json('{"narrative": "Line one.\\nLine two."}')
        assert data == {"narrative": "Line one. Line two."}

    def test_no_braces(self) -> None:
        assert repair_json("no object here") is None

    def test_unrecoverable(self) -> None:
        assert repair_json("{this is: not, json at all") is None

    def test_normalize_uses_repair(self) -> None:
        r = _norm('{narrative: "You enter the cave.", scene: "cave", emotion: "happy"}')
        assert r.narrative == "You enter the cave."
        assert r.scene == "cave"
        assert r.emotion == "happy"


class TestProse:
    def test_prose_keeps_fallbacks(self) -> None:
        r = _norm("The wind howls.", scene="river", chapter=3, advance=True)
        assert r.narrative == "The wind howls."
        assert r.scene == "river"
        assert r.emotion == "default"
        assert r.chapter == 3
        assert r.is_new_chapter is True

    def test_fences_stripped(self) -> None:
        assert prose_narrative("```The door opens.```") == "The door opens."

    def test_empty_reply_continues_story(self) -> None:
        r = _norm("")
        assert r.narrative == CONTINUE_NARRATIVE
        assert r.scene == "forest"


# ── field validation ────────────────────────────────────────


class TestFields:
    def test_missing_narrative(self) -> None:
        assert _norm('{"scene": "cave"}').narrative == CONTINUE_NARRATIVE

    def test_blank_scene_uses_fallback(self) -> None:
        assert _norm('{"narrative": "x", "scene": " "}', scene="castle").scene == "castle"

    def test_blank_fallback_scene_is_forest(self) -> None:
        assert _norm('{"narrative": "x"}', scene="").scene == "forest"

    def test_scene_canonicalised(self) -> None:
        assert _norm('{"narrative": "x", "scene": "Dark  Cave"}').scene == "dark_cave"

    def test_string_chapter(self) -> None:
        assert _norm('{"narrative": "x", "chapter": "4"}').chapter == 4

    def test_oversized_string_chapter_uses_fallback(self) -> None:
        raw = '{"narrative": "x", "chapter": "' + "9" * 5000 + '"}'
        assert _norm(raw, chapter=2).chapter == 2

    def test_bad_chapter_uses_fallback(self) -> None:
        for value in ('"four"', "0", "-1", "true", '"²"'):
            assert _norm('{"narrative": "x", "chapter": %s}' % value, chapter=2).chapter == 2

    def test_non_bool_flag_uses_policy(self) -> None:
        r = _norm('{"narrative": "x", "isNewChapter": "yes"}', advance=True)
        assert r.is_new_chapter is True


def test_clean_narrative():
    assert clean_narrative("happy you smile.Then you wave!Bye") == "You smile. Then you wave! Bye"
    assert clean_narrative("Sad  the rain falls.") == "The rain falls."
    assert clean_narrative("A happy day.") == "A happy day."


def test_scene_id():
    assert scene_id("  Old Town Square ") == "old_town_square"
    assert scene_id("cave") == "cave"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("happy", "happy"),
        ("SAD", "sad"),
        (" joy ", "happy"),
        ("depressed", "sad"),
        ("angry", "default"),
        (None, "default"),
        (3, "default"),
    ],
)
def test_coerce_emotion(value, expected):
    assert coerce_emotion(value) == expected
