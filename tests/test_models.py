"""Tests for storyquest.models."""

import pytest
from pydantic import ValidationError

from storyquest.models import (
    UNIVERSE_PRESETS,
    GameSettings,
    GameState,
    HistoryEntry,
    SaveRecord,
    StateUpdate,
    preset_settings,
)


class TestGameSettings:
    def test_defaults(self) -> None:
        s = GameSettings()
        assert s.universe.type == "fantasy"
        assert s.universe.preset == "Medieval Fantasy"
        assert s.character.gender == "Female"
        assert s.character.type == "Anime"
        assert s.background.mood == "epic"
        assert s.background.dynamic_time_of_day is True
        assert s.background.weather_effects is False

    def test_partial_input_filled_with_defaults(self) -> None:
        s = GameSettings.model_validate({"universe": {"type": "sci-fi"}})
        assert s.universe.type == "sci-fi"
        assert s.universe.preset == "Medieval Fantasy"
        assert s.character.type == "Anime"


class TestPresets:
    def test_every_preset_applies(self) -> None:
        for preset in UNIVERSE_PRESETS:
            s = preset_settings(preset["name"])
            assert s.universe.preset == preset["name"]
            assert s.universe.type == preset["type"]

    def test_keeps_character_and_background(self) -> None:
        base = GameSettings.model_validate({"background": {"mood": "dark"}})
        s = preset_settings("Wild West", base)
        assert s.universe.type == "historical"
        assert s.background.mood == "dark"
        assert base.universe.type == "fantasy"

    def test_unknown_preset_raises(self) -> None:
        with pytest.raises(KeyError):
            preset_settings("Underwater Kingdom")


class TestGameState:
    def test_defaults(self) -> None:
        st = GameState()
        assert st.current_scene == "forest"
        assert st.character == "default"
        assert st.history == []
        assert st.chapter == 1
        assert st.loading is False

    def test_chapter_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            GameState(chapter=0)

    def test_empty_scene_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GameState(current_scene="")

    def test_invalid_emotion_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GameState(character="angry")

    def test_serialise_roundtrip(self) -> None:
        st = GameState(
            narrative="A cave.",
            current_scene="cave",
            history=[HistoryEntry(narrative="A forest.", scene="forest", chapter=1)],
        )
        assert GameState.model_validate(st.model_dump()) == st


class TestHistoryEntry:
    def test_frozen(self) -> None:
        entry = HistoryEntry(narrative="x", scene="forest")
        with pytest.raises(ValidationError):
            entry.scene = "cave"


class TestStateUpdate:
    def test_only_explicit_fields_are_set(self) -> None:
        u = StateUpdate(narrative="x", character="happy")
        assert u.model_fields_set == {"narrative", "character"}

    def test_chapter_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            StateUpdate(chapter=0)


class TestSaveRecord:
    def test_summary(self) -> None:
        record = SaveRecord(
            id="abc",
            user_id="u1",
            created_at="2024-01-01T00:00:00+00:00",
            game_state=GameState(chapter=3, current_scene="castle"),
        )
        assert record.summary() == {
            "id": "abc",
            "created_at": "2024-01-01T00:00:00+00:00",
            "chapter": 3,
            "scene": "castle",
        }
