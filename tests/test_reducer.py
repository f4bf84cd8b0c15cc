"""Tests for storyquest.reducer — state transitions."""

import pytest

from storyquest import reducer
from storyquest.models import (
    BackgroundSettings,
    CharacterSettingsPatch,
    GameSettings,
    SettingsPatch,
    StateUpdate,
    UniverseSettings,
)


@pytest.fixture
def fresh():
    return reducer.initial_state()


class TestHistory:
    def test_history_grows_by_one_per_apply(self, fresh) -> None:
        state = fresh
        for n in range(1, 11):
            state = reducer.apply(state, StateUpdate(narrative=f"Turn {n}."))
            assert len(state.history) == n

    def test_snapshot_is_previous_state(self, fresh) -> None:
        state = reducer.apply(fresh, StateUpdate(narrative="Into the cave.", current_scene="cave"))
        snap = state.history[-1]
        assert snap.narrative == reducer.INITIAL_NARRATIVE
        assert snap.scene == "forest"
        assert snap.chapter == 1

    def test_empty_update_still_a_turn(self, fresh) -> None:
        state = reducer.apply(fresh, StateUpdate())
        assert len(state.history) == 1
        assert state.narrative == fresh.narrative
        assert state.current_scene == fresh.current_scene

    def test_input_not_mutated(self, fresh) -> None:
        reducer.apply(fresh, StateUpdate(narrative="x", chapter=2))
        assert fresh.history == []
        assert fresh.chapter == 1


class TestChapter:
    def test_never_decreases(self, fresh) -> None:
        state = fresh
        for chapter in (3, 1, 2, 5, 4):
            prev = state.chapter
            state = reducer.apply(state, StateUpdate(chapter=chapter))
            assert state.chapter >= prev
        assert state.chapter == 5

    def test_is_new_chapter_only_when_set(self, fresh) -> None:
        assert fresh.is_new_chapter is True
        state = reducer.apply(fresh, StateUpdate(narrative="x"))
        assert state.is_new_chapter is False

    def test_title_round_trip(self, fresh) -> None:
        state = reducer.apply(fresh, StateUpdate(
            chapter=2,
            is_new_chapter=True,
            narrative="Chapter 2: The Dark Woods. You proceed.",
        ))
        assert state.chapter_title == "Chapter 2: The Dark Woods"
        assert state.narrative == "You proceed."
        assert state.is_new_chapter is True

    def test_title_without_heading(self, fresh) -> None:
        state = reducer.apply(fresh, StateUpdate(chapter=2, is_new_chapter=True, narrative="You proceed."))
        assert state.chapter_title == "Chapter 2"
        assert state.narrative == "You proceed."

    def test_title_without_narrative(self, fresh) -> None:
        state = reducer.apply(fresh, StateUpdate(chapter=3, is_new_chapter=True))
        assert state.chapter_title == "Chapter 3"

    def test_title_kept_between_chapters(self, fresh) -> None:
        state = reducer.apply(fresh, StateUpdate(narrative="Onward."))
        assert state.chapter_title == reducer.INITIAL_CHAPTER_TITLE


class TestExtractChapterTitle:
    def test_renumbers_to_resolved_chapter(self) -> None:
        title, narrative = reducer.extract_chapter_title("Chapter 9: Embers. Smoke rises.", 4)
        assert title == "Chapter 4: Embers"
        assert narrative == "Smoke rises."

    def test_heading_without_period_left_in_text(self) -> None:
        title, narrative = reducer.extract_chapter_title("chapter 2: The Gate", 2)
        assert title == "Chapter 2: The Gate"
        assert narrative == "chapter 2: The Gate"

    def test_no_heading(self) -> None:
        assert reducer.extract_chapter_title("Nothing here.", 3) == ("Chapter 3", "Nothing here.")


class TestFields:
    def test_patch_scene_and_character(self, fresh) -> None:
        state = reducer.apply(fresh, StateUpdate(current_scene="cave", character="sad", loading=False))
        assert state.current_scene == "cave"
        assert state.character == "sad"

    def test_absent_fields_kept(self, fresh) -> None:
        state = reducer.apply(fresh, StateUpdate(narrative="x"))
        assert state.current_scene == "forest"
        assert state.character == "default"

    def test_timestamp(self, fresh) -> None:
        assert reducer.apply(fresh, StateUpdate(timestamp=42)).timestamp == 42
        assert reducer.apply(fresh, StateUpdate()).timestamp > 0


class TestSettingsMerge:
    def test_character_merged_field_by_field(self, fresh) -> None:
        patch = SettingsPatch(character=CharacterSettingsPatch(gender="Male"))
        state = reducer.apply(fresh, StateUpdate(settings=patch))
        assert state.settings.character.gender == "Male"
        assert state.settings.character.type == "Anime"

    def test_universe_and_background_replaced(self, fresh) -> None:
        patch = SettingsPatch(
            universe=UniverseSettings(type="sci-fi", description="Stars.", preset="Custom"),
            background=BackgroundSettings(mood="dark"),
        )
        state = reducer.apply(fresh, StateUpdate(settings=patch))
        assert state.settings.universe.type == "sci-fi"
        assert state.settings.universe.description == "Stars."
        assert state.settings.background.mood == "dark"
        assert state.settings.background.weather_effects is False
        assert state.settings.character == fresh.settings.character


class TestNonTurnTransitions:
    def test_do_not_touch_history(self, fresh) -> None:
        state = reducer.apply(fresh, StateUpdate(narrative="x", chapter=2, is_new_chapter=True))
        for after in (
            reducer.set_loading(state, True),
            reducer.acknowledge_chapter(state),
            reducer.replace_settings(state, GameSettings()),
        ):
            assert after.history == state.history

    def test_acknowledge_chapter(self, fresh) -> None:
        assert reducer.acknowledge_chapter(fresh).is_new_chapter is False

    def test_initial_state(self, fresh) -> None:
        assert fresh.narrative == reducer.INITIAL_NARRATIVE
        assert fresh.chapter_title == reducer.INITIAL_CHAPTER_TITLE
        assert fresh.is_new_chapter is True

    def test_new_game_opens_in_universe(self) -> None:
        settings = GameSettings(universe=UniverseSettings(
            type="historical", description="The untamed frontier. Gold everywhere.",
        ))
        state = reducer.new_game(settings)
        assert state.narrative == "You find yourself in the untamed frontier."
        assert state.chapter_title == reducer.NEW_GAME_CHAPTER_TITLE
        assert state.settings.universe.type == "historical"
        assert state.history == []
