"""Tests for storyquest.storage — named saves, autosave slot and settings."""

import json

import pytest

from storyquest.models import GameSettings, GameState, UniverseSettings
from storyquest.storage import SAVE_ID_LENGTH, SaveStore, StorageError, check_id


class TestNamedSaves:
    def test_save_and_load(self, store: SaveStore) -> None:
        state = GameState(narrative="In the cave.", current_scene="cave", chapter=2)
        save_id = store.save("u1", state)
        assert len(save_id) == SAVE_ID_LENGTH
        loaded = store.load(save_id)
        assert loaded == state

    def test_loading_flag_cleared(self, store: SaveStore) -> None:
        save_id = store.save("u1", GameState(loading=True))
        assert store.load(save_id).loading is False

    def test_record_fields(self, store: SaveStore) -> None:
        save_id = store.save("u1", GameState())
        record = store.get_save(save_id)
        assert record.id == save_id
        assert record.user_id == "u1"
        assert record.created_at

    def test_unknown_save(self, store: SaveStore) -> None:
        assert store.get_save("nope") is None
        assert store.load("nope") is None

    def test_invalid_save_id(self, store: SaveStore) -> None:
        with pytest.raises(ValueError):
            store.load("../etc/passwd")

    def test_list_is_per_user_newest_first(self, store: SaveStore, data_dir) -> None:
        first = store.save("u1", GameState(chapter=1))
        second = store.save("u1", GameState(chapter=2))
        store.save("u2", GameState())
        for save_id, stamp in ((first, "2024-01-01T00:00:00+00:00"), (second, "2024-02-01T00:00:00+00:00")):
            path = data_dir / "saves" / f"{save_id}.json"
            data = json.loads(path.read_text())
            data["created_at"] = stamp
            path.write_text(json.dumps(data))

        records = store.list_saves("u1")
        assert [r.id for r in records] == [second, first]

    def test_list_skips_unreadable_files(self, store: SaveStore, data_dir) -> None:
        store.save("u1", GameState())
        (data_dir / "saves" / "broken.json").write_text("{not json")
        assert len(store.list_saves("u1")) == 1

    def test_invalid_save_file(self, store: SaveStore, data_dir) -> None:
        (data_dir / "saves" / "bad.json").write_text(json.dumps({"id": "bad"}))
        with pytest.raises(StorageError):
            store.get_save("bad")


class TestCurrentSlot:
    def test_empty(self, store: SaveStore) -> None:
        assert store.load_current("u1") is None
        assert store.load_settings("u1") is None

    def test_roundtrip_also_saves_settings(self, store: SaveStore) -> None:
        settings = GameSettings(universe=UniverseSettings(type="sci-fi"))
        state = GameState(narrative="x", settings=settings)
        store.save_current("u1", state)
        assert store.load_current("u1") == state
        assert store.load_settings("u1") == settings

    def test_corrupt_state(self, store: SaveStore, data_dir) -> None:
        path = data_dir / "users" / "u1" / "state.json"
        path.parent.mkdir(parents=True)
        path.write_text("{broken")
        with pytest.raises(StorageError):
            store.load_current("u1")

    def test_state_from_another_format(self, store: SaveStore, data_dir) -> None:
        path = data_dir / "users" / "u1" / "state.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"chapter": "first"}))
        with pytest.raises(StorageError):
            store.load_current("u1")

    def test_settings_survive_corrupt_state(self, store: SaveStore, data_dir) -> None:
        store.save_settings("u1", GameSettings(universe=UniverseSettings(type="historical")))
        (data_dir / "users" / "u1" / "state.json").write_text("{broken")
        assert store.load_settings("u1").universe.type == "historical"


def test_check_id():
    assert check_id("user_1-A", "user id") == "user_1-A"
    for bad in ("", "a/b", "a b", "x" * 65):
        with pytest.raises(ValueError):
            check_id(bad, "user id")
