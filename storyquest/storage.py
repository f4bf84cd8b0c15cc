"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM — reads and writes go through plain helper
methods that load and dump JSON.

Directory layout:

    {base}/
      saves/
        {save_id}.json        ← named save: {id, user_id, created_at, game_state}
      users/
        {user_id}/
          state.json          ← autosaved current GameState
          settings.json       ← GameSettings, kept apart so they survive a
                                 corrupt or missing state file

Stored data is whatever GameState currently serializes to; older files that
no longer validate are reported as StorageError.
"""

from __future__ import annotations

import json
import re
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from storyquest.models import GameSettings, GameState, SaveRecord

_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
SAVE_ID_LENGTH = 10


class StorageError(RuntimeError):
    """Raised when a state file cannot be written, read or validated."""


def new_save_id() -> str:
    return secrets.token_urlsafe(SAVE_ID_LENGTH)[:SAVE_ID_LENGTH]


def check_id(value: str, kind: str) -> str:
    if not _ID_RE.match(value or ""):
        raise ValueError(f"Invalid {kind}: {value!r}")
    return value


class SaveStore:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._saves_root = base_path / "saves"
        self._users_root = base_path / "users"
        self._saves_root.mkdir(parents=True, exist_ok=True)
        self._users_root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _save_file(self, save_id: str) -> Path:
        return self._saves_root / f"{check_id(save_id, 'save id')}.json"

    def _user_dir(self, user_id: str) -> Path:
        return self._users_root / check_id(user_id, "user id")

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Cannot read {path.name}: {e}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise StorageError(f"Cannot write {path.name}: {e}") from e

    # ------------------------------------------------------------------
    # Named saves
    # ------------------------------------------------------------------

    def save(self, user_id: str, state: GameState) -> str:
        """Store a snapshot and return its id."""
        check_id(user_id, "user id")
        save_id = new_save_id()
        while self._save_file(save_id).exists():
            save_id = new_save_id()
        record = SaveRecord(
            id=save_id,
            user_id=user_id,
            created_at=datetime.now(timezone.utc).isoformat(),
            game_state=state.model_copy(update={"loading": False}),
        )
        self._write_json(self._save_file(save_id), record.model_dump())
        return save_id

    def get_save(self, save_id: str) -> SaveRecord | None:
        path = self._save_file(save_id)
        if not path.is_file():
            return None
        try:
            return SaveRecord.model_validate(self._read_json(path))
        except ValidationError as e:
            raise StorageError(f"Save {save_id} does not match the current format") from e

    def load(self, save_id: str) -> GameState | None:
        record = self.get_save(save_id)
        return record.game_state if record else None

    def list_saves(self, user_id: str) -> list[SaveRecord]:
        """A user's saves, newest first. Unreadable files are skipped."""
        check_id(user_id, "user id")
        records: list[SaveRecord] = []
        for path in self._saves_root.glob("*.json"):
            try:
                record = SaveRecord.model_validate(self._read_json(path))
            except (StorageError, ValidationError):
                continue
            if record.user_id == user_id:
                records.append(record)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records

    # ------------------------------------------------------------------
    # Autosave slot + settings
    # ------------------------------------------------------------------

    def save_current(self, user_id: str, state: GameState) -> None:
        self._write_json(self._user_dir(user_id) / "state.json", state.model_dump())
        self.save_settings(user_id, state.settings)

    def load_current(self, user_id: str) -> GameState | None:
        path = self._user_dir(user_id) / "state.json"
        if not path.is_file():
            return None
        try:
            return GameState.model_validate(self._read_json(path))
        except ValidationError as e:
            raise StorageError("Autosaved state does not match the current format") from e

    def save_settings(self, user_id: str, settings: GameSettings) -> None:
        self._write_json(self._user_dir(user_id) / "settings.json", settings.model_dump())

    def load_settings(self, user_id: str) -> GameSettings | None:
        path = self._user_dir(user_id) / "settings.json"
        if not path.is_file():
            return None
        try:
            return GameSettings.model_validate(self._read_json(path))
        except ValidationError as e:
            raise StorageError("Stored settings do not match the current format") from e
