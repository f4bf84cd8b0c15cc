"""Per-user GameSession registry held on app.state.

Backend clients are built from config on first use and rebuilt after a
config change. Each session gets its own image caches, so cached art lives
exactly as long as the session.
"""

import logging
from pathlib import Path
from typing import Any

from storyquest.config import get_config
from storyquest.images import (
    BackgroundGateway,
    CharacterGateway,
    HttpImageClient,
    ImageCache,
    ImageClient,
)
from storyquest.llm import LLM, HttpLLM
from storyquest.session import GameSession
from storyquest.storage import SaveStore

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        data_dir: Path,
        *,
        llm: LLM | None = None,
        background_client: ImageClient | None = None,
        character_client: ImageClient | None = None,
    ) -> None:
        self.data_dir = data_dir
        self.store = SaveStore(data_dir)
        # Injected clients (tests) are kept across config changes.
        self._injected = {
            "llm": llm,
            "background": background_client,
            "character": character_client,
        }
        self._clients: dict[str, Any] = {}
        self._sessions: dict[str, GameSession] = {}

    def config(self) -> dict[str, Any]:
        return get_config(self.data_dir)

    def _client(self, name: str) -> Any:
        if self._injected[name] is not None:
            return self._injected[name]
        if name not in self._clients:
            config = self.config()
            if name == "llm":
                self._clients[name] = HttpLLM.from_config(config["text_backend"])
            else:
                self._clients[name] = HttpImageClient.from_config(config[f"{name}_backend"])
        return self._clients[name]

    def text_client(self) -> LLM:
        return self._client("llm")

    def background_client(self) -> ImageClient:
        return self._client("background")

    def character_client(self) -> ImageClient:
        return self._client("character")

    def get(self, user_id: str) -> GameSession:
        session = self._sessions.get(user_id)
        if session is None:
            config = self.config()
            session = GameSession.restore(
                user_id,
                store=self.store,
                llm=self.text_client(),
                backgrounds=BackgroundGateway(
                    self.background_client(), ImageCache(), style=config["image_style"]
                ),
                characters=CharacterGateway(self.character_client(), ImageCache()),
                generation=config["generation"],
            )
            self._sessions[user_id] = session
            logger.info("session started for %s (chapter %d)", user_id, session.state.chapter)
        return session

    def reset(self) -> None:
        """Close every session and drop cached clients (after a config change)."""
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
        self._clients.clear()
