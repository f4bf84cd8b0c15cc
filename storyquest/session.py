"""Game session — owns one player's GameState.

Every state change goes through storyquest.reducer and is autosaved. A turn:

  1. Reject blank input, or any input while a turn is outstanding
     (state.loading is the re-entrancy guard).
  2. Debug commands (/happy, /sad, /default, /nextchapter) build their update
     locally; anything else runs storyquest.narrator.generate_narrative().
  3. reducer.apply() with loading cleared, then autosave.

Turns and art renders each carry a token. close(), new_game() and load_save()
bump the tokens, so a result that arrives afterwards is dropped instead of
being applied to a state it no longer belongs to.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from storyquest import reducer
from storyquest.images import BackgroundGateway, CharacterGateway
from storyquest.llm import LLM
from storyquest.models import (
    CharacterSettingsPatch,
    GameSettings,
    GameState,
    HistoryEntry,
    SceneArt,
    SettingsPatch,
    StateUpdate,
)
from storyquest.narrator import NarrativeRequest, generate_narrative
from storyquest.storage import SaveStore, StorageError

logger = logging.getLogger(__name__)

SETTINGS_TRANSITION_INPUT = "I look around as the world seems to shift around me."
SAVE_FAILED_NOTICE = "Your progress could not be saved. The game continues unsaved."


# ---------------------------------------------------------------------------
# Debug commands
# ---------------------------------------------------------------------------

def _cmd_happy(state: GameState) -> StateUpdate:
    return StateUpdate(
        narrative=(
            "You suddenly feel a wave of happiness wash over you. Your spirits "
            "lift and a smile spreads across your face."
        ),
        character="happy",
        loading=False,
    )


def _cmd_sad(state: GameState) -> StateUpdate:
    return StateUpdate(
        narrative=(
            "A feeling of melancholy settles over you. Your shoulders slump "
            "slightly as your mood darkens."
        ),
        character="sad",
        loading=False,
    )


def _cmd_default(state: GameState) -> StateUpdate:
    return StateUpdate(
        narrative="Your emotions return to a neutral state as you continue on your journey.",
        character="default",
        loading=False,
    )


def _cmd_next_chapter(state: GameState) -> StateUpdate:
    return StateUpdate(
        narrative=(
            "You feel a sense of accomplishment as you complete this part of "
            "your journey. It's time to move forward."
        ),
        character="happy",
        chapter=state.chapter + 1,
        is_new_chapter=True,
        loading=False,
    )


DEBUG_COMMANDS: dict[str, Callable[[GameState], StateUpdate]] = {
    "/happy": _cmd_happy,
    "/sad": _cmd_sad,
    "/default": _cmd_default,
    "/nextchapter": _cmd_next_chapter,
}


def narrative_settings_changed(old: GameSettings, new: GameSettings) -> bool:
    """Whether a settings change should be narrated as a world shift."""
    return (
        old.universe.type != new.universe.type
        or old.universe.description != new.universe.description
        or old.background.mood != new.background.mood
    )


def turn_history(state: GameState) -> list[HistoryEntry]:
    """History plus the turn currently on screen, as sent to the narrator."""
    return [
        *state.history,
        HistoryEntry(
            narrative=state.narrative,
            scene=state.current_scene,
            character=state.character,
            chapter=state.chapter,
        ),
    ]


def is_fresh(state: GameState) -> bool:
    return not state.history or state.narrative == reducer.INITIAL_NARRATIVE


# ---------------------------------------------------------------------------
# GameSession
# ---------------------------------------------------------------------------

class GameSession:
    """One player's story: state, turn guard, art and persistence."""

    def __init__(
        self,
        user_id: str,
        *,
        store: SaveStore,
        llm: LLM,
        backgrounds: BackgroundGateway,
        characters: CharacterGateway,
        generation: dict[str, Any] | None = None,
        state: GameState | None = None,
    ) -> None:
        self.user_id = user_id
        self._store = store
        self._llm = llm
        self._backgrounds = backgrounds
        self._characters = characters
        self._generation = generation
        self._state = state or reducer.initial_state()
        self._turn_token = 0
        self._art_token = 0
        self._closed = False
        self.art: SceneArt | None = None
        self.notice: str | None = None

    @classmethod
    def restore(cls, user_id: str, *, store: SaveStore, **kwargs: Any) -> GameSession:
        """Resume the autosaved story, or start fresh with any stored settings."""
        state: GameState | None = None
        try:
            state = store.load_current(user_id)
        except StorageError as e:
            logger.warning("discarding autosave for %s: %s", user_id, e)

        if state is None:
            settings: GameSettings | None = None
            try:
                settings = store.load_settings(user_id)
            except StorageError as e:
                logger.warning("discarding stored settings for %s: %s", user_id, e)
            state = reducer.initial_state(settings)
        elif state.loading:
            # a turn was in flight when the previous process stopped
            state = reducer.set_loading(state, False)

        return cls(user_id, store=store, state=state, **kwargs)

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, state: GameState) -> GameState:
        self._state = state
        try:
            self._store.save_current(self.user_id, state)
        except StorageError as e:
            logger.warning("autosave failed for %s: %s", self.user_id, e)
            self.notice = SAVE_FAILED_NOTICE
        else:
            self.notice = None
        return state

    def _invalidate(self) -> None:
        self._turn_token += 1
        self._art_token += 1
        self.art = None

    async def _narrate(
        self, token: int, request: NarrativeRequest, **extra: Any
    ) -> StateUpdate | None:
        result = await generate_narrative(
            llm=self._llm, request=request, generation=self._generation
        )
        if token != self._turn_token:
            logger.info("dropping stale turn result for %s", self.user_id)
            return None
        return StateUpdate(
            narrative=result.narrative,
            current_scene=result.scene,
            character=result.emotion,
            chapter=result.chapter,
            is_new_chapter=result.is_new_chapter,
            loading=False,
            **extra,
        )

    async def _run_turn(
        self, build: Callable[[int], Awaitable[StateUpdate | None]]
    ) -> GameState | None:
        self._turn_token += 1
        token = self._turn_token
        self._state = reducer.set_loading(self._state, True)
        try:
            update = await build(token)
        except Exception:
            if token == self._turn_token:
                self._state = reducer.set_loading(self._state, False)
            raise
        if update is None:
            return None
        return self._commit(reducer.apply(self._state, update))

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def submit(self, user_input: str) -> GameState | None:
        """Play one turn. Returns None when the input is rejected."""
        text = (user_input or "").strip()
        if not text or self._state.loading or self._closed:
            return None

        command = DEBUG_COMMANDS.get(text.lower())
        state = self._state

        async def build(token: int) -> StateUpdate | None:
            if command is not None:
                return command(state)
            request = NarrativeRequest(
                user_input=text,
                game_history=turn_history(state),
                current_chapter=state.chapter,
                settings=state.settings,
            )
            return await self._narrate(token, request)

        return await self._run_turn(build)

    async def update_settings(self, settings: GameSettings) -> GameState | None:
        """Apply settings chosen in the settings screen.

        A fresh story restarts in the new universe. An ongoing story whose
        universe or mood changed gets a narrated world shift; other changes
        are stored without a turn. Returns None while a turn is outstanding.
        """
        if self._state.loading or self._closed:
            return None
        state = self._state

        try:
            self._store.save_settings(self.user_id, settings)
        except StorageError as e:
            logger.warning("saving settings failed for %s: %s", self.user_id, e)
            self.notice = SAVE_FAILED_NOTICE

        if is_fresh(state):
            return self.new_game(settings)

        if not narrative_settings_changed(state.settings, settings):
            return self._commit(reducer.replace_settings(state, settings))

        patch = SettingsPatch(
            universe=settings.universe,
            character=CharacterSettingsPatch(**settings.character.model_dump()),
            background=settings.background,
        )

        async def build(token: int) -> StateUpdate | None:
            request = NarrativeRequest(
                user_input=SETTINGS_TRANSITION_INPUT,
                game_history=turn_history(state),
                current_chapter=state.chapter,
                settings=settings,
                settings_changed=True,
            )
            return await self._narrate(token, request, settings=patch)

        return await self._run_turn(build)

    def new_game(self, settings: GameSettings | None = None) -> GameState:
        """Start over, dropping any in-flight turn or art result."""
        self._invalidate()
        return self._commit(reducer.new_game(settings or self._state.settings))

    def acknowledge_chapter(self) -> GameState:
        """Presentation has shown the chapter transition; clear the flag."""
        if not self._state.is_new_chapter:
            return self._state
        return self._commit(reducer.acknowledge_chapter(self._state))

    # ------------------------------------------------------------------
    # Saves
    # ------------------------------------------------------------------

    def save_game(self) -> str:
        """Store a named snapshot. Raises StorageError on failure."""
        return self._store.save(self.user_id, self._state)

    def load_save(self, save_id: str) -> GameState | None:
        """Replace the story with a saved one. Raises StorageError on a bad file."""
        state = self._store.load(save_id)
        if state is None:
            return None
        self._invalidate()
        return self._commit(reducer.set_loading(state, False))

    # ------------------------------------------------------------------
    # Art
    # ------------------------------------------------------------------

    async def refresh_art(self) -> SceneArt | None:
        """Render background and character art for the settled state.

        Both images are requested concurrently. Returns None while a turn is
        outstanding, or when the state moved on before the art arrived.
        """
        if self._state.loading or self._closed:
            return None
        self._art_token += 1
        token = self._art_token
        state = self._state

        background, character = await asyncio.gather(
            self._backgrounds.render(state.current_scene, state.narrative, state.settings),
            self._characters.render(state.character, state.settings),
        )
        if token != self._art_token or self._closed:
            logger.info("dropping stale art for %s", self.user_id)
            return None
        self.art = SceneArt(background=background, character=character)
        return self.art

    def close(self) -> None:
        self._closed = True
        self._invalidate()
