"""The caller's running game: turns, settings, chapter flags, art and loading saves."""

from fastapi import APIRouter, Depends, HTTPException

from backend.sessions import SessionRegistry
from storyquest.models import GameSettings, preset_settings
from storyquest.session import GameSession
from storyquest.storage import StorageError

from .deps import get_registry, get_user_id
from .models import NewGameBody, TurnBody

router = APIRouter()


def get_session(
    user_id: str = Depends(get_user_id),
    registry: SessionRegistry = Depends(get_registry),
) -> GameSession:
    return registry.get(user_id)


def _view(session: GameSession) -> dict:
    return {
        "state": session.state.model_dump(),
        "notice": session.notice,
        "art": session.art.model_dump() if session.art else None,
    }


@router.get("/game")
async def get_game(session: GameSession = Depends(get_session)):
    """Current game state, any save notice, and the last rendered art."""
    return _view(session)


@router.post("/game/turn")
async def play_turn(body: TurnBody, session: GameSession = Depends(get_session)):
    """Submit a player action (or a debug command such as /nextchapter)."""
    if not body.message.strip():
        raise HTTPException(400, "Message must not be empty")
    if await session.submit(body.message) is None:
        raise HTTPException(409, "A turn is already in progress")
    return _view(session)


@router.put("/game/settings")
async def put_settings(body: GameSettings, session: GameSession = Depends(get_session)):
    """Apply settings; a changed universe or mood is narrated as a world shift."""
    if await session.update_settings(body) is None:
        raise HTTPException(409, "A turn is already in progress")
    return _view(session)


@router.post("/game/new")
async def new_game(body: NewGameBody | None = None, session: GameSession = Depends(get_session)):
    """Start a new game, optionally with new settings or a universe preset."""
    settings = body.settings if body else None
    if body and body.preset:
        try:
            settings = preset_settings(body.preset, settings or session.state.settings)
        except KeyError:
            raise HTTPException(404, f"Unknown preset: {body.preset}")
    session.new_game(settings)
    return _view(session)


@router.post("/game/acknowledge-chapter")
async def acknowledge_chapter(session: GameSession = Depends(get_session)):
    """Clear the new-chapter flag once the transition has been shown."""
    session.acknowledge_chapter()
    return _view(session)


@router.get("/game/art")
async def get_art(session: GameSession = Depends(get_session)):
    """Render background and character art for the current scene and emotion."""
    art = await session.refresh_art()
    if art is None:
        raise HTTPException(409, "Game state changed while rendering")
    return art


@router.post("/game/load/{save_id}")
async def load_save(save_id: str, session: GameSession = Depends(get_session)):
    """Replace the running game with a named save."""
    try:
        state = session.load_save(save_id)
    except ValueError:
        raise HTTPException(404, "Save not found")
    except StorageError as e:
        raise HTTPException(500, f"Failed to load game: {e}")
    if state is None:
        raise HTTPException(404, "Save not found")
    return _view(session)
