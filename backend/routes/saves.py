"""Named save endpoints. Listing and creating are scoped by the x-user-id header."""

from fastapi import APIRouter, Depends, HTTPException

from backend.sessions import SessionRegistry
from storyquest.storage import StorageError

from .deps import get_registry, get_user_id
from .models import CreateSaveBody

router = APIRouter()


@router.get("/saves")
async def list_saves(
    user_id: str = Depends(get_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    """List the caller's saves, newest first."""
    return [record.summary() for record in registry.store.list_saves(user_id)]


@router.post("/saves")
async def create_save(
    body: CreateSaveBody | None = None,
    user_id: str = Depends(get_user_id),
    registry: SessionRegistry = Depends(get_registry),
):
    """Save the given game state, or the caller's running game when none is sent."""
    try:
        if body is not None and body.game_state is not None:
            save_id = registry.store.save(user_id, body.game_state)
        else:
            save_id = registry.get(user_id).save_game()
    except StorageError as e:
        raise HTTPException(500, f"Failed to save game: {e}")
    return {"id": save_id}


@router.get("/saves/{save_id}")
async def get_save(save_id: str, registry: SessionRegistry = Depends(get_registry)):
    """Get a single save with its full game state."""
    try:
        record = registry.store.get_save(save_id)
    except ValueError:
        raise HTTPException(404, "Save not found")
    except StorageError as e:
        raise HTTPException(500, f"Failed to load game: {e}")
    if record is None:
        raise HTTPException(404, "Save not found")
    return record
