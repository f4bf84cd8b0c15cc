"""Shared FastAPI dependencies."""

from fastapi import Header, HTTPException, Request

from backend.sessions import SessionRegistry
from storyquest.storage import check_id


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """The caller's user id, taken from the x-user-id header."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(400, "User ID is required")
    try:
        return check_id(x_user_id.strip(), "user id")
    except ValueError as e:
        raise HTTPException(400, str(e))
