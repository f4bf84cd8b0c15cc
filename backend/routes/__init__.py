"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, config, check-connection, presets),
generation proxies (narrative, background image, character image), saves
(per user, keyed by the x-user-id header) and game (the caller's running
session: turns, settings, chapters, art).
"""

from fastapi import APIRouter

from .game import router as game_router
from .generate import router as generate_router
from .saves import router as saves_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(generate_router)
router.include_router(saves_router)
router.include_router(game_router)
