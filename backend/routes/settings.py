"""Health check, config, connection check and universe preset endpoints."""

import httpx
from fastapi import APIRouter, Depends

from backend.sessions import SessionRegistry
from storyquest.config import public_config, update_config
from storyquest.models import UNIVERSE_PRESETS

from .deps import get_registry
from .models import CheckConnectionBody

router = APIRouter()

# Cheap authenticated GET per provider format.
_PROBE_PATHS = {
    "gemini": "/v1beta/models",
    "koboldcpp": "/api/v1/model",
    "openai": "/v1/models",
    "leonardo": "/me",
}


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.post("/check-connection")
async def check_connection(body: CheckConnectionBody):
    """Quick health check against a generation backend URL."""
    url = body.provider_url.rstrip("/") + _PROBE_PATHS.get(body.provider_format, "/api/v1/model")
    headers: dict[str, str] = {}
    params: dict[str, str] = {}
    if body.api_key:
        if body.provider_format == "gemini":
            params["key"] = body.api_key
        else:
            headers["Authorization"] = f"Bearer {body.api_key}"
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            resp = await client.get(url, headers=headers, params=params)
            resp.raise_for_status()
        return {"ok": True}
    except httpx.HTTPError:
        return {"ok": False}


@router.get("/presets")
async def list_presets():
    """Universe presets offered by the settings screen."""
    return UNIVERSE_PRESETS


@router.get("/config")
async def get_config(registry: SessionRegistry = Depends(get_registry)):
    """Get app config (backends, generation parameters, art style), keys masked."""
    return public_config(registry.config())


@router.patch("/config")
async def patch_config(body: dict, registry: SessionRegistry = Depends(get_registry)):
    """Update app config (partial merge). Running sessions pick up the new backends."""
    config = update_config(registry.data_dir, body)
    registry.reset()
    return public_config(config)
