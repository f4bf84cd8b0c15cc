"""Stateless generation proxies: narrative, background image, character image.

These keep the backend credentials server-side. The narrative proxy never
fails on bad model output; the image proxies report backend failures as 502
and leave the static fallbacks to the game routes.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.sessions import SessionRegistry
from storyquest.images import (
    CharacterRequest,
    ImageError,
    background_request,
    character_image_request,
    to_data_url,
)
from storyquest.models import NormalizedResponse
from storyquest.narrator import NarrativeRequest, generate_narrative

from .deps import get_registry
from .models import GenerateImageBody

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate-narrative", response_model=NormalizedResponse)
async def narrative(body: NarrativeRequest, registry: SessionRegistry = Depends(get_registry)):
    """Run one narrative turn against the text backend."""
    return await generate_narrative(
        llm=registry.text_client(),
        request=body,
        generation=registry.config()["generation"],
    )


@router.post("/generate-image")
async def image(body: GenerateImageBody, registry: SessionRegistry = Depends(get_registry)):
    """Generate a scene background from a prompt."""
    client = registry.background_client()
    try:
        data_url = to_data_url(await client(background_request(body.prompt, body.style)))
    except ImageError as e:
        logger.warning("background proxy failed: %s", e)
        raise HTTPException(502, str(e))
    return {"image": data_url}


@router.post("/generate-character")
async def character(body: CharacterRequest, registry: SessionRegistry = Depends(get_registry)):
    """Generate a character portrait for one emotion."""
    client = registry.character_client()
    try:
        data_url = to_data_url(await client(character_image_request(body)))
    except ImageError as e:
        logger.warning("character proxy failed: %s", e)
        raise HTTPException(502, str(e))
    return {
        "image": data_url,
        "emotion": body.emotion,
        "character_type": body.character_type,
        "background_removed": False,
    }
