"""Background and character art generation.

Layers, leaves first:

    HttpImageClient   - async HTTP client for image backends. "gemini"
                         returns inline image data in one call; "leonardo"
                         creates a generation job, polls it, then downloads
                         the finished image. Raises ImageError on failure.
    ImageCache        - memo of rendered data URLs, owned by whoever builds
                         the gateways and injected into them.
    BackgroundGateway - scene + settings -> background art.
    CharacterGateway  - emotion + settings -> character art.

Gateways never raise on backend failure: they fall back to static assets
(which are never cached) so a later visit can retry generation.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from typing import Any, Literal, Protocol

import httpx
from pydantic import BaseModel

from storyquest.models import Emotion, GameSettings, ImageResult

logger = logging.getLogger(__name__)

DEFAULT_STYLE = "digital art"

BACKGROUND_NEGATIVE_PROMPT = (
    "people, humans, characters, persons, deformed, distorted, disfigured, "
    "poor quality, low quality, text, watermark, signature"
)
CHARACTER_NEGATIVE_PROMPT = (
    "deformed, distorted, disfigured, poor quality, low quality, text, "
    "watermark, signature, bad anatomy, bad proportions, duplicate, "
    "multiple characters, group"
)

LEONARDO_BACKGROUND_MODEL = "f2525554-5542-4faf-a145-3ab08b594170"
LEONARDO_CHARACTER_MODELS: dict[str, str] = {
    "anime": "e316348f-7773-490e-adcd-46757c738eb7",
    "realistic": "1e7737d7-545e-469f-857f-e4b46eaa151d",
    "cartoon": "fc5c416b-b262-44a3-8103-dd252b749178",
}

SCENE_BACKGROUNDS: dict[str, str] = {
    "forest": "/backgrounds/forest.svg",
    "cave": "/backgrounds/cave.svg",
    "castle": "/backgrounds/castle.svg",
}

CHARACTER_IMAGES: dict[str, str] = {
    "default": "/characters/default.svg",
    "happy": "/characters/happy.svg",
    "sad": "/characters/sad.svg",
}

PRESET_CHARACTERS: dict[str, dict[str, str]] = {
    style: {
        emotion: f"/characters/{style}-{emotion}.png"
        for emotion in ("default", "happy", "sad")
    }
    for style in ("anime", "cartoon", "realistic")
}

# Scenes without a direct asset borrow the closest one.
_SCENE_FALLBACKS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"village|town|city|market|shop|inn|tavern|house|home"), "castle"),
    (re.compile(
        r"mountain|hill|cliff|peak|valley|river|lake|stream|waterfall|ocean|sea|beach|coast"
    ), "forest"),
    (re.compile(r"temple|shrine|church|altar|tomb|grave|ruin|ancient"), "cave"),
]

# Shortest payload accepted as a real image.
_MIN_IMAGE_LENGTH = 100


class ImageError(RuntimeError):
    """Raised when an image backend cannot be reached or returns no image."""


class ImageRequest(BaseModel):
    prompt: str
    negative_prompt: str = ""
    width: int = 1024
    height: int = 576
    model_id: str = ""


class ImageClient(Protocol):
    async def __call__(self, request: ImageRequest) -> str: ...


# ---------------------------------------------------------------------------
# HttpImageClient
# ---------------------------------------------------------------------------

ImageFormat = Literal["gemini", "leonardo"]


class HttpImageClient:
    """Async HTTP client for image-generation backends.

    Returns the image as a base64 string (no data-URL prefix).

    Args:
        provider_url:    Base URL, e.g. "https://cloud.leonardo.ai/api/rest/v1".
        api_key:         Key for the backend (query parameter for gemini,
                         bearer token for leonardo).
        provider_format: "gemini" or "leonardo".
        model:           Gemini model name, or the default Leonardo model id
                         when a request carries none.
        timeout:         Per-request HTTP timeout in seconds.
        poll_interval:   Seconds between Leonardo status checks.
        max_attempts:    Status checks before giving up.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ImageFormat = "leonardo",
        model: str = "",
        timeout: float = 60.0,
        poll_interval: float = 2.0,
        max_attempts: int = 30,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts

    @classmethod
    def from_config(cls, backend: dict[str, Any]) -> HttpImageClient:
        return cls(
            provider_url=backend["provider_url"],
            api_key=backend.get("api_key", ""),
            provider_format=backend.get("provider_format", "leonardo"),
            model=backend.get("model", ""),
        )

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key and self._format == "leonardo":
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def __call__(self, request: ImageRequest) -> str:
        logger.debug("image call format=%s prompt_len=%d", self._format, len(request.prompt))
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                if self._format == "gemini":
                    return await self._gemini(client, request)
                return await self._leonardo(client, request)
        except httpx.ConnectError as e:
            raise ImageError(f"Cannot connect to image backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise ImageError(
                f"Image backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise ImageError(f"Image backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise ImageError(f"Image backend request failed: {e!r}") from e

    async def _gemini(self, client: httpx.AsyncClient, request: ImageRequest) -> str:
        url = f"{self._base_url}/v1beta/models/{self._model}:generateContent"
        if self._api_key:
            url = f"{url}?key={self._api_key}"
        body = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        resp = await client.post(url, json=body, headers=self._headers())
        resp.raise_for_status()
        try:
            parts = resp.json()["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ImageError("Unexpected response format from Gemini image backend") from e
        if not isinstance(parts, list):
            raise ImageError("Unexpected response format from Gemini image backend")
        for part in parts:
            inline = part.get("inlineData") if isinstance(part, dict) else None
            data = inline.get("data") if isinstance(inline, dict) else None
            if isinstance(data, str) and data:
                return data
        raise ImageError("No image generated")

    async def _leonardo(self, client: httpx.AsyncClient, request: ImageRequest) -> str:
        body = {
            "prompt": request.prompt,
            "modelId": request.model_id or self._model,
            "width": request.width,
            "height": request.height,
            "num_images": 1,
            "negative_prompt": request.negative_prompt,
            "promptMagic": True,
        }
        resp = await client.post(
            f"{self._base_url}/generations", json=body, headers=self._headers()
        )
        resp.raise_for_status()
        try:
            generation_id = resp.json()["sdGenerationJob"]["generationId"]
        except (KeyError, TypeError, ValueError) as e:
            raise ImageError("Unexpected response format from Leonardo backend") from e

        image_url = await self._poll(client, generation_id)

        download = await client.get(image_url)
        download.raise_for_status()
        return base64.b64encode(download.content).decode("ascii")

    async def _poll(self, client: httpx.AsyncClient, generation_id: str) -> str:
        status_url = f"{self._base_url}/generations/{generation_id}"
        for attempt in range(1, self._max_attempts + 1):
            await asyncio.sleep(self._poll_interval)
            resp = await client.get(status_url, headers=self._headers())
            if resp.status_code >= 400:
                continue
            try:
                job = resp.json().get("generations_by_pk") or {}
            except (ValueError, AttributeError):
                continue
            if not isinstance(job, dict):
                continue
            status = job.get("status")
            if status == "COMPLETE":
                images = job.get("generated_images") or [None]
                url = images[0].get("url") if isinstance(images, list) and isinstance(images[0], dict) else None
                if not isinstance(url, str) or not url:
                    raise ImageError("Leonardo generation completed without images")
                logger.debug("leonardo generation %s done after %d polls", generation_id, attempt)
                return url
            if status == "FAILED":
                raise ImageError("Leonardo generation failed")
        raise ImageError(f"Leonardo generation not ready after {self._max_attempts} attempts")


def to_data_url(image: str) -> str:
    """Normalize a backend payload to a data URL, rejecting truncated data."""
    data_url = image if image.startswith("data:") else f"data:image/png;base64,{image}"
    if len(data_url) <= _MIN_IMAGE_LENGTH:
        raise ImageError("Invalid image data")
    return data_url


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class ImageCache:
    """Data URLs keyed by background_cache_key() / character_cache_key().

    Lives as long as its owner; no eviction.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._entries.get(key)

    def put(self, key: str, image: str) -> None:
        self._entries[key] = image

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def background_cache_key(scene: str, settings: GameSettings) -> str:
    bg = settings.background
    return "|".join([
        scene.strip().lower(),
        settings.universe.type.lower(),
        bg.mood.lower(),
        "weather" if bg.weather_effects else "clear",
        "timeofday" if bg.dynamic_time_of_day else "static",
    ])


def character_cache_key(
    emotion: str, character_type: str, gender: str
) -> str:
    return "|".join([character_type.lower(), gender.lower(), emotion])


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

def build_background_prompt(scene: str, narrative: str, settings: GameSettings) -> str:
    """Describe a scene for the background backend."""
    description = scene.lower().replace("_", " ")
    excerpt = (narrative or "A scene in a visual novel")[:100]
    parts = [
        f"{description} scene: {excerpt}",
        f"{settings.universe.type} universe",
        f"{settings.background.mood} mood",
    ]
    if settings.background.dynamic_time_of_day:
        parts.append("natural time-of-day lighting")
    if settings.background.weather_effects:
        parts.append("atmospheric weather effects")
    return ", ".join(parts)


def background_request(prompt: str, style: str = DEFAULT_STYLE) -> ImageRequest:
    return ImageRequest(
        prompt=(
            f"{prompt}, {style} style, detailed background scene for a visual "
            "novel game, wide shot, scenic view, high quality"
        ),
        negative_prompt=BACKGROUND_NEGATIVE_PROMPT,
        width=1024,
        height=576,
        model_id=LEONARDO_BACKGROUND_MODEL,
    )


class CharacterRequest(BaseModel):
    """What the character backend needs to draw one expression."""

    emotion: Emotion = "default"
    character_type: str = "Anime"
    gender: str = "Female"
    universe_type: str = "fantasy"
    consistent_appearance: bool = True
    dynamic_clothing: bool = True

    @classmethod
    def from_settings(cls, emotion: Emotion, settings: GameSettings) -> CharacterRequest:
        ch = settings.character
        return cls(
            emotion=emotion,
            character_type=ch.type,
            gender=ch.gender,
            universe_type=settings.universe.type,
            consistent_appearance=ch.consistent_appearance,
            dynamic_clothing=ch.dynamic_clothing,
        )

    def cache_key(self) -> str:
        return character_cache_key(self.emotion, self.character_type, self.gender)


_EXPRESSIONS: dict[str, str] = {
    "happy": "a happy, smiling {who} with joyful expression",
    "sad": "a sad, melancholic {who} with downcast eyes",
    "default": "a neutral expression {who} with detailed features",
}


def character_image_request(req: CharacterRequest) -> ImageRequest:
    style = req.character_type.lower()
    who = f"{req.gender.lower()} character"
    parts = [
        _EXPRESSIONS.get(req.emotion, _EXPRESSIONS["default"]).format(who=who),
        f"{style} style",
    ]
    if req.dynamic_clothing:
        parts.append(f"wearing clothing suited to a {req.universe_type} setting")
    if req.consistent_appearance:
        parts.append("same recurring protagonist, consistent face and hair")
    parts.append("high quality, full body portrait, facing forward")
    return ImageRequest(
        prompt=", ".join(parts),
        negative_prompt=CHARACTER_NEGATIVE_PROMPT,
        width=512,
        height=768,
        model_id=LEONARDO_CHARACTER_MODELS.get(style, LEONARDO_CHARACTER_MODELS["anime"]),
    )


# ---------------------------------------------------------------------------
# Static fallbacks
# ---------------------------------------------------------------------------

def static_background(scene: str) -> str:
    scene = scene.lower()
    if scene in SCENE_BACKGROUNDS:
        return SCENE_BACKGROUNDS[scene]
    for key, path in SCENE_BACKGROUNDS.items():
        if key in scene:
            return path
    for pattern, key in _SCENE_FALLBACKS:
        if pattern.search(scene):
            return SCENE_BACKGROUNDS[key]
    return SCENE_BACKGROUNDS["forest"]


def static_character(emotion: str, character_type: str = "") -> str:
    preset = PRESET_CHARACTERS.get(character_type.lower())
    if preset:
        return preset.get(emotion, preset["default"])
    return CHARACTER_IMAGES.get(emotion, CHARACTER_IMAGES["default"])


# ---------------------------------------------------------------------------
# Gateways
# ---------------------------------------------------------------------------

class BackgroundGateway:
    def __init__(
        self, client: ImageClient, cache: ImageCache, style: str = DEFAULT_STYLE
    ) -> None:
        self._client = client
        self._cache = cache
        self._style = style

    async def render(self, scene: str, narrative: str, settings: GameSettings) -> ImageResult:
        key = background_cache_key(scene, settings)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("background cache hit %s", key)
            return ImageResult(image=cached, source="cache")

        request = background_request(build_background_prompt(scene, narrative, settings), self._style)
        try:
            image = to_data_url(await self._client(request))
        except ImageError as e:
            logger.warning("background generation failed for %r: %s", scene, e)
            return ImageResult(image=static_background(scene), source="static")

        self._cache.put(key, image)
        return ImageResult(image=image, source="generated")


class CharacterGateway:
    def __init__(self, client: ImageClient, cache: ImageCache) -> None:
        self._client = client
        self._cache = cache

    async def render(self, emotion: Emotion, settings: GameSettings) -> ImageResult:
        return await self.render_request(CharacterRequest.from_settings(emotion, settings))

    async def render_request(self, req: CharacterRequest) -> ImageResult:
        key = req.cache_key()
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("character cache hit %s", key)
            return ImageResult(image=cached, source="cache")

        try:
            image = to_data_url(await self._client(character_image_request(req)))
        except ImageError as e:
            logger.warning("character generation failed for %s: %s", key, e)
            return ImageResult(
                image=static_character(req.emotion, req.character_type), source="static"
            )

        self._cache.put(key, image)
        return ImageResult(image=image, source="generated")
