"""Text back end client.

The narrator depends only on the LLM protocol:

    async def __call__(self, stage: str, prompt: str,
                       config: GenerationConfig | None = None) -> str: ...

`stage` names the kind of request ("narrative" or "settings_transition") and
is only used for logging.

HttpLLM talks to Gemini (the default), OpenAI-compatible completion servers
and KoboldCpp. EchoLLM hands the prompt back, which exercises the whole turn,
normalizer prose fallback included, without a model. Tests use the StubLLM
from conftest.py.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class GenerationConfig(BaseModel):
    max_output_tokens: int = 300
    temperature: float = 0.7


class LLM(Protocol):
    async def __call__(
        self, stage: str, prompt: str, config: GenerationConfig | None = None
    ) -> str: ...


class LLMError(RuntimeError):
    """Raised for any text back end transport or response-format failure."""


ProviderFormat = Literal["gemini", "koboldcpp", "openai"]


# ---------------------------------------------------------------------------
# Gemini body and reply helpers
# ---------------------------------------------------------------------------

def _gemini_body(prompt: str, config: GenerationConfig) -> dict[str, Any]:
    return {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {
            "maxOutputTokens": config.max_output_tokens,
            "temperature": config.temperature,
        },
    }


def _gemini_text(data: dict[str, Any]) -> str:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMError("Unexpected response format from Gemini backend") from e
    texts = [p["text"] for p in parts if isinstance(p, dict) and "text" in p]
    if not texts:
        raise LLMError("Unexpected response format from Gemini backend")
    return "".join(texts)


def _first_text(data: dict[str, Any], key: str, backend: str) -> str:
    items = data.get(key) if isinstance(data, dict) else None
    if not items or not isinstance(items[0], dict) or "text" not in items[0]:
        raise LLMError(f"Unexpected response format from {backend} backend")
    return items[0]["text"]


class HttpLLM:
    """Async HTTP client for a text back end.

    Formats:
      gemini     POST {url}/v1beta/models/{model}:generateContent?key={api_key}
      openai     POST {url}/v1/completions      -> choices[0].text
      koboldcpp  POST {url}/api/v1/generate     -> results[0].text

    The key goes in the query string for gemini and in a bearer header for
    the others. Every transport or format failure surfaces as LLMError.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "gemini",
        model: str = "gemini-1.5-pro",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._format = provider_format
        self._model = model
        self._timeout = timeout

    @classmethod
    def from_config(cls, backend: dict[str, Any]) -> HttpLLM:
        """Build a client from a config "text_backend" section."""
        return cls(
            provider_url=backend["provider_url"],
            api_key=backend.get("api_key", ""),
            provider_format=backend.get("provider_format", "gemini"),
            model=backend.get("model", ""),
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key and self._format != "gemini":
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(self, prompt: str, config: GenerationConfig) -> tuple[str, dict]:
        if self._format == "gemini":
            url = f"{self._base_url}/v1beta/models/{self._model}:generateContent"
            if self._api_key:
                url += f"?key={self._api_key}"
            return url, _gemini_body(prompt, config)

        if self._format == "openai":
            body: dict[str, Any] = {
                "prompt": prompt,
                "max_tokens": config.max_output_tokens,
                "temperature": config.temperature,
            }
            if self._model:
                body["model"] = self._model
            return f"{self._base_url}/v1/completions", body

        return f"{self._base_url}/api/v1/generate", {
            "prompt": prompt,
            "max_length": config.max_output_tokens,
            "temperature": config.temperature,
        }

    def _parse_response(self, data: Any) -> str:
        if self._format == "gemini":
            return _gemini_text(data)
        if self._format == "openai":
            return _first_text(data, "choices", "OpenAI-compatible")
        return _first_text(data, "results", "KoboldCpp")

    async def __call__(
        self, stage: str, prompt: str, config: GenerationConfig | None = None
    ) -> str:
        url, body = self._build_request(prompt, config or GenerationConfig())
        logger.debug("text request stage=%s format=%s prompt_len=%d", stage, self._format, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to text backend at {self._base_url}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"Text backend timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"Text backend returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise LLMError(f"Text backend request failed: {e!r}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("Text backend returned a non-JSON body") from e
        text = self._parse_response(data)
        logger.debug("text response stage=%s len=%d", stage, len(text))
        return text


class EchoLLM:
    """Answers every request with its own prompt."""

    async def __call__(
        self, stage: str, prompt: str, config: GenerationConfig | None = None
    ) -> str:
        logger.debug("echo stage=%s prompt_len=%d", stage, len(prompt))
        return prompt
