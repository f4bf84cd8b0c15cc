"""App configuration (generation backends, generation parameters, art style).

Stored in {data_dir}/config.json. get_config() returns defaults merged with
stored values; update_config() merges each backend section key by key,
overwrites scalars and persists. Empty API keys fall back to the
GEMINI_API_KEY / LEONARDO_API_KEY environment variables (loaded from .env by
the app) at read time; env values are never written back to disk.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_BACKEND_SECTIONS = ("text_backend", "background_backend", "character_backend")

_CONFIG_DEFAULTS: dict[str, Any] = {
    "text_backend": {
        "provider_url": "https://generativelanguage.googleapis.com",
        "provider_format": "gemini",
        "model": "gemini-1.5-pro",
        "api_key": "",
    },
    "background_backend": {
        "provider_url": "https://generativelanguage.googleapis.com",
        "provider_format": "gemini",
        "model": "gemini-2.0-flash-exp-image-generation",
        "api_key": "",
    },
    "character_backend": {
        "provider_url": "https://cloud.leonardo.ai/api/rest/v1",
        "provider_format": "leonardo",
        "model": "",
        "api_key": "",
    },
    "generation": {
        "max_output_tokens": 300,
        "settings_change_max_output_tokens": 500,
        "temperature": 0.7,
    },
    "image_style": "digital art",
}

_ENV_KEYS = {"gemini": "GEMINI_API_KEY", "leonardo": "LEONARDO_API_KEY"}
_MASK = "***"


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _stored(data_dir: Path) -> dict[str, Any]:
    path = _config_path(data_dir)
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a JSON object", path)
        return {}
    return data


def _merge(config: dict[str, Any], fields: dict[str, Any]) -> None:
    for section in (*_BACKEND_SECTIONS, "generation"):
        if isinstance(fields.get(section), dict):
            values = dict(fields[section])
            # masked key echoed back from public_config()
            if values.get("api_key") == _MASK:
                del values["api_key"]
            config[section].update(values)
    if "image_style" in fields:
        config["image_style"] = fields["image_style"]


def _defaults() -> dict[str, Any]:
    return json.loads(json.dumps(_CONFIG_DEFAULTS))


def get_config(data_dir: Path, *, with_env: bool = True) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config = _defaults()
    _merge(config, _stored(data_dir))
    if with_env:
        for section in _BACKEND_SECTIONS:
            backend = config[section]
            env_name = _ENV_KEYS.get(backend.get("provider_format", ""))
            if not backend.get("api_key") and env_name:
                backend["api_key"] = os.getenv(env_name, "")
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = get_config(data_dir, with_env=False)
    _merge(config, fields)
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(config, indent=2))
    return get_config(data_dir)


def public_config(config: dict[str, Any]) -> dict[str, Any]:
    """Config with API keys masked, for the settings endpoint."""
    masked = json.loads(json.dumps(config))
    for section in _BACKEND_SECTIONS:
        masked[section]["api_key"] = _MASK if masked[section].get("api_key") else ""
    return masked
