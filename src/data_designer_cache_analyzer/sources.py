"""Preset sources: load a preset snapshot and work out which provider it targets."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

PROVIDERS = ("anthropic", "openai", "google")
AUTO = "auto"

_SOURCE_PROVIDERS = {
    "claude": "anthropic",
    "anthropic": "anthropic",
    "openai": "openai",
    "google": "google",
    "makersuite": "google",
}


class PresetLoadError(ValueError):
    """Raised when a preset file cannot be read or is not a JSON object."""


def load_preset(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise PresetLoadError(f"{path} is not UTF-8 text: {e.reason} at byte {e.start}") from e
    except OSError as e:
        raise PresetLoadError(f"cannot read {path}: {e.strerror or e}") from e
    try:
        preset = json.loads(text)
    except json.JSONDecodeError as e:
        raise PresetLoadError(f"{path} is not valid JSON: {e.msg} (line {e.lineno})") from e
    if not isinstance(preset, dict):
        raise PresetLoadError(f"{path} does not contain a JSON object")
    return preset


def coerce_preset(value: Any) -> Mapping[str, Any] | None:
    """Turn a dataset cell (mapping or JSON string) into a preset, or ``None``."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    if isinstance(value, Mapping):
        return value
    if isinstance(value, (str, bytes)):
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Skipping preset cell that is not valid JSON")
            return None
        return parsed if isinstance(parsed, Mapping) else None
    logger.warning(f"Skipping preset cell of unsupported type {type(value).__name__}")
    return None


def detect_provider(chat_completion_source: str | None) -> str:
    """Map a chat-completion source name to a provider; unknown sources default to anthropic."""
    if not chat_completion_source:
        return "anthropic"
    return _SOURCE_PROVIDERS.get(chat_completion_source.lower(), "anthropic")


def resolve_provider(setting: str | None, preset: Mapping[str, Any] | None) -> str:
    if setting and setting != AUTO:
        return setting
    source = preset.get("chat_completion_source") if preset else None
    return detect_provider(source if isinstance(source, str) else None)
