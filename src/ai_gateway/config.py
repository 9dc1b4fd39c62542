"""Configuration loading and defaults."""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict

import yaml

from .llm.types import ProviderRole

DEFAULT_SETTINGS: Dict[str, Any] = {
    "providers": {
        "primary": {
            "name": "cerebras",
            "url": "https://api.cerebras.ai/v1/chat/completions",
            "default_model": "llama-3.3-70b",
            "user_agent": "S2-Sentinel/1.0",
        },
        "secondary": {
            "name": "gemini",
            "model": "gemini-1.5-flash",
            "url_template": "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
        },
    },
    "llm": {
        "temperature": 0.7,
        "max_tokens": 4000,
        "connect_max_tokens": 5,
        "default_system_prompt": "You are a helpful study assistant.",
        # None leaves the transport default in place (no timeout).
        "timeout_seconds": None,
    },
    "cache": {
        "max_size": 100,
        "ttl_seconds": 30 * 60,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(settings_path: str = "config/settings.yaml") -> Dict[str, Any]:
    """Loads settings.yaml and merges it onto defaults."""
    merged = deepcopy(DEFAULT_SETTINGS)
    config_path = Path(settings_path)
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as f:
            user_cfg = yaml.safe_load(f) or {}
        merged = _deep_merge(merged, user_cfg)
    return merged


def resolve_settings(config: Dict[str, Any] | None) -> Dict[str, Any]:
    """Overlays a partial in-memory config onto defaults."""
    return _deep_merge(DEFAULT_SETTINGS, config or {})


def parse_provider_role(value: str, config: Dict[str, Any] | None = None) -> ProviderRole:
    """Maps 'primary'/'secondary' or a configured provider name to a ProviderRole."""
    settings = resolve_settings(config)
    needle = value.strip().lower()
    for role in ProviderRole:
        provider_name = str(settings["providers"][role.value]["name"]).lower()
        if needle in (role.value, provider_name):
            return role
    raise ValueError(f"Unknown provider: {value}")
