"""Google Gemini REST provider."""

from __future__ import annotations

import logging
from typing import Any, Dict

import requests

from ...config import resolve_settings
from ...utils import json_loads, mask_key
from ..types import ProviderError

logger = logging.getLogger(__name__)


class GeminiProvider:
    name = "gemini"

    def __init__(self, config: Dict[str, Any] | None = None) -> None:
        settings = resolve_settings(config)
        provider_cfg = settings["providers"]["secondary"]
        llm_cfg = settings["llm"]
        self.name = str(provider_cfg.get("name", self.name))
        # The secondary provider always runs its own configured model.
        self.model = str(provider_cfg["model"])
        self._url = str(provider_cfg["url_template"]).format(model=self.model)
        self._temperature = float(llm_cfg["temperature"])
        self._max_tokens = int(llm_cfg["max_tokens"])
        self._default_system_prompt = str(llm_cfg["default_system_prompt"])
        self._timeout = llm_cfg.get("timeout_seconds")

    def build_payload(self, user_prompt: str, system_prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
            "systemInstruction": {"parts": [{"text": system_prompt or self._default_system_prompt}]},
            "generationConfig": {
                "temperature": self._temperature,
                "maxOutputTokens": self._max_tokens,
            },
        }

    def _post(self, api_key: str, payload: Dict[str, Any]) -> requests.Response:
        try:
            return requests.post(
                self._url,
                params={"key": api_key},
                headers={"Content-Type": "application/json"},
                json=payload,
                timeout=self._timeout,
            )
        except (requests.RequestException, ValueError) as exc:
            message = str(exc)
            if api_key:
                # Transport errors can echo the URL, which carries the key.
                message = message.replace(api_key, mask_key(api_key))
            raise ProviderError(message, provider=self.name) from exc

    def connect(self, api_key: str) -> bool:
        res = self._post(api_key, {"contents": [{"parts": [{"text": "Connection test"}]}]})
        if not res.ok:
            logger.warning("Gemini connection check failed for key %s: %s", mask_key(api_key), res.status_code)
            raise ProviderError("Gemini API connection failed", provider=self.name, status_code=res.status_code)
        return True

    def call(self, user_prompt: str, api_key: str, model: str | None = None, system_prompt: str = "") -> str:
        # `model` is accepted for interface parity and ignored.
        res = self._post(api_key, self.build_payload(user_prompt, system_prompt))
        if not res.ok:
            message = json_loads(res.text).get("error", {})
            if isinstance(message, dict):
                message = message.get("message")
            if not message or not isinstance(message, str):
                message = f"Gemini API error: {res.status_code} {res.reason or ''}".rstrip()
            raise ProviderError(message, provider=self.name, status_code=res.status_code)

        try:
            data = res.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderError("unexpected response shape", provider=self.name) from exc
        if not isinstance(text, str):
            raise ProviderError("unexpected response shape", provider=self.name)
        return text
