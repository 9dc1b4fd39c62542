"""Cerebras chat-completions provider (OpenAI-compatible wire format)."""

from __future__ import annotations

import logging
from typing import Any, Dict

import requests

from ...config import resolve_settings
from ...utils import json_loads, mask_key
from ..types import ProviderError

logger = logging.getLogger(__name__)


class CerebrasProvider:
    name = "cerebras"

    def __init__(self, config: Dict[str, Any] | None = None) -> None:
        settings = resolve_settings(config)
        provider_cfg = settings["providers"]["primary"]
        llm_cfg = settings["llm"]
        self.name = str(provider_cfg.get("name", self.name))
        self._url = str(provider_cfg["url"])
        self._default_model = str(provider_cfg["default_model"])
        self._user_agent = provider_cfg.get("user_agent")
        self._temperature = float(llm_cfg["temperature"])
        self._max_tokens = int(llm_cfg["max_tokens"])
        self._connect_max_tokens = int(llm_cfg["connect_max_tokens"])
        self._default_system_prompt = str(llm_cfg["default_system_prompt"])
        self._timeout = llm_cfg.get("timeout_seconds")

    def _headers(self, api_key: str) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        if self._user_agent:
            headers["User-Agent"] = str(self._user_agent)
        return headers

    def build_payload(self, user_prompt: str, model: str | None, system_prompt: str, stream: bool) -> Dict[str, Any]:
        return {
            "model": model or self._default_model,
            "messages": [
                {"role": "system", "content": system_prompt or self._default_system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "stream": stream,
        }

    def _post(self, api_key: str, payload: Dict[str, Any], stream: bool = False) -> requests.Response:
        try:
            return requests.post(
                self._url,
                headers=self._headers(api_key),
                json=payload,
                timeout=self._timeout,
                stream=stream,
            )
        except (requests.RequestException, ValueError) as exc:
            # ValueError covers keys that cannot be encoded into a header.
            raise ProviderError(str(exc), provider=self.name) from exc

    def _error_from_response(self, res: requests.Response, label: str) -> ProviderError:
        message = json_loads(res.text).get("error", {})
        if isinstance(message, dict):
            message = message.get("message")
        if not message or not isinstance(message, str):
            message = f"Cerebras {label} error: {res.status_code} {res.reason or ''}".rstrip()
        return ProviderError(message, provider=self.name, status_code=res.status_code)

    def connect(self, api_key: str) -> bool:
        payload = {
            "model": self._default_model,
            "messages": [{"role": "user", "content": "Connection Test"}],
            "max_tokens": self._connect_max_tokens,
        }
        res = self._post(api_key, payload)
        if not res.ok:
            logger.warning("Cerebras connection check failed for key %s: %s", mask_key(api_key), res.status_code)
            raise ProviderError(
                f"Cerebras API connection failed: {res.status_code} {res.reason or ''}".rstrip(),
                provider=self.name,
                status_code=res.status_code,
            )
        return True

    def call(self, user_prompt: str, api_key: str, model: str | None = None, system_prompt: str = "") -> str:
        res = self._post(api_key, self.build_payload(user_prompt, model, system_prompt, stream=False))
        if not res.ok:
            raise self._error_from_response(res, "API")

        try:
            data = res.json()
            text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderError("unexpected response shape", provider=self.name) from exc
        if not isinstance(text, str):
            raise ProviderError("unexpected response shape", provider=self.name)
        return text

    def open_stream(
        self, user_prompt: str, api_key: str, model: str | None = None, system_prompt: str = ""
    ) -> requests.Response:
        """Starts a streaming completion and returns the unread response."""
        res = self._post(api_key, self.build_payload(user_prompt, model, system_prompt, stream=True), stream=True)
        if not res.ok:
            error = self._error_from_response(res, "streaming")
            res.close()
            raise error
        return res
