"""Chat provider interface."""

from __future__ import annotations

from typing import Protocol

import requests


class ChatProvider(Protocol):
    name: str

    def connect(self, api_key: str) -> bool:
        ...

    def call(self, user_prompt: str, api_key: str, model: str | None = None, system_prompt: str = "") -> str:
        ...


class StreamingChatProvider(ChatProvider, Protocol):
    def open_stream(
        self, user_prompt: str, api_key: str, model: str | None = None, system_prompt: str = ""
    ) -> requests.Response:
        ...
