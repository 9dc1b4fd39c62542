"""Utility helpers."""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any, Dict


def hash_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def mask_key(api_key: str | None) -> str:
    if not api_key:
        return "<none>"
    if len(api_key) <= 8:
        return "****"
    return f"{api_key[:4]}…{api_key[-4:]}"


def json_loads(text: str | None) -> Dict[str, Any]:
    if not text:
        return {}
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return {}
    if isinstance(payload, dict):
        return payload
    return {}
