"""Shared gateway data structures."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum


class ProviderRole(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class ServedBy(str, Enum):
    CACHE = "cache"
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class ApiKeys:
    primary: str | None = None
    secondary: str | None = None

    @property
    def has_primary(self) -> bool:
        return bool(self.primary and self.primary.strip())

    @property
    def has_secondary(self) -> bool:
        return bool(self.secondary and self.secondary.strip())

    @property
    def is_empty(self) -> bool:
        return not (self.has_primary or self.has_secondary)


@dataclass(frozen=True)
class CallRequest:
    user_prompt: str
    system_prompt: str = ""
    api_keys: ApiKeys = field(default_factory=ApiKeys)
    model: str = "llama-3.3-70b"
    use_cache: bool = True
    stream: bool = False


@dataclass
class CallResult:
    response: str
    provider: ServedBy
    cached: bool = False
    failover: bool = False
    response_time_ms: float = 0.0
    provider_name: str = ""


class GatewayError(RuntimeError):
    """Base class for every error surfaced by the gateway."""

    # Set by the router on the way out of a call.
    response_time_ms: float | None = None


class ConfigurationError(GatewayError):
    """No usable credentials were supplied."""


class ProviderError(GatewayError):
    """Provider failed to return a valid generation."""

    def __init__(self, message: str, provider: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class CombinedFailoverError(GatewayError):
    """Primary and secondary providers both failed."""

    def __init__(self, primary_error: Exception, secondary_error: Exception) -> None:
        self.primary_error = primary_error
        self.secondary_error = secondary_error
        primary_name = getattr(primary_error, "provider", "") or ProviderRole.PRIMARY.value
        secondary_name = getattr(secondary_error, "provider", "") or ProviderRole.SECONDARY.value
        super().__init__(
            f"Both providers failed. {primary_name}: {primary_error}, "
            f"{secondary_name}: {secondary_error}"
        )


class StreamError(GatewayError):
    """Transport failure while a stream was open or being opened."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause
        self.provider = getattr(cause, "provider", "")
        self.status_code = getattr(cause, "status_code", None)


class RequestCancelled(GatewayError):
    """The caller cancelled the request through its CancelToken."""


class CancelToken:
    """Cooperative cancellation flag shared between a caller and one request."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled("request cancelled")
