"""Primary/secondary provider routing with fail-over, caching and streaming."""

from __future__ import annotations

import logging
import time
from contextlib import closing
from dataclasses import replace
from typing import Any, Callable, Dict, Mapping

import requests

from ..cache import ResponseCache
from ..config import load_settings, resolve_settings
from ..utils import elapsed_ms
from .providers.base import ChatProvider, StreamingChatProvider
from .providers.cerebras_provider import CerebrasProvider
from .providers.gemini_provider import GeminiProvider
from .streaming import SSEDecoder, StreamSession
from .types import (
    CallRequest,
    CallResult,
    CancelToken,
    CombinedFailoverError,
    ConfigurationError,
    GatewayError,
    ProviderRole,
    RequestCancelled,
    ServedBy,
    StreamError,
)

logger = logging.getLogger(__name__)

NO_KEYS_MESSAGE = "No API keys configured. Please add an API key in settings."


class AIGateway:
    def __init__(
        self,
        config: Dict[str, Any] | None = None,
        cache: ResponseCache | None = None,
        providers: Mapping[ProviderRole, ChatProvider] | None = None,
    ) -> None:
        self.config = resolve_settings(config)
        self.cache = cache if cache is not None else self._default_cache()
        self.providers: Dict[ProviderRole, ChatProvider] = dict(providers or self._default_providers())

    @classmethod
    def from_settings_file(cls, settings_path: str = "config/settings.yaml", **kwargs: Any) -> "AIGateway":
        return cls(config=load_settings(settings_path), **kwargs)

    def _default_cache(self) -> ResponseCache:
        cache_cfg = self.config["cache"]
        return ResponseCache(
            max_size=int(cache_cfg["max_size"]),
            ttl_seconds=float(cache_cfg["ttl_seconds"]),
        )

    def _default_providers(self) -> Dict[ProviderRole, ChatProvider]:
        return {
            ProviderRole.PRIMARY: CerebrasProvider(self.config),
            ProviderRole.SECONDARY: GeminiProvider(self.config),
        }

    def connect(self, role: ProviderRole, api_key: str) -> bool:
        """Checks that the upstream accepts `api_key`; raises ProviderError otherwise."""
        return self.providers[role].connect(api_key)

    def clear_cache(self) -> None:
        self.cache.clear()

    def _attempt(
        self, role: ProviderRole, request: CallRequest, api_key: str, cancel_token: CancelToken | None
    ) -> str:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        provider = self.providers[role]
        response = provider.call(
            request.user_prompt,
            api_key,
            model=request.model,
            system_prompt=request.system_prompt,
        )
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return response

    def call(self, request: CallRequest, cancel_token: CancelToken | None = None) -> CallResult:
        start = time.perf_counter()
        try:
            return self._dispatch(request, cancel_token, start)
        except GatewayError as exc:
            exc.response_time_ms = elapsed_ms(start)
            raise

    def _dispatch(self, request: CallRequest, cancel_token: CancelToken | None, start: float) -> CallResult:
        keys = request.api_keys
        cacheable = request.use_cache and not request.stream
        cache_key = ResponseCache.generate_key(request.system_prompt, request.user_prompt, request.model)

        if cacheable:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return CallResult(
                    response=cached,
                    provider=ServedBy.CACHE,
                    cached=True,
                    failover=False,
                    response_time_ms=elapsed_ms(start),
                    provider_name=ServedBy.CACHE.value,
                )

        if keys.has_primary:
            try:
                response = self._attempt(ProviderRole.PRIMARY, request, keys.primary, cancel_token)
                role, failover = ProviderRole.PRIMARY, False
            except RequestCancelled:
                raise
            except Exception as primary_error:
                if not keys.has_secondary:
                    raise
                logger.warning(
                    "Primary provider %s failed, attempting fail-over: %s",
                    self.providers[ProviderRole.PRIMARY].name,
                    primary_error,
                )
                try:
                    response = self._attempt(ProviderRole.SECONDARY, request, keys.secondary, cancel_token)
                except RequestCancelled:
                    raise
                except Exception as secondary_error:
                    logger.error("Fail-over provider also failed: %s", secondary_error)
                    raise CombinedFailoverError(primary_error, secondary_error) from secondary_error
                role, failover = ProviderRole.SECONDARY, True
        elif keys.has_secondary:
            response = self._attempt(ProviderRole.SECONDARY, request, keys.secondary, cancel_token)
            role, failover = ProviderRole.SECONDARY, False
        else:
            raise ConfigurationError(NO_KEYS_MESSAGE)

        if cacheable:
            self.cache.set(cache_key, response)

        return CallResult(
            response=response,
            provider=ServedBy(role.value),
            cached=False,
            failover=failover,
            response_time_ms=elapsed_ms(start),
            provider_name=self.providers[role].name,
        )

    def stream(
        self,
        request: CallRequest,
        on_chunk: Callable[[str], None],
        on_complete: Callable[[str], None],
        on_error: Callable[[Exception], None],
        cancel_token: CancelToken | None = None,
    ) -> StreamSession:
        """Delivers the completion through callbacks as tokens arrive.

        Only the primary provider streams. Without a primary key the request
        goes through `call` and the whole response is reported as a single
        chunk followed by completion.
        """
        session = StreamSession(on_chunk, on_complete, on_error)
        session.start()

        if not request.api_keys.has_primary:
            try:
                result = self.call(replace(request, stream=False), cancel_token=cancel_token)
            except GatewayError as exc:
                session.fail(exc)
                return session
            except Exception as exc:
                logger.error("Non-streaming fallback failed: %s", exc)
                session.fail(StreamError(str(exc), cause=exc))
                return session
            # Reported as one chunk even when the response is empty.
            session.push(result.response)
            session.complete()
            return session

        primary: StreamingChatProvider = self.providers[ProviderRole.PRIMARY]
        try:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            res = primary.open_stream(
                request.user_prompt,
                request.api_keys.primary,
                model=request.model,
                system_prompt=request.system_prompt,
            )
        except RequestCancelled as exc:
            session.fail(exc)
            return session
        except Exception as exc:
            logger.error("Streaming request to %s failed: %s", primary.name, exc)
            session.fail(StreamError(str(exc), cause=exc))
            return session

        decoder = SSEDecoder()
        try:
            with closing(res):
                for data in res.iter_content(chunk_size=None):
                    if cancel_token is not None and cancel_token.cancelled:
                        session.fail(RequestCancelled("request cancelled"))
                        return session
                    for delta in decoder.feed(data):
                        session.push(delta)
                    if decoder.finished:
                        break
                for delta in decoder.flush():
                    session.push(delta)
        except requests.RequestException as exc:
            logger.error("Stream from %s interrupted: %s", primary.name, exc)
            session.fail(StreamError(str(exc), cause=exc))
            return session

        session.complete()
        return session
