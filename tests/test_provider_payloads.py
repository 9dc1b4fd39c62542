import pytest
import requests

from ai_gateway.llm.providers.cerebras_provider import CerebrasProvider
from ai_gateway.llm.providers.gemini_provider import GeminiProvider
from ai_gateway.llm.types import ProviderError
from fakes import FakeResponse, RecordingPost, unencodable_key_error


def test_cerebras_call_sends_bearer_auth_and_chat_body(monkeypatch):
    post = RecordingPost(FakeResponse(body={"choices": [{"message": {"content": "hi"}}]}))
    monkeypatch.setattr(requests, "post", post)

    text = CerebrasProvider().call("hello", "sk-test", model="llama-x", system_prompt="be brief")

    assert text == "hi"
    sent = post.calls[0]
    assert sent["url"] == "https://api.cerebras.ai/v1/chat/completions"
    assert sent["headers"]["Authorization"] == "Bearer sk-test"
    assert sent["json"] == {
        "model": "llama-x",
        "messages": [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hello"},
        ],
        "temperature": 0.7,
        "max_tokens": 4000,
        "stream": False,
    }
    assert sent["timeout"] is None


def test_cerebras_uses_default_system_prompt_when_empty(monkeypatch):
    post = RecordingPost(FakeResponse(body={"choices": [{"message": {"content": "ok"}}]}))
    monkeypatch.setattr(requests, "post", post)

    CerebrasProvider().call("q", "k")

    messages = post.calls[0]["json"]["messages"]
    assert messages[0] == {"role": "system", "content": "You are a helpful study assistant."}
    assert post.calls[0]["json"]["model"] == "llama-3.3-70b"


def test_cerebras_error_body_message_is_raised(monkeypatch):
    body = {"error": {"message": "Invalid API key"}}
    monkeypatch.setattr(requests, "post", RecordingPost(FakeResponse(status_code=401, body=body, reason="Unauthorized")))

    with pytest.raises(ProviderError) as exc_info:
        CerebrasProvider().call("q", "bad")

    assert str(exc_info.value) == "Invalid API key"
    assert exc_info.value.status_code == 401


def test_cerebras_error_without_body_uses_status(monkeypatch):
    monkeypatch.setattr(
        requests, "post", RecordingPost(FakeResponse(status_code=503, body="<html>", reason="Service Unavailable"))
    )

    with pytest.raises(ProviderError, match="503 Service Unavailable"):
        CerebrasProvider().call("q", "k")


def test_cerebras_transport_error_is_wrapped(monkeypatch):
    monkeypatch.setattr(requests, "post", RecordingPost(exc=requests.ConnectionError("dns failure")))

    with pytest.raises(ProviderError, match="dns failure") as exc_info:
        CerebrasProvider().call("q", "k")
    assert isinstance(exc_info.value.__cause__, requests.ConnectionError)


def test_cerebras_unexpected_shape(monkeypatch):
    monkeypatch.setattr(requests, "post", RecordingPost(FakeResponse(body={"choices": []})))

    with pytest.raises(ProviderError, match="unexpected response shape"):
        CerebrasProvider().call("q", "k")


def test_cerebras_connect_uses_tiny_completion(monkeypatch):
    post = RecordingPost(FakeResponse(body={}))
    monkeypatch.setattr(requests, "post", post)

    assert CerebrasProvider().connect("k") is True
    assert post.calls[0]["json"]["max_tokens"] == 5

    monkeypatch.setattr(requests, "post", RecordingPost(FakeResponse(status_code=403, reason="Forbidden")))
    with pytest.raises(ProviderError, match="connection failed"):
        CerebrasProvider().connect("k")


def test_cerebras_open_stream_closes_failed_response(monkeypatch):
    response = FakeResponse(status_code=500, reason="Server Error")
    post = RecordingPost(response)
    monkeypatch.setattr(requests, "post", post)

    with pytest.raises(ProviderError):
        CerebrasProvider().open_stream("q", "k")

    assert response.closed is True
    assert post.calls[0]["stream"] is True
    assert post.calls[0]["json"]["stream"] is True


def test_gemini_call_sends_key_as_query_param(monkeypatch):
    body = {"candidates": [{"content": {"parts": [{"text": "gemini says hi"}]}}]}
    post = RecordingPost(FakeResponse(body=body))
    monkeypatch.setattr(requests, "post", post)

    text = GeminiProvider().call("hello", "g-key", model="ignored", system_prompt="sys")

    assert text == "gemini says hi"
    sent = post.calls[0]
    assert sent["url"].endswith("/models/gemini-1.5-flash:generateContent")
    assert sent["params"] == {"key": "g-key"}
    assert "Authorization" not in sent["headers"]
    assert sent["json"] == {
        "contents": [{"role": "user", "parts": [{"text": "hello"}]}],
        "systemInstruction": {"parts": [{"text": "sys"}]},
        "generationConfig": {"temperature": 0.7, "maxOutputTokens": 4000},
    }


def test_gemini_error_message_from_body(monkeypatch):
    body = {"error": {"message": "API key not valid"}}
    monkeypatch.setattr(requests, "post", RecordingPost(FakeResponse(status_code=400, body=body)))

    with pytest.raises(ProviderError, match="API key not valid"):
        GeminiProvider().call("q", "k")


def test_gemini_transport_error_masks_key(monkeypatch):
    exc = requests.ConnectionError("failed for https://host/?key=secret-gemini-key")
    monkeypatch.setattr(requests, "post", RecordingPost(exc=exc))

    with pytest.raises(ProviderError) as exc_info:
        GeminiProvider().call("q", "secret-gemini-key")

    assert "secret-gemini-key" not in str(exc_info.value)


def test_gemini_model_comes_from_settings():
    provider = GeminiProvider({"providers": {"secondary": {"model": "gemini-2.0-flash"}}})
    assert provider.model == "gemini-2.0-flash"


def test_cerebras_unencodable_key_is_wrapped(monkeypatch):
    monkeypatch.setattr(requests, "post", RecordingPost(exc=unencodable_key_error()))

    with pytest.raises(ProviderError) as exc_info:
        CerebrasProvider().call("q", "sk-ключ")
    assert isinstance(exc_info.value.__cause__, UnicodeEncodeError)


def test_gemini_connect_sends_tiny_request_with_key_param(monkeypatch):
    post = RecordingPost(FakeResponse(body={}))
    monkeypatch.setattr(requests, "post", post)

    assert GeminiProvider().connect("g-key") is True

    sent = post.calls[0]
    assert sent["url"].endswith("/models/gemini-1.5-flash:generateContent")
    assert sent["params"] == {"key": "g-key"}
    assert sent["json"] == {"contents": [{"parts": [{"text": "Connection test"}]}]}


def test_gemini_connect_rejected_key(monkeypatch):
    monkeypatch.setattr(requests, "post", RecordingPost(FakeResponse(status_code=403, reason="Forbidden")))

    with pytest.raises(ProviderError, match="Gemini API connection failed") as exc_info:
        GeminiProvider().connect("g-key")
    assert exc_info.value.status_code == 403


def test_gemini_error_without_body_uses_status(monkeypatch):
    monkeypatch.setattr(
        requests, "post", RecordingPost(FakeResponse(status_code=500, body="", reason="Internal Server Error"))
    )

    with pytest.raises(ProviderError, match="Gemini API error: 500 Internal Server Error"):
        GeminiProvider().call("q", "k")
