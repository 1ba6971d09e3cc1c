import anthropic
import httpx
import pytest

from adapters.claude import ClaudeClassificationAdapter
from errors import ConfigurationError, UpstreamServiceError


class _Block:
    def __init__(self, text, type="text"):
        self.type = type
        self.text = text


class _Response:
    def __init__(self, *blocks):
        self.content = list(blocks)
        self.stop_reason = "end_turn"


class _FakeMessages:
    def __init__(self, result):
        self.result = result
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class _FakeClient:
    def __init__(self, result):
        self.messages = _FakeMessages(result)


def _adapter_with(monkeypatch, result, **kwargs):
    adapter = ClaudeClassificationAdapter(api_key="test-key", model="test-model", **kwargs)
    client = _FakeClient(result)
    monkeypatch.setattr(adapter, "_get_client", lambda: client)
    return adapter, client


def test_missing_key_is_configuration_error():
    adapter = ClaudeClassificationAdapter(api_key=None)
    assert not adapter.is_configured()
    with pytest.raises(ConfigurationError):
        adapter.classify("hello")


def test_client_built_without_retries(monkeypatch):
    seen = {}

    class _Anthropic:
        def __init__(self, **kwargs):
            seen.update(kwargs)

    monkeypatch.setattr(anthropic, "Anthropic", _Anthropic)
    ClaudeClassificationAdapter(api_key="k", timeout=30.0)._get_client()
    assert seen == {"api_key": "k", "max_retries": 0, "timeout": 30.0}


def test_classify_joins_text_blocks(monkeypatch):
    adapter, client = _adapter_with(
        monkeypatch, _Response(_Block('{"a":'), _Block("", type="thinking"), _Block(" 1}")),
    )
    assert adapter.classify("prompt", system_prompt="sys", max_tokens=100, temperature=0.3) == '{"a": 1}'

    request = client.messages.requests[0]
    assert request["model"] == "test-model"
    assert request["system"] == "sys"
    assert request["temperature"] == 0.3
    assert request["messages"] == [{"role": "user", "content": "prompt"}]


def test_system_prompt_omitted_when_empty(monkeypatch):
    adapter, client = _adapter_with(monkeypatch, _Response(_Block("[]")))
    adapter.classify("prompt")
    assert "system" not in client.messages.requests[0]


def test_empty_response_is_upstream_error(monkeypatch):
    adapter, _ = _adapter_with(monkeypatch, _Response(_Block("   ")))
    with pytest.raises(UpstreamServiceError):
        adapter.classify("prompt")


def test_status_error_is_upstream_error(monkeypatch):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(529, request=request)
    error = anthropic.APIStatusError("Overloaded", response=response, body=None)
    adapter, _ = _adapter_with(monkeypatch, error)

    with pytest.raises(UpstreamServiceError) as excinfo:
        adapter.classify("prompt")
    assert excinfo.value.status_code == 529
    assert excinfo.value.__cause__ is error


def test_connection_error_is_upstream_error(monkeypatch):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    adapter, _ = _adapter_with(monkeypatch, anthropic.APIConnectionError(request=request))

    with pytest.raises(UpstreamServiceError) as excinfo:
        adapter.classify("prompt")
    assert excinfo.value.status_code is None
