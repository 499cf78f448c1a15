import pytest
import requests

from footnote_app.utils import llm_client
from footnote_app.utils.llm_client import OpenAICompatibleClient, _strip_code_fence


class FakeResponse:
    def __init__(self, status_code=200, content="{}"):
        self.status_code = status_code
        self._content = content

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}", response=self)

    def json(self):
        return {"choices": [{"message": {"content": self._content}}]}


def test_strip_code_fence():
    assert _strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert _strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


def test_chat_retries_retryable_status(monkeypatch):
    responses = [FakeResponse(503), FakeResponse(429), FakeResponse(200, '{"ok": true}')]
    calls = []

    def fake_post(url, headers=None, data=None, timeout=None):
        calls.append(data)
        return responses.pop(0)

    monkeypatch.setattr(llm_client.requests, "post", fake_post)
    monkeypatch.setattr(llm_client.time, "sleep", lambda s: None)

    client = OpenAICompatibleClient()
    assert client.chat_json([{"role": "user", "content": "hi"}]) == {"ok": True}
    assert len(calls) == 3
    assert b'"response_format"' in calls[0]


def test_chat_does_not_retry_client_errors(monkeypatch):
    calls = []

    def fake_post(url, headers=None, data=None, timeout=None):
        calls.append(1)
        return FakeResponse(401)

    monkeypatch.setattr(llm_client.requests, "post", fake_post)
    monkeypatch.setattr(llm_client.time, "sleep", lambda s: None)

    with pytest.raises(requests.exceptions.HTTPError):
        OpenAICompatibleClient().chat([{"role": "user", "content": "hi"}])
    assert len(calls) == 1


def test_chat_json_rejects_empty_response(monkeypatch):
    monkeypatch.setattr(llm_client.requests, "post", lambda *a, **kw: FakeResponse(200, ""))
    with pytest.raises(ValueError):
        OpenAICompatibleClient().chat_json([{"role": "user", "content": "hi"}])
