"""Tests for the completion helpers and the HTTP chat collaborator."""
from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from storyboard_engine.planning.cancellation import CancellationToken
from storyboard_engine.planning.completion import (
    CompletionSettings,
    HttpChatCompleter,
    clean_json_string,
    is_retryable_error,
    retry_operation,
)
from storyboard_engine.planning.errors import CompletionError, PlanningCancelled


def _settings(**overrides):
    values = {"api_base": "https://llm.test", "api_key": "sk-test"}
    values.update(overrides)
    return CompletionSettings(**values)


def _completer(handler, **settings):
    return HttpChatCompleter(_settings(**settings), transport=httpx.MockTransport(handler))


class TestCleanJsonString:

    def test_strips_json_fence(self):
        assert clean_json_string('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strips_bare_fence(self):
        assert clean_json_string('```\n[1]\n```  ') == "[1]"

    def test_plain_text_untouched(self):
        assert clean_json_string('  {"a": 1} ') == '{"a": 1}'

    def test_empty_becomes_object(self):
        assert clean_json_string("") == "{}"
        assert clean_json_string(None) == "{}"


class TestRetry:

    @pytest.mark.parametrize("exc", [
        CompletionError("slow down", status=429),
        CompletionError("upstream", status=502),
        CompletionError("Request timed out (600s)"),
        CompletionError("network error: reset"),
        CompletionError("RESOURCE_EXHAUSTED"),
        CompletionError("请求超时"),
    ])
    def test_retryable(self, exc):
        assert is_retryable_error(exc)

    @pytest.mark.parametrize("exc", [
        CompletionError("invalid model", status=400),
        ValueError("Expecting value"),
    ])
    def test_not_retryable(self, exc):
        assert not is_retryable_error(exc)

    def test_retries_until_success(self):
        attempts = []

        async def op():
            attempts.append(1)
            if len(attempts) < 3:
                raise CompletionError("busy", status=503)
            return "done"

        assert asyncio.run(retry_operation(op, max_attempts=3, base_delay_sec=0)) == "done"
        assert len(attempts) == 3

    def test_gives_up_after_max_attempts(self):
        attempts = []

        async def op():
            attempts.append(1)
            raise CompletionError("busy", status=503)

        with pytest.raises(CompletionError):
            asyncio.run(retry_operation(op, max_attempts=2, base_delay_sec=0))
        assert len(attempts) == 2

    def test_non_retryable_raises_immediately(self):
        attempts = []

        async def op():
            attempts.append(1)
            raise CompletionError("bad", status=401)

        with pytest.raises(CompletionError):
            asyncio.run(retry_operation(op, max_attempts=3, base_delay_sec=0))
        assert len(attempts) == 1

    def test_cancellation_never_retried(self):
        attempts = []

        async def op():
            attempts.append(1)
            raise PlanningCancelled()

        with pytest.raises(PlanningCancelled):
            asyncio.run(retry_operation(op, max_attempts=3, base_delay_sec=0))
        assert len(attempts) == 1


class TestCompletionSettings:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STORYBOARD_API_BASE", "https://proxy.local/")
        monkeypatch.setenv("STORYBOARD_API_KEY", "abc")
        monkeypatch.delenv("STORYBOARD_CHAT_ENDPOINT", raising=False)
        settings = CompletionSettings.from_env()
        assert settings.api_key == "abc"
        assert settings.url == "https://proxy.local/v1/chat/completions"

    def test_defaults(self, monkeypatch):
        for name in ("STORYBOARD_API_BASE", "STORYBOARD_API_KEY", "STORYBOARD_CHAT_ENDPOINT"):
            monkeypatch.delenv(name, raising=False)
        settings = CompletionSettings.from_env()
        assert settings.api_key == ""
        assert settings.url == "https://api.openai.com/v1/chat/completions"


class TestHttpChatCompleter:

    def test_posts_openai_compatible_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": '{"shots": []}'}}]})

        text = asyncio.run(
            _completer(handler).complete(
                "plan it", "gpt-5.1", temperature=0.5, max_tokens=100, response_format="json_object"
            )
        )
        assert text == '{"shots": []}'
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == {
            "model": "gpt-5.1",
            "messages": [{"role": "user", "content": "plan it"}],
            "temperature": 0.5,
            "max_tokens": 100,
            "response_format": {"type": "json_object"},
        }

    def test_missing_content_is_empty_string(self):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        assert asyncio.run(_completer(handler).complete("p", "m")) == ""

    def test_http_error_carries_status_and_provider_message(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "Rate limit reached"}})

        with pytest.raises(CompletionError) as info:
            asyncio.run(_completer(handler).complete("p", "m"))
        assert info.value.status == 429
        assert str(info.value) == "Rate limit reached"
        assert is_retryable_error(info.value)

    def test_http_error_without_json(self):
        def handler(request):
            return httpx.Response(500, text="")

        with pytest.raises(CompletionError) as info:
            asyncio.run(_completer(handler).complete("p", "m"))
        assert info.value.status == 500
        assert str(info.value) == "HTTP error: 500"

    def test_timeout_maps_to_completion_error(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(CompletionError) as info:
            asyncio.run(_completer(handler).complete("p", "m", timeout_sec=5))
        assert "timed out" in str(info.value)

    def test_missing_api_key(self):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(CompletionError):
            asyncio.run(_completer(handler, api_key="").complete("p", "m"))

    def test_cancelled_token(self):
        def handler(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": "x"}}]})

        async def run():
            token = CancellationToken()
            token.cancel()
            await _completer(handler).complete("p", "m", cancel_token=token)

        with pytest.raises(PlanningCancelled):
            asyncio.run(run())
