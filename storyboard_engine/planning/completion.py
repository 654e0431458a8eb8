"""Text-completion collaborator: protocol, HTTP client, retry and JSON helpers.

The planner only depends on the TextCompleter protocol.  HttpChatCompleter is
the concrete OpenAI-compatible implementation used by the CLI; tests supply
scripted in-memory completers instead.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict

from storyboard_engine.planning.cancellation import (
    CancellationToken,
    cancellable_sleep,
    ensure_not_cancelled,
    race_cancellation,
)
from storyboard_engine.planning.errors import CompletionError, PlanningCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"```\s*$")

_RETRYABLE_STATUSES = frozenset({429, 504})
_RETRYABLE_MARKERS = (
    "429",
    "quota",
    "RESOURCE_EXHAUSTED",
    "timed out",
    "timeout",
    "超时",
    "Gateway Timeout",
    "504",
    "ECONNRESET",
    "ETIMEDOUT",
    "network",
)


class TextCompleter(Protocol):
    async def complete(
        self,
        prompt: str,
        model: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 8192,
        response_format: Optional[str] = None,
        timeout_sec: float = 600.0,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        ...


# ── JSON helpers ──────────────────────────────────────────────────────────────


def clean_json_string(text: Optional[str]) -> str:
    """Strip a surrounding markdown code fence; empty input becomes "{}"."""
    if not text:
        return "{}"
    cleaned = _FENCE_OPEN_RE.sub("", text.strip())
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned)
    return cleaned.strip()


# ── Retry ─────────────────────────────────────────────────────────────────────


def is_retryable_error(exc: BaseException) -> bool:
    status = getattr(exc, "status", None)
    if isinstance(status, int) and (status in _RETRYABLE_STATUSES or status >= 500):
        return True
    message = str(exc)
    return any(marker in message for marker in _RETRYABLE_MARKERS)


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay_sec: float = 2.0,
    cancel_token: Optional[CancellationToken] = None,
) -> T:
    """Run *operation* with exponential backoff on retryable failures.

    Delay before attempt i+1 is base_delay_sec * 2**i.  Cancellation is never
    retried: PlanningCancelled propagates immediately, and a failure observed
    after the token fired is reported as PlanningCancelled.
    """
    attempts = max(1, max_attempts)
    for attempt in range(attempts):
        ensure_not_cancelled(cancel_token)
        try:
            return await operation()
        except PlanningCancelled:
            raise
        except Exception as exc:
            if cancel_token is not None and cancel_token.cancelled:
                raise PlanningCancelled() from exc
            if attempt < attempts - 1 and is_retryable_error(exc):
                delay = base_delay_sec * (2 ** attempt)
                logger.warning(
                    "Request failed, retrying (%d/%d) in %.1fs: %s",
                    attempt + 1, attempts, delay, exc,
                )
                await cancellable_sleep(delay, cancel_token)
                continue
            raise
    raise AssertionError("unreachable")  # pragma: no cover


# ── HTTP collaborator ─────────────────────────────────────────────────────────


class CompletionSettings(BaseModel):
    """Connection settings for an OpenAI-compatible chat-completion API."""

    model_config = ConfigDict(extra="ignore")

    api_base: str = "https://api.openai.com"
    api_key: str = ""
    endpoint: str = "/v1/chat/completions"

    @classmethod
    def from_env(cls) -> "CompletionSettings":
        """Read STORYBOARD_API_BASE / STORYBOARD_API_KEY / STORYBOARD_CHAT_ENDPOINT."""
        defaults = cls()
        return cls(
            api_base=os.environ.get("STORYBOARD_API_BASE", defaults.api_base),
            api_key=os.environ.get("STORYBOARD_API_KEY", ""),
            endpoint=os.environ.get("STORYBOARD_CHAT_ENDPOINT", defaults.endpoint),
        )

    @property
    def url(self) -> str:
        return f"{self.api_base.rstrip('/')}/{self.endpoint.lstrip('/')}"


def _error_from_response(response: httpx.Response) -> CompletionError:
    message = f"HTTP error: {response.status_code}"
    try:
        payload = response.json()
    except ValueError:
        if response.text:
            message = response.text
    else:
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict) and error.get("message"):
            message = str(error["message"])
    return CompletionError(message, status=response.status_code)


class HttpChatCompleter:
    """TextCompleter backed by a POST to an OpenAI-compatible endpoint."""

    def __init__(
        self,
        settings: Optional[CompletionSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or CompletionSettings.from_env()
        self._transport = transport

    def _build_body(
        self,
        prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
        response_format: Optional[str],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        if max_tokens and max_tokens > 0:
            body["max_tokens"] = max_tokens
        if response_format == "json_object":
            body["response_format"] = {"type": "json_object"}
        return body

    async def _post(self, body: Dict[str, Any], timeout_sec: float) -> str:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.api_key}",
        }
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(timeout_sec), transport=self._transport
            ) as client:
                response = await client.post(self.settings.url, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise CompletionError(f"Request timed out ({timeout_sec:g}s)") from exc
        except httpx.TransportError as exc:
            raise CompletionError(f"network error: {exc}") from exc

        if response.status_code >= 400:
            raise _error_from_response(response)
        data = response.json()
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""

    async def complete(
        self,
        prompt: str,
        model: str,
        *,
        temperature: float = 0.7,
        max_tokens: int = 8192,
        response_format: Optional[str] = None,
        timeout_sec: float = 600.0,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        if not self.settings.api_key:
            raise CompletionError("Missing API key: set STORYBOARD_API_KEY")
        body = self._build_body(prompt, model, temperature, max_tokens, response_format)
        return await race_cancellation(self._post(body, timeout_sec), cancel_token)
