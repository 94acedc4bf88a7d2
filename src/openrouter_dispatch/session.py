from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from .config import OPENROUTER_API_BASE
from .errors import (
    AuthenticationError,
    MalformedResponse,
    ProviderRejected,
    ProviderUnavailable,
    RateLimitError,
    RequestTimeoutError,
)

log = structlog.get_logger()


def _retry_after(resp: httpx.Response) -> int | None:
    value = resp.headers.get("retry-after")
    return int(value) if value and value.isdigit() else None


def _upstream_message(data: Any, default: str) -> str:
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return default


class OpenRouterSession:
    """
    Thin transport for the OpenRouter chat-completions endpoint.

    One POST per call, no retries: every failure is translated into the
    provider error taxonomy and left to the dispatcher.
    """

    def __init__(
        self,
        api_key: str,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str = OPENROUTER_API_BASE,
        app_referer: str | None = None,
        app_title: str | None = None,
        timeout_seconds: float = 60,
    ):
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        # Identifies the calling app on OpenRouter's dashboards only.
        if app_referer:
            self._headers["HTTP-Referer"] = app_referer
        if app_title:
            self._headers["X-Title"] = app_title

    async def close(self) -> None:
        await self._client.aclose()

    async def create_completion(
        self,
        *,
        model: str,
        messages: list[dict[str, str]],
        max_tokens: int,
        temperature: float,
        response_format: dict[str, Any] | None = None,
    ) -> str:
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if response_format is not None:
            payload["response_format"] = response_format

        url = f"{self._base_url}/chat/completions"
        try:
            resp = await self._client.post(url, headers=self._headers, json=payload)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request to {model} timed out.") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Request to {model} failed: {e.__class__.__name__}.") from e

        if resp.status_code >= 400:
            self._raise_for_status(resp, model)

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponse("Upstream response is not valid JSON.") from e

        text = self._extract_text(data)
        log.debug("openrouter_completion_ok", model=model, prompt_chars=sum(len(m["content"]) for m in messages))
        return text

    def _raise_for_status(self, resp: httpx.Response, model: str) -> None:
        status = resp.status_code
        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            data = None
        message = _upstream_message(data, f"Upstream error {status}.")

        if status in (401, 403):
            raise AuthenticationError(message, status_code=status)
        if status == 429:
            raise RateLimitError(retry_after_seconds=_retry_after(resp), message=message)
        if status >= 500:
            log.warning("openrouter_upstream_5xx", model=model, status_code=status, body=resp.text[:500])
            raise ProviderUnavailable(message, status_code=status)
        raise ProviderRejected(message, status_code=status)

    @staticmethod
    def _extract_text(data: Any) -> str:
        if not isinstance(data, dict):
            raise MalformedResponse("Upstream response must be a JSON object.")

        choices = data.get("choices")
        error = data.get("error")
        # OpenRouter may report provider failures with a 200 and an error body.
        if not choices and isinstance(error, dict):
            code = error.get("code")
            status_code = code if isinstance(code, int) else None
            message = _upstream_message(data, "Upstream reported an error.")
            if status_code == 429:
                raise RateLimitError(message=message)
            if status_code in (401, 403):
                raise AuthenticationError(message, status_code=status_code)
            raise ProviderRejected(message, status_code=status_code)

        if not isinstance(choices, list) or not choices:
            raise MalformedResponse("Missing choices in upstream response.")

        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        if not isinstance(message, dict):
            raise MalformedResponse("Missing message in upstream response.")

        content = message.get("content")
        if content is None:
            return ""
        if not isinstance(content, str):
            raise MalformedResponse("Completion content must be a string.")
        return content
