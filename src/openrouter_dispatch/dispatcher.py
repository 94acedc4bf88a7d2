from __future__ import annotations

import asyncio
import json
import re
from typing import Any

import structlog

from .catalog import ModelCatalog
from .config import DispatcherConfig
from .contracts import CompletionProvider, CompletionRequest, CompletionResult
from .errors import ConfigurationError, MalformedResponse, ProviderError, RequestTimeoutError
from .metrics import (
    dispatch_attempts_total,
    dispatch_empty_completions_total,
    dispatch_fallbacks_total,
    dispatch_latency_seconds,
)
from .session import OpenRouterSession

log = structlog.get_logger()

JSON_OBJECT_FORMAT: dict[str, Any] = {"type": "json_object"}

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class CompletionDispatcher:
    """
    Runs one completion against the provider, degrading to the catalog's
    fallback model at most once when the primary model fails.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        catalog: ModelCatalog,
        *,
        default_max_tokens: int = 4000,
        default_temperature: float = 0.7,
        attempt_timeout_seconds: float = 60.0,
    ):
        self.provider = provider
        self.catalog = catalog
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature
        self.attempt_timeout_seconds = attempt_timeout_seconds

    async def close(self) -> None:
        await self.provider.close()

    def _call_params(self, request: CompletionRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "messages": [{"role": "user", "content": request.prompt}],
            "max_tokens": request.max_tokens if request.max_tokens is not None else self.default_max_tokens,
            "temperature": request.temperature if request.temperature is not None else self.default_temperature,
        }
        if request.json_mode:
            params["response_format"] = dict(JSON_OBJECT_FORMAT)
        return params

    async def _attempt(self, model: str, params: dict[str, Any], timeout: float | None) -> str:
        role = self.catalog.role_of(model)
        try:
            text = await asyncio.wait_for(
                self.provider.create_completion(model=model, **params),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            dispatch_attempts_total.labels(role=role, status="timeout").inc()
            if timeout is None:
                raise RequestTimeoutError(f"Attempt on {model} timed out.") from e
            raise RequestTimeoutError(f"Attempt on {model} exceeded {timeout:.2f}s.") from e
        except ProviderError:
            dispatch_attempts_total.labels(role=role, status="error").inc()
            raise
        dispatch_attempts_total.labels(role=role, status="success").inc()
        return text

    async def dispatch(self, request: CompletionRequest, *, timeout_seconds: float | None = None) -> CompletionResult:
        if not request.prompt or not request.prompt.strip():
            raise ConfigurationError("Prompt must be non-empty.")

        model = self.catalog.resolve(request.model)
        params = self._call_params(request)
        plan = self.catalog.attempt_plan(model)

        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + timeout_seconds if timeout_seconds is not None else None
        errors: list[ProviderError] = []

        for index, attempt_model in enumerate(plan):
            attempt_timeout: float | None = self.attempt_timeout_seconds or None
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    errors.append(RequestTimeoutError(f"Dispatch deadline exceeded before attempt on {attempt_model}."))
                    break
                attempt_timeout = remaining if attempt_timeout is None else min(attempt_timeout, remaining)

            if index > 0:
                dispatch_fallbacks_total.inc()
                log.warning(
                    "completion_fallback",
                    failed_model=plan[index - 1],
                    fallback_model=attempt_model,
                    error_type=type(errors[-1]).__name__,
                )

            try:
                text = await self._attempt(attempt_model, params, attempt_timeout)
            except ConfigurationError:
                raise
            except ProviderError as e:
                log.error(
                    "completion_attempt_failed",
                    model=attempt_model,
                    attempt=index + 1,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                errors.append(e)
                continue

            if not text:
                dispatch_empty_completions_total.labels(role=self.catalog.role_of(attempt_model)).inc()
                log.warning("completion_empty_content", model=attempt_model, json_mode=request.json_mode)

            latency = loop.time() - started
            dispatch_latency_seconds.labels(outcome="fallback" if index > 0 else "primary").observe(latency)
            return CompletionResult(
                text=text,
                model_used=attempt_model,
                used_fallback=index > 0,
                latency_seconds=latency,
                attempts=index + 1,
            )

        dispatch_latency_seconds.labels(outcome="error").observe(loop.time() - started)
        final = errors[-1]
        if len(errors) > 1:
            raise final from errors[-2]
        raise final

    async def dispatch_structured(
        self, request: CompletionRequest, *, timeout_seconds: float | None = None
    ) -> tuple[CompletionResult, dict[str, Any]]:
        result = await self.dispatch(request.model_copy(update={"json_mode": True}), timeout_seconds=timeout_seconds)
        return result, parse_json_object(result.text)

    async def dispatch_json(self, request: CompletionRequest, *, timeout_seconds: float | None = None) -> dict[str, Any]:
        _, data = await self.dispatch_structured(request, timeout_seconds=timeout_seconds)
        return data

    async def generate(self, prompt: str, model: str | None = None, **options: Any) -> str:
        """Convenience wrapper returning only the generated text."""
        result = await self.dispatch(CompletionRequest(prompt=prompt, model=model, **options))
        return result.text


def parse_json_object(text: str) -> dict[str, Any]:
    stripped = text.strip()
    if not stripped:
        return {}
    fenced = _CODE_FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1)
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise MalformedResponse("Completion is not valid JSON.") from e
    if not isinstance(data, dict):
        raise MalformedResponse("Completion JSON must be an object.")
    return data


def build_dispatcher(cfg: DispatcherConfig | None = None) -> CompletionDispatcher:
    cfg = cfg or DispatcherConfig()
    api_key = cfg.require_api_key()
    session = OpenRouterSession(
        api_key,
        base_url=cfg.base_url,
        app_referer=cfg.app_referer,
        app_title=cfg.app_title,
        timeout_seconds=cfg.attempt_timeout_seconds,
    )
    return CompletionDispatcher(
        session,
        cfg.build_catalog(),
        default_max_tokens=cfg.default_max_tokens,
        default_temperature=cfg.default_temperature,
        attempt_timeout_seconds=cfg.attempt_timeout_seconds,
    )
