from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from .contracts import CompletionResult


class CompletionResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    text: str
    model_used: str
    used_fallback: bool
    latency_seconds: float
    attempts: int


class JsonCompletionResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    data: dict[str, Any]
    model_used: str
    used_fallback: bool


def make_completion_response(result: CompletionResult) -> CompletionResponse:
    return CompletionResponse(
        text=result.text,
        model_used=result.model_used,
        used_fallback=result.used_fallback,
        latency_seconds=result.latency_seconds,
        attempts=result.attempts,
    )


class ErrorDetail(BaseModel):
    message: str
    type: str = "api_error"
    param: str | None = None
    code: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


def make_error_response(
    *,
    message: str,
    type: str = "api_error",
    param: str | None = None,
    code: str | None = None,
) -> ErrorResponse:
    return ErrorResponse(error=ErrorDetail(message=message, type=type, param=param, code=code))
