from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager

from .config import DispatcherConfig
from .dispatcher import CompletionDispatcher, build_dispatcher
from .contracts import CompletionRequest
from .errors import (
    AuthenticationError,
    ConfigurationError,
    MalformedResponse,
    ProviderError,
    ProviderRejected,
    ProviderUnavailable,
    RateLimitError,
    RequestTimeoutError,
)
from .http_models import (
    CompletionResponse,
    JsonCompletionResponse,
    make_completion_response,
    make_error_response,
)
from .logging import configure_logging
from .metrics import maybe_start_metrics, server_errors_total, server_request_latency_seconds, server_requests_total
from .middleware import install_middlewares


def create_app(cfg: DispatcherConfig | None = None, dispatcher: CompletionDispatcher | None = None):
    try:
        from fastapi import FastAPI
        from fastapi.responses import JSONResponse
    except ImportError as e:  # pragma: no cover
        raise RuntimeError('Install the "server" extra: pip install -e ".[server]"') from e

    cfg = cfg or DispatcherConfig()
    configure_logging(
        level=cfg.log_level,
        fmt=cfg.log_format,
        secrets=[s for s in (cfg.openrouter_api_key,) if s],
    )
    # Missing credentials fail here, at startup, rather than per request.
    dispatcher = dispatcher or build_dispatcher(cfg)

    def _request_id(request) -> str | None:
        return getattr(getattr(request, "state", None), "request_id", None)

    def _observe(path: str, status_code: int, started_at: float) -> None:
        server_requests_total.labels(path=path, status=str(status_code)).inc()
        server_request_latency_seconds.labels(path=path).observe(max(0.0, time.monotonic() - started_at))

    def _error(request, *, status_code: int, error_type: str, message: str, headers: dict[str, str] | None = None):
        server_errors_total.labels(type=error_type).inc()
        return JSONResponse(
            status_code=status_code,
            content=make_error_response(message=message, type=error_type, code=_request_id(request)).model_dump(),
            headers=headers,
        )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        maybe_start_metrics(enable=cfg.enable_metrics, bind=cfg.metrics_bind, port=cfg.metrics_port)
        try:
            yield
        finally:
            await dispatcher.close()

    app = FastAPI(
        title="openrouter-dispatch",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if cfg.enable_api_docs else None,
        redoc_url="/redoc" if cfg.enable_api_docs else None,
        openapi_url="/openapi.json" if cfg.enable_api_docs else None,
    )
    install_middlewares(app, cfg=cfg)

    @app.exception_handler(ConfigurationError)
    async def _config_error_handler(request, exc: ConfigurationError):
        return _error(request, status_code=400, error_type="invalid_request_error", message=str(exc))

    @app.exception_handler(AuthenticationError)
    async def _auth_error_handler(request, exc: AuthenticationError):
        return _error(request, status_code=401, error_type="authentication_error", message=str(exc))

    @app.exception_handler(RateLimitError)
    async def _rate_limit_error_handler(request, exc: RateLimitError):
        headers = {}
        if exc.retry_after_seconds is not None:
            headers["Retry-After"] = str(exc.retry_after_seconds)
        return _error(request, status_code=429, error_type="rate_limit_error", message=str(exc), headers=headers)

    @app.exception_handler(ProviderRejected)
    async def _rejected_error_handler(request, exc: ProviderRejected):
        return _error(request, status_code=502, error_type="upstream_rejected", message=str(exc))

    @app.exception_handler(MalformedResponse)
    async def _malformed_error_handler(request, exc: MalformedResponse):
        return _error(request, status_code=502, error_type="upstream_error", message=str(exc))

    @app.exception_handler(RequestTimeoutError)
    async def _timeout_error_handler(request, exc: RequestTimeoutError):
        return _error(request, status_code=504, error_type="timeout", message=str(exc) or "Request timed out.")

    @app.exception_handler(ProviderUnavailable)
    async def _unavailable_error_handler(request, exc: ProviderUnavailable):
        return _error(request, status_code=503, error_type="upstream_unavailable", message=str(exc))

    @app.exception_handler(ProviderError)
    async def _provider_error_handler(request, exc: ProviderError):
        return _error(request, status_code=500, error_type="api_error", message=str(exc))

    def _check_prompt(req: CompletionRequest) -> None:
        if len(req.prompt) > cfg.max_prompt_chars:
            raise ConfigurationError("Prompt too large.")

    def _deadline() -> float | None:
        return max(0.0, float(cfg.request_timeout_seconds or 0)) or None

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/completions", response_model=CompletionResponse)
    async def completions(req: CompletionRequest):
        started_at = time.monotonic()
        _check_prompt(req)
        result = await dispatcher.dispatch(req, timeout_seconds=_deadline())
        _observe("/v1/completions", 200, started_at)
        return make_completion_response(result)

    @app.post("/v1/completions/json", response_model=JsonCompletionResponse)
    async def json_completions(req: CompletionRequest):
        started_at = time.monotonic()
        _check_prompt(req)
        result, data = await dispatcher.dispatch_structured(req, timeout_seconds=_deadline())
        _observe("/v1/completions/json", 200, started_at)
        return JsonCompletionResponse(data=data, model_used=result.model_used, used_fallback=result.used_fallback)

    return app


def main() -> None:  # pragma: no cover
    try:
        import uvicorn
    except ImportError as e:
        raise RuntimeError('Install the "server" extra: pip install -e ".[server]"') from e

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("openrouter_dispatch.server:create_app", host=host, port=port, factory=True)


if __name__ == "__main__":  # pragma: no cover
    main()
