import httpx
import pytest

from openrouter_dispatch import (
    AuthenticationError,
    CompletionDispatcher,
    DispatcherConfig,
    MalformedResponse,
    ModelCatalog,
    ProviderRejected,
    ProviderUnavailable,
    RateLimitError,
    RequestTimeoutError,
)


class FakeProvider:
    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.calls = []

    async def create_completion(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes[kwargs["model"]]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def close(self):
        return None


def _cfg(**kwargs) -> DispatcherConfig:
    params = {"openrouter_api_key": "sk-or-test", "enable_metrics": False, "log_format": "console"}
    params.update(kwargs)
    return DispatcherConfig(**params)


def _client(outcomes, *, fallback="fallback-model", **cfg_kwargs):
    pytest.importorskip("fastapi")
    from openrouter_dispatch.server import create_app

    provider = FakeProvider(outcomes)
    catalog = ModelCatalog({"primary": "primary-model", "fallback": fallback})
    app = create_app(cfg=_cfg(**cfg_kwargs), dispatcher=CompletionDispatcher(provider, catalog))
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test"), provider


@pytest.mark.asyncio
async def test_completions_returns_fallback_result():
    client, provider = _client(
        {"primary-model": ProviderUnavailable("down"), "fallback-model": "leaves fall slowly"}
    )
    async with client:
        resp = await client.post("/v1/completions", json={"prompt": "Write a haiku", "model": "primary-model"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["text"] == "leaves fall slowly"
    assert body["model_used"] == "fallback-model"
    assert body["used_fallback"] is True
    assert body["attempts"] == 2
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_json_completions_parses_object():
    client, provider = _client({"primary-model": '{"questions": [{"question": "Why us?"}]}'})
    async with client:
        resp = await client.post("/v1/completions/json", json={"prompt": "Interview questions"})

    assert resp.status_code == 200
    assert resp.json()["data"] == {"questions": [{"question": "Why us?"}]}
    assert provider.calls[0]["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_json_completions_maps_non_json_to_502():
    client, _ = _client({"primary-model": "Sure! Here are some questions."})
    async with client:
        resp = await client.post("/v1/completions/json", json={"prompt": "Interview questions"})

    assert resp.status_code == 502
    assert resp.json()["error"]["type"] == "upstream_error"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error,status,error_type",
    [
        (AuthenticationError("bad key", status_code=401), 401, "authentication_error"),
        (ProviderRejected("invalid model", status_code=400), 502, "upstream_rejected"),
        (MalformedResponse("no choices"), 502, "upstream_error"),
        (ProviderUnavailable("refused"), 503, "upstream_unavailable"),
        (RequestTimeoutError("slow"), 504, "timeout"),
    ],
)
async def test_provider_errors_map_to_http_status(error, status, error_type):
    client, _ = _client({"primary-model": error}, fallback=None)
    async with client:
        resp = await client.post(
            "/v1/completions",
            headers={"X-Request-Id": "req_12345678"},
            json={"prompt": "hi"},
        )

    assert resp.status_code == status
    assert resp.json()["error"]["type"] == error_type
    assert resp.json()["error"]["code"] == "req_12345678"
    assert resp.headers.get("X-Request-Id") == "req_12345678"


@pytest.mark.asyncio
async def test_rate_limit_maps_to_429_with_retry_after():
    client, _ = _client({"primary-model": RateLimitError(retry_after_seconds=7)}, fallback=None)
    async with client:
        resp = await client.post("/v1/completions", json={"prompt": "hi"})

    assert resp.status_code == 429
    assert resp.headers.get("Retry-After") == "7"
    assert resp.json()["error"]["type"] == "rate_limit_error"


@pytest.mark.asyncio
async def test_empty_prompt_is_400_and_never_dispatched():
    client, provider = _client({})
    async with client:
        resp = await client.post("/v1/completions", json={"prompt": "  "})

    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "invalid_request_error"
    assert provider.calls == []


@pytest.mark.asyncio
async def test_oversized_prompt_is_400():
    client, provider = _client({"primary-model": "ok"}, max_prompt_chars=10)
    async with client:
        resp = await client.post("/v1/completions", json={"prompt": "x" * 11})

    assert resp.status_code == 400
    assert provider.calls == []


@pytest.mark.asyncio
async def test_invalid_temperature_is_422():
    client, _ = _client({"primary-model": "ok"})
    async with client:
        resp = await client.post("/v1/completions", json={"prompt": "hi", "temperature": 3})

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_healthz_sets_security_headers_and_request_id():
    client, _ = _client({"primary-model": "ok"})
    async with client:
        resp = await client.get("/healthz", headers={"X-Request-Id": "req_12345678"})
        resp2 = await client.post("/v1/completions", json={"prompt": "hi"})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-Id") == "req_12345678"
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"
    assert resp.headers.get("X-Frame-Options") == "DENY"
    assert resp2.headers.get("Cache-Control") == "no-store"
    assert len(resp2.headers.get("X-Request-Id", "")) == 32


def test_create_app_without_api_key_fails_at_startup():
    pytest.importorskip("fastapi")
    from openrouter_dispatch.errors import ConfigurationError
    from openrouter_dispatch.server import create_app

    with pytest.raises(ConfigurationError):
        create_app(cfg=_cfg(openrouter_api_key=None))


@pytest.mark.asyncio
async def test_json_route_goes_through_dispatch_structured():
    pytest.importorskip("fastapi")
    from openrouter_dispatch.server import create_app

    seen = []

    class RecordingDispatcher(CompletionDispatcher):
        async def dispatch_structured(self, request, *, timeout_seconds=None):
            seen.append(request)
            return await super().dispatch_structured(request, timeout_seconds=timeout_seconds)

    provider = FakeProvider({"primary-model": '{"tips": ["quantify impact"]}'})
    dispatcher = RecordingDispatcher(provider, ModelCatalog({"primary": "primary-model"}))
    app = create_app(cfg=_cfg(), dispatcher=dispatcher)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.post("/v1/completions/json", json={"prompt": "Resume tips"})

    assert resp.status_code == 200
    assert resp.json() == {"data": {"tips": ["quantify impact"]}, "model_used": "primary-model", "used_fallback": False}
    assert len(seen) == 1
