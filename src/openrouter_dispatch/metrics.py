from __future__ import annotations

from prometheus_client import Counter, Histogram, start_http_server

server_requests_total = Counter(
    "server_requests_total",
    "Total HTTP requests handled by server",
    labelnames=["path", "status"],
)

server_request_latency_seconds = Histogram(
    "server_request_latency_seconds",
    "HTTP request latency (seconds)",
    buckets=[0.05, 0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60, 120, 300],
    labelnames=["path"],
)

server_errors_total = Counter(
    "server_errors_total",
    "Total errors returned by server",
    labelnames=["type"],
)

dispatch_attempts_total = Counter(
    "dispatch_attempts_total",
    "Completion attempts sent to the provider",
    labelnames=["role", "status"],
)

dispatch_fallbacks_total = Counter(
    "dispatch_fallbacks_total",
    "Dispatches that moved on to the fallback model",
)

dispatch_empty_completions_total = Counter(
    "dispatch_empty_completions_total",
    "Successful completions that carried no content",
    labelnames=["role"],
)

dispatch_latency_seconds = Histogram(
    "dispatch_latency_seconds",
    "End-to-end dispatch latency including fallback",
    buckets=[0.1, 0.3, 0.5, 1, 2, 5, 10, 30, 60, 120],
    labelnames=["outcome"],
)


def maybe_start_metrics(*, enable: bool, bind: str, port: int) -> None:
    if not enable:
        return
    start_http_server(port, addr=bind)
