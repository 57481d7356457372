from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


HTTP_REQUESTS_TOTAL = Counter(
    "walletlink_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "walletlink_http_request_duration_seconds",
    "HTTP request duration (seconds)",
    ["method", "path"],
)

CHALLENGE_EVENTS_TOTAL = Counter(
    "walletlink_challenge_events_total",
    "Wallet challenges issued/consumed",
    ["purpose", "result"],
)

BINDING_EVENTS_TOTAL = Counter(
    "walletlink_binding_events_total",
    "Wallet binding events",
    ["event", "result"],
)

LOGIN_EVENTS_TOTAL = Counter(
    "walletlink_login_events_total",
    "Wallet-as-identity login attempts",
    ["result"],
)


def emit(counter: Counter, **labels: str) -> None:
    """Increment a labelled counter; metrics never break the request."""
    try:
        counter.labels(**labels).inc()
    except Exception:
        pass


def observe_http_request(method: str, route_path: str | None, status: int, elapsed_s: float) -> None:
    # Route template keeps label cardinality low; unmatched paths share one label.
    path = route_path if isinstance(route_path, str) and route_path else "__unmatched__"
    try:
        HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status=str(status)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(elapsed_s)
    except Exception:
        pass


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
