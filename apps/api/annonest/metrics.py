from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

work_item_transitions_total = Counter(
    "work_item_transitions_total",
    "Work item lifecycle operations by item type, action and outcome",
    ["item_type", "action", "outcome"],
)

entity_lock_events_total = Counter(
    "entity_lock_events_total",
    "Entity edit lock operations by event and outcome",
    ["event", "outcome"],
)

news_upload_rows_total = Counter(
    "news_upload_rows_total",
    "News upload rows by outcome",
    ["outcome"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _PATH_PARAM_RE.sub("{id}", path_format)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_work_item_transition(item_type: str, action: str, outcome: str) -> None:
    work_item_transitions_total.labels(item_type=item_type, action=action, outcome=outcome).inc()


def observe_entity_lock_event(event: str, outcome: str) -> None:
    entity_lock_events_total.labels(event=event, outcome=outcome).inc()


def observe_news_upload_rows(accepted: int, skipped: int) -> None:
    if accepted > 0:
        news_upload_rows_total.labels(outcome="accepted").inc(accepted)
    if skipped > 0:
        news_upload_rows_total.labels(outcome="skipped").inc(skipped)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
