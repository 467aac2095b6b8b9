"""Prometheus-compatible metrics endpoint and request tracking middleware."""
from __future__ import annotations

import time
from collections import defaultdict
from threading import Lock

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

TRACKING_OUTCOMES = ("accepted", "deduplicated", "projection_failed")


class _Metrics:
    """Thread-safe in-memory metrics collector."""

    def __init__(self):
        self._lock = Lock()
        self.request_count: dict[tuple[str, str, int], int] = defaultdict(int)
        self.request_duration_sum: dict[tuple[str, str], float] = defaultdict(float)
        self.request_duration_count: dict[tuple[str, str], int] = defaultdict(int)
        self.tracking_events: dict[str, int] = {outcome: 0 for outcome in TRACKING_OUTCOMES}
        self.active_requests = 0
        self.startup_time = time.time()

    def record(self, method: str, path: str, status: int, duration: float):
        with self._lock:
            self.request_count[(method, path, status)] += 1
            self.request_duration_sum[(method, path)] += duration
            self.request_duration_count[(method, path)] += 1

    def record_tracking(self, outcome: str, n: int = 1):
        with self._lock:
            self.tracking_events[outcome] = self.tracking_events.get(outcome, 0) + n

    def inc_active(self):
        with self._lock:
            self.active_requests += 1

    def dec_active(self):
        with self._lock:
            self.active_requests -= 1

    def reset(self):
        with self._lock:
            self.request_count.clear()
            self.request_duration_sum.clear()
            self.request_duration_count.clear()
            self.tracking_events = {outcome: 0 for outcome in TRACKING_OUTCOMES}

    def render(self) -> str:
        lines: list[str] = []
        lines.append("# HELP storefront_http_requests_total Total HTTP requests")
        lines.append("# TYPE storefront_http_requests_total counter")
        with self._lock:
            for (method, path, status), count in sorted(self.request_count.items()):
                lines.append(
                    f'storefront_http_requests_total{{method="{method}",path="{path}",status="{status}"}} {count}'
                )

            lines.append("")
            lines.append("# HELP storefront_http_request_duration_seconds HTTP request duration")
            lines.append("# TYPE storefront_http_request_duration_seconds summary")
            for (method, path), total in sorted(self.request_duration_sum.items()):
                count = self.request_duration_count[(method, path)]
                lines.append(
                    f'storefront_http_request_duration_seconds_sum{{method="{method}",path="{path}"}} {total:.6f}'
                )
                lines.append(
                    f'storefront_http_request_duration_seconds_count{{method="{method}",path="{path}"}} {count}'
                )

            lines.append("")
            lines.append("# HELP storefront_tracking_events_total Tracked analytics events by outcome")
            lines.append("# TYPE storefront_tracking_events_total counter")
            for outcome, count in sorted(self.tracking_events.items()):
                lines.append(f'storefront_tracking_events_total{{outcome="{outcome}"}} {count}')

            lines.append("")
            lines.append("# HELP storefront_active_requests Current in-flight requests")
            lines.append("# TYPE storefront_active_requests gauge")
            lines.append(f"storefront_active_requests {self.active_requests}")

            lines.append("")
            lines.append("# HELP storefront_uptime_seconds Seconds since process start")
            lines.append("# TYPE storefront_uptime_seconds gauge")
            lines.append(f"storefront_uptime_seconds {time.time() - self.startup_time:.1f}")

        return "\n".join(lines) + "\n"


metrics = _Metrics()


def _normalize_path(path: str) -> str:
    """Collapse ids and slugs to reduce cardinality. /api/products/abc/view -> /api/products/:id/view"""
    parts = path.rstrip("/").split("/")
    normalized = []
    for i, part in enumerate(parts):
        prev = parts[i - 1] if i else ""
        if part.isdigit() or (len(part) > 20 and part.replace("-", "").isalnum()):
            normalized.append(":id")
        elif prev in {"products", "categories", "hero-banners"} and part not in {"trending"}:
            normalized.append(":id")
        else:
            normalized.append(part)
    return "/".join(normalized) or "/"


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return PlainTextResponse(metrics.render(), media_type="text/plain; version=0.0.4")

        metrics.inc_active()
        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration = time.perf_counter() - start
            metrics.record(
                request.method,
                _normalize_path(request.url.path),
                response.status_code,
                duration,
            )
            return response
        except Exception:
            duration = time.perf_counter() - start
            metrics.record(request.method, _normalize_path(request.url.path), 500, duration)
            raise
        finally:
            metrics.dec_active()
