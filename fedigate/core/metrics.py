"""In-process metrics collector with Prometheus text exposition."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
import time
from typing import Dict, Tuple


_lock = Lock()
_started_at = time.time()

_api_requests_total: Dict[Tuple[str, str, str], int] = defaultdict(int)
_api_request_duration_sum: Dict[Tuple[str, str], float] = defaultdict(float)
_api_request_duration_count: Dict[Tuple[str, str], int] = defaultdict(int)
_rate_limit_block_total: Dict[str, int] = defaultdict(int)
_api_errors_total: Dict[str, int] = defaultdict(int)


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _normalize_label(value: str, *, fallback: str = "unknown") -> str:
    normalized = (value or "").strip()
    return normalized or fallback


def record_api_request(*, method: str, path: str, status_code: int, duration_seconds: float) -> None:
    status = str(status_code)
    method_label = method.upper()
    path_label = path or "unknown"
    duration = max(duration_seconds, 0.0)

    with _lock:
        _api_requests_total[(method_label, path_label, status)] += 1
        _api_request_duration_sum[(method_label, path_label)] += duration
        _api_request_duration_count[(method_label, path_label)] += 1


def record_rate_limit_block(*, kind: str) -> None:
    with _lock:
        _rate_limit_block_total[_normalize_label(kind)] += 1


def record_api_error(*, code: str, count: int = 1) -> None:
    if count <= 0:
        return
    with _lock:
        _api_errors_total[_normalize_label(code)] += int(count)


def snapshot_counts() -> Dict[str, int]:
    """Flat totals, mostly for the CLI and tests."""

    with _lock:
        return {
            "api_requests": sum(_api_requests_total.values()),
            "rate_limit_blocks": sum(_rate_limit_block_total.values()),
            "api_errors": sum(_api_errors_total.values()),
        }


def render_prometheus_metrics(*, app_name: str, app_version: str, env: str) -> str:
    uptime = max(time.time() - _started_at, 0.0)
    with _lock:
        requests_total = dict(_api_requests_total)
        duration_sum = dict(_api_request_duration_sum)
        duration_count = dict(_api_request_duration_count)
        rate_limit_total = dict(_rate_limit_block_total)
        errors_total = dict(_api_errors_total)

    lines = [
        "# HELP fedigate_build_info Build metadata.",
        "# TYPE fedigate_build_info gauge",
        (
            f'fedigate_build_info{{app_name="{_escape_label(app_name)}",'
            f'version="{_escape_label(app_version)}",env="{_escape_label(env)}"}} 1'
        ),
        "# HELP fedigate_process_uptime_seconds Process uptime in seconds.",
        "# TYPE fedigate_process_uptime_seconds gauge",
        f"fedigate_process_uptime_seconds {uptime:.6f}",
        "# HELP fedigate_api_requests_total Outgoing API requests by response status.",
        "# TYPE fedigate_api_requests_total counter",
    ]
    for (method, path, status), value in sorted(requests_total.items()):
        lines.append(
            (
                f'fedigate_api_requests_total{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}",status="{_escape_label(status)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP fedigate_api_request_duration_seconds Outgoing request duration summary.",
            "# TYPE fedigate_api_request_duration_seconds summary",
        ]
    )
    for (method, path), value in sorted(duration_sum.items()):
        lines.append(
            (
                f'fedigate_api_request_duration_seconds_sum{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value:.6f}'
            )
        )
    for (method, path), value in sorted(duration_count.items()):
        lines.append(
            (
                f'fedigate_api_request_duration_seconds_count{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP fedigate_rate_limit_block_total Requests rejected by the local token bucket.",
            "# TYPE fedigate_rate_limit_block_total counter",
        ]
    )
    for kind, value in sorted(rate_limit_total.items()):
        lines.append(f'fedigate_rate_limit_block_total{{kind="{_escape_label(kind)}"}} {value}')

    lines.extend(
        [
            "# HELP fedigate_api_errors_total Gateway errors by kind and reason.",
            "# TYPE fedigate_api_errors_total counter",
        ]
    )
    for code, value in sorted(errors_total.items()):
        lines.append(f'fedigate_api_errors_total{{code="{_escape_label(code)}"}} {value}')

    return "\n".join(lines) + "\n"


def reset_metrics_for_tests() -> None:
    with _lock:
        _api_requests_total.clear()
        _api_request_duration_sum.clear()
        _api_request_duration_count.clear()
        _rate_limit_block_total.clear()
        _api_errors_total.clear()
