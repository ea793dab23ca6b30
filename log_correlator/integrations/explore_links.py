"""Grafana Explore deep links for LogQL queries."""

import json
import math
from urllib.parse import quote_plus

ERRORS_ONLY_FILTER = "|~ `ERROR|failed|exception`"


def build_explore_url(
    query: str,
    base_url: str,
    window_seconds: int = 3600,
    datasource: str = "grafanacloud-logs",
) -> str:
    """Return an Explore URL showing `query` over now-<N>h to now.

    N is the window rounded up to whole hours (at least 1).
    """
    hours = max(1, math.ceil(window_seconds / 3600))
    panes = {
        "left": {
            "datasource": datasource,
            "queries": [{"refId": "A", "expr": query, "queryType": "range"}],
            "range": {"from": f"now-{hours}h", "to": "now"},
        }
    }
    encoded = quote_plus(json.dumps(panes, separators=(",", ":")))
    return f"{base_url.rstrip('/')}/explore?panes={encoded}&schemaVersion=1"


def build_link_map(
    all_logs_query: str,
    base_url: str,
    window_seconds: int,
    trace_query: str | None = None,
    datasource: str = "grafanacloud-logs",
) -> dict[str, str]:
    """Named links: every log line, errors only, and by trace ID when one is known."""
    links = {
        "all_logs": build_explore_url(all_logs_query, base_url, window_seconds, datasource),
        "errors_only": build_explore_url(
            f"{all_logs_query} {ERRORS_ONLY_FILTER}", base_url, window_seconds, datasource
        ),
    }
    if trace_query:
        links["by_trace_id"] = build_explore_url(trace_query, base_url, window_seconds, datasource)
    return links
