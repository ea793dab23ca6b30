import json
from urllib.parse import parse_qs, urlparse

from log_correlator.integrations.explore_links import (
    ERRORS_ONLY_FILTER, build_explore_url, build_link_map,
)

QUERY = '{env="qa-mse"} |= `S1`'


def _panes(url):
    return json.loads(parse_qs(urlparse(url).query)["panes"][0])


def test_explore_url_round_trips_query():
    url = build_explore_url(QUERY, "https://grafana.test/", window_seconds=7200)
    assert url.startswith("https://grafana.test/explore?panes=")
    assert url.endswith("&schemaVersion=1")
    left = _panes(url)["left"]
    assert left["queries"][0]["expr"] == QUERY
    assert left["range"] == {"from": "now-2h", "to": "now"}
    assert left["datasource"] == "grafanacloud-logs"


def test_window_rounded_up_to_whole_hours():
    assert _panes(build_explore_url(QUERY, "https://g", 5400))["left"]["range"]["from"] == "now-2h"
    assert _panes(build_explore_url(QUERY, "https://g", 60))["left"]["range"]["from"] == "now-1h"


def test_link_map():
    trace_query = '{env="qa-mse"} |= `abc` |= `ERROR`'
    links = build_link_map(QUERY, "https://g", 3600, trace_query=trace_query, datasource="loki")
    assert set(links) == {"all_logs", "errors_only", "by_trace_id"}
    assert _panes(links["errors_only"])["left"]["queries"][0]["expr"] == f"{QUERY} {ERRORS_ONLY_FILTER}"
    assert _panes(links["by_trace_id"])["left"]["queries"][0]["expr"] == trace_query
    assert _panes(links["all_logs"])["left"]["datasource"] == "loki"


def test_link_map_without_trace():
    assert set(build_link_map(QUERY, "https://g", 3600)) == {"all_logs", "errors_only"}
