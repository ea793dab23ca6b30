import json

import pytest

from log_correlator.integrations.connection_config import AnalyzerConfig
from log_correlator.integrations.loki_client import LogTransport

EMPTY_BODY = json.dumps({"status": "success", "data": {"resultType": "streams", "result": []}})


def build_body(*streams, labels=None):
    """Build a Loki query_range body; each stream is a list of (ts_ns, line)."""
    result = []
    for index, stream in enumerate(streams):
        result.append({
            "stream": labels or {"service_name": f"svc-{index}"},
            "values": [[str(ts), line] for ts, line in stream],
        })
    return json.dumps({"status": "success", "data": {"resultType": "streams", "result": result}})


class FakeTransport(LogTransport):
    """Answers with the body of the first route whose key occurs in the query text."""

    def __init__(self, routes=None, default=EMPTY_BODY):
        self.routes = routes or {}
        self.default = default
        self.calls = []

    def query_range(self, query, start_ns, end_ns, limit):
        self.calls.append({"query": query, "start_ns": start_ns, "end_ns": end_ns, "limit": limit})
        for needle, body in self.routes.items():
            if needle in query:
                return body
        return self.default


@pytest.fixture
def loki_body():
    return build_body


@pytest.fixture
def empty_body():
    return EMPTY_BODY


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def config():
    return AnalyzerConfig(
        grafana_url="https://grafana.test",
        grafana_user="svc-user",
        grafana_password="secret",
        env="qa",
        env_suffix="-mse",
        retry_delay=0,
    )
