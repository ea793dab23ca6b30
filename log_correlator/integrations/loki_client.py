"""
HTTP client for the Grafana Loki query_range API.
"""

from abc import ABC, abstractmethod

import requests

from log_correlator.errors import ConfigurationError, TransportError
from log_correlator.integrations.connection_config import AnalyzerConfig
from log_correlator.utils.http_pool import get_session
from log_correlator.utils.logger import get_logger

logger = get_logger(__name__)

QUERY_RANGE_PATH = "/loki/api/v1/query_range"


class LogTransport(ABC):
    """Read-only contract the fetch layer needs from a log backend."""

    @abstractmethod
    def query_range(self, query: str, start_ns: int, end_ns: int, limit: int) -> str:
        """Run a range query and return the raw response body."""
        ...


class LokiClient(LogTransport):
    """Basic-auth client for a Grafana-hosted Loki datasource."""

    def __init__(self, url: str, user: str, password: str, timeout: float = 30.0):
        self.base_url = url.rstrip("/")
        self._user = user
        self._password = password
        self._timeout = timeout

    @classmethod
    def from_config(cls, config: AnalyzerConfig) -> "LokiClient":
        """Build a client from resolved config, naming the first missing setting."""
        for attr, env_key in (("grafana_url", "GRAFANA_URL"),
                              ("grafana_user", "GRAFANA_USER"),
                              ("grafana_password", "GRAFANA_PASSWORD")):
            if not getattr(config, attr):
                raise ConfigurationError(f"{env_key} is not set")
        return cls(
            url=config.grafana_url,
            user=config.grafana_user,
            password=config.grafana_password,
            timeout=config.request_timeout,
        )

    def query_range(self, query: str, start_ns: int, end_ns: int, limit: int) -> str:
        params = {"query": query, "limit": limit, "start": start_ns, "end": end_ns}
        return self.get(QUERY_RANGE_PATH, params)

    def get(self, path: str, params: dict | None = None) -> str:
        """Send a GET request and return the body text.

        Raises:
            TransportError: On connection failures and non-200 responses.
        """
        session = get_session(self.base_url)
        url = f"{self.base_url}{path}"
        try:
            resp = session.get(
                url,
                params=params or {},
                auth=(self._user, self._password),
                timeout=self._timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Grafana request failed", extra={
                "action": "loki_request_error",
                "extra": {"url": url, "error": type(e).__name__},
            })
            raise TransportError(f"Cannot reach Grafana at {self.base_url}: {e}") from e

        if resp.status_code != 200:
            raise TransportError(self._error_message(resp), status_code=resp.status_code)

        resp.encoding = resp.encoding or "utf-8"
        return resp.text

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        message = f"Grafana API returned HTTP {resp.status_code}"
        try:
            body = resp.json()
        except ValueError:
            return f"{message}: {resp.text}" if resp.text else message
        if isinstance(body, dict):
            detail = body.get("message") or body.get("error")
            if detail:
                return f"{message}: {detail}"
        return message
