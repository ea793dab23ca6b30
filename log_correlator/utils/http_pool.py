"""
Pooled requests sessions for Grafana/Loki.
"""

import threading
from typing import Optional

from urllib3.util.retry import Retry
from requests.adapters import HTTPAdapter
import requests

_lock = threading.Lock()
_sessions: dict[str, requests.Session] = {}


def get_session(base_url: str) -> requests.Session:
    """Get or create a pooled session for a Grafana base URL.

    The session carries a JSON Accept header and mounts an adapter that
    retries idempotent GETs on gateway errors (502/503/504) before the
    response ever reaches the fetch layer. Credentials are not stored on the
    session; callers pass auth per request.
    """
    key = base_url.rstrip("/")
    with _lock:
        session: Optional[requests.Session] = _sessions.get(key)
        if session is not None:
            return session

        session = requests.Session()
        session.headers.update({"Accept": "application/json"})

        adapter = HTTPAdapter(
            max_retries=Retry(
                total=2,
                backoff_factor=0.5,
                status_forcelist=[502, 503, 504],
                allowed_methods=["GET"],
                raise_on_status=False,
            ),
            pool_connections=4,
            pool_maxsize=4,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        _sessions[key] = session
        return session


def close_all() -> None:
    """Close and forget every pooled session."""
    with _lock:
        for session in _sessions.values():
            session.close()
        _sessions.clear()
