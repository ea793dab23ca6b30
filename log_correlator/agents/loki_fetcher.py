"""
Fetch-until-present retrieval from Loki.

An empty answer is a valid outcome, so exhausted retries return the last
response instead of raising. Transport errors are not retried here.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from log_correlator.agents.log_processing import NS_PER_SECOND, logs_present
from log_correlator.integrations.loki_client import LogTransport
from log_correlator.models.schemas import LokiQuery
from log_correlator.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LIMIT = 1000
MAX_ATTEMPTS = 3
RETRY_DELAY = 3.0  # seconds


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _to_ns(moment: datetime) -> int:
    delta = moment - _EPOCH
    return (delta.days * 86400 + delta.seconds) * NS_PER_SECOND + delta.microseconds * 1000


class LokiFetcher:
    """Runs one logical range query, retrying while the backend returns no lines."""

    def __init__(
        self,
        transport: LogTransport,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self.last_window: Optional[tuple[datetime, datetime]] = None

    def fetch(
        self,
        query: LokiQuery,
        limit: int = DEFAULT_LIMIT,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
    ) -> str:
        """Return the first response with log lines, or the last one after max_attempts.

        The [now - window, now] range is recomputed on every attempt so a retry
        looks at fresh data rather than the first window.
        """
        attempts = max(1, max_attempts)
        response = ""
        for attempt in range(1, attempts + 1):
            end = self._clock()
            start = end - timedelta(seconds=query.window_seconds)
            self.last_window = (start, end)

            logger.info("Querying Loki", extra={
                "action": "loki_query_attempt",
                "query": query.text,
                "attempt": f"{attempt}/{attempts}",
                "extra": {
                    "start": start.isoformat(),
                    "end": end.isoformat(),
                    "limit": limit,
                },
            })

            response = self._transport.query_range(query.text, _to_ns(start), _to_ns(end), limit)

            if logs_present(response):
                logger.info("Logs retrieved", extra={"action": "loki_query_hit", "query": query.text})
                return response

            logger.warning("No logs found in response", extra={
                "action": "loki_query_empty",
                "query": query.text,
                "attempt": f"{attempt}/{attempts}",
            })
            if attempt < attempts:
                self._sleep(retry_delay)

        logger.warning("No logs after all attempts", extra={
            "action": "loki_query_exhausted",
            "query": query.text,
            "extra": {"attempts": attempts},
        })
        return response
