"""Log correlation pipeline: fetch, parse, classify, orchestrate, synthesize."""

from .loki_fetcher import LokiFetcher
from .correlation_agent import LogCorrelationAgent

__all__ = [
    'LokiFetcher',
    'LogCorrelationAgent',
]
