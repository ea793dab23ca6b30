import re
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from log_correlator.agents.log_processing import (
    extract_structured_args, extract_trace_ids, format_timestamp,
    logs_present, parse_response, parse_streams,
)
from log_correlator.agents.loki_fetcher import LokiFetcher
from log_correlator.agents.synthesizer import (
    determine_root_cause, generate_recommendations, no_identifier_root_cause,
)
from log_correlator.agents.timeline import classify, merge_timelines
from log_correlator.errors import ConfigurationError, ParseError
from log_correlator.integrations.connection_config import AnalyzerConfig, resolve_config
from log_correlator.integrations.explore_links import build_link_map
from log_correlator.integrations.loki_client import LogTransport, LokiClient
from log_correlator.models.schemas import (
    AnalysisResult, IdentifierSet, LogFinding, LogRecord, LokiQuery,
    NetworkCallArgs, VALID_MODES,
)
from log_correlator.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_HOURS = 3
DEFAULT_GRAFANA_URL = "https://grafana.example.com"
MAX_MESSAGE_CHARS = 500
MAX_TRACE_ID_SEARCHES = 3

_WORKFLOW_FAILURE = re.compile(r"failed|error|timeout", re.IGNORECASE)
_NETWORK_FAILURE = re.compile(r"error|failed|rejected", re.IGNORECASE)


def build_identifier_set(identifiers: Union[IdentifierSet, Mapping[str, Any]]) -> IdentifierSet:
    """Validate raw identifier input. Unknown keys are a configuration error."""
    if isinstance(identifiers, IdentifierSet):
        return identifiers
    try:
        return IdentifierSet.model_validate(dict(identifiers))
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise ConfigurationError(f"Invalid identifiers: {fields or e}") from None


def truncate_message(message: str, max_length: int = MAX_MESSAGE_CHARS) -> str:
    if len(message) <= max_length:
        return message
    return f"{message[:max_length]}..."


class LogCorrelationAgent:
    """Correlates Loki logs for one set of test identifiers.

    Runs the phases errors -> workflows -> network -> trace -> timeline (all of
    them in ``full`` mode, otherwise just the named one), then synthesizes a
    root cause and recommendations. Phases run in order because the trace
    phase reads the findings and trace IDs the earlier phases produced.
    """

    def __init__(
        self,
        identifiers: Union[IdentifierSet, Mapping[str, Any]],
        hours: int = DEFAULT_HOURS,
        mode: str = "full",
        config: Optional[AnalyzerConfig] = None,
        transport: Optional[LogTransport] = None,
        fetcher: Optional[LokiFetcher] = None,
    ):
        self.agent_name = "log_correlator"
        if mode not in VALID_MODES:
            raise ConfigurationError(
                f"Invalid mode '{mode}'. Valid modes: {', '.join(VALID_MODES)}"
            )
        if not isinstance(hours, int) or hours <= 0:
            raise ConfigurationError(f"hours must be a positive integer, got {hours!r}")

        self.identifiers = build_identifier_set(identifiers)
        self.hours = hours
        self.mode = mode
        self.config = config or resolve_config()
        self._window_seconds = hours * 3600

        if fetcher is None:
            fetcher = LokiFetcher(transport or LokiClient.from_config(self.config))
        self._fetcher = fetcher

        self.results = AnalysisResult(
            identifiers=self.identifiers,
            hours_analyzed=hours,
            mode=mode,
        )

    def analyze(self) -> AnalysisResult:
        started = datetime.now(timezone.utc)

        primary_id = self.identifiers.primary()
        if primary_id is None:
            logger.warning("No identifiers provided, skipping log analysis", extra={
                "agent_name": self.agent_name, "action": "no_identifier",
            })
            self.results.root_cause = no_identifier_root_cause()
            return self.results

        logger.info("Starting log analysis", extra={
            "agent_name": self.agent_name,
            "action": "start",
            "identifier": primary_id,
            "extra": {"hours": self.hours, "mode": self.mode},
        })

        if self._run_phase("errors"):
            self._search_for_errors(primary_id)
        if self._run_phase("workflows"):
            self._search_for_workflows(primary_id)

        network_id = self.identifiers.network_identifier()
        if self._run_phase("network") and network_id:
            self._search_for_network_calls(network_id)

        if self._run_phase("trace") and not self.results.log_entries and self.results.trace_ids_found:
            self._search_by_trace_ids()

        if self._run_phase("timeline"):
            self._build_workflow_timeline(primary_id)

        self.results.root_cause = determine_root_cause(self.results.log_entries)
        self.results.recommendations = generate_recommendations(self.results.log_entries)
        self.results.grafana_urls = self._build_grafana_urls(primary_id)

        finished = datetime.now(timezone.utc)
        window_start = started - timedelta(seconds=self._window_seconds)
        self.results.time_range_analyzed = (
            f"{window_start:%Y-%m-%d %H:%M:%S} - {finished:%Y-%m-%d %H:%M:%S} UTC"
        )

        logger.info("Log analysis complete", extra={
            "agent_name": self.agent_name,
            "action": "complete",
            "identifier": primary_id,
            "extra": {
                "queries": len(self.results.queries_executed),
                "findings": len(self.results.log_entries),
                "trace_ids": len(self.results.trace_ids_found),
                "timeline_events": len(self.results.workflow_timeline),
                "root_cause": self.results.root_cause.category,
            },
        })
        return self.results

    # ─── Helpers ───────────────────────────────────────────────────────────

    def _run_phase(self, phase: str) -> bool:
        return self.mode == "full" or self.mode == phase

    def _query(self, *filters: str) -> LokiQuery:
        return LokiQuery(
            env=self.config.env,
            env_suffix=self.config.env_suffix,
            filters=filters,
            window_seconds=self._window_seconds,
        )

    def _fetch(self, query: LokiQuery, limit: Optional[int] = None) -> str:
        # The audit trail records every query, including ones that find nothing
        self.results.queries_executed.append(query.text)
        return self._fetcher.fetch(
            query,
            limit=limit if limit is not None else self.config.query_limit,
            max_attempts=self.config.max_attempts,
            retry_delay=self.config.retry_delay,
        )

    def _fetch_records(self, query: LokiQuery) -> list[LogRecord]:
        body = self._fetch(query)
        if not logs_present(body):
            return []
        return parse_response(body)

    def _collect_trace_ids(self, records: list[LogRecord]) -> None:
        found = self.results.trace_ids_found
        for record in records:
            for trace_id in extract_trace_ids(record.line):
                if trace_id not in found:
                    found.append(trace_id)

    def _add_finding(self, record: LogRecord, level: str, pattern: str) -> None:
        self.results.log_entries.append(LogFinding(
            timestamp=format_timestamp(record.timestamp_ns),
            level=level,
            message=truncate_message(record.line),
            pattern_matched=pattern,
        ))

    # ─── Phases ────────────────────────────────────────────────────────────

    def _search_for_errors(self, identifier: str) -> None:
        logger.info("Searching for errors", extra={"action": "phase_start", "phase": "errors"})

        for pattern in self.config.error_patterns:
            records = self._fetch_records(self._query(identifier, pattern))
            self._collect_trace_ids(records)
            for record in records:
                self._add_finding(record, "ERROR", pattern)

    def _search_for_workflows(self, identifier: str) -> None:
        logger.info("Searching for workflow execution", extra={"action": "phase_start", "phase": "workflows"})

        for pattern in self.config.workflow_patterns:
            records = self._fetch_records(self._query(identifier, pattern))
            self._collect_trace_ids(records)
            for record in records:
                if _WORKFLOW_FAILURE.search(record.line):
                    self._add_finding(record, "WORKFLOW", pattern)

    def _search_for_network_calls(self, identifier: str) -> None:
        logger.info("Searching for network provider calls", extra={"action": "phase_start", "phase": "network"})

        for pattern in self.config.network_patterns:
            records = self._fetch_records(self._query(identifier, pattern))
            self._collect_trace_ids(records)

            for record in records:
                args = extract_structured_args(record.line)
                if args is not None:
                    self.results.network_call_args.append(NetworkCallArgs(pattern=pattern, args=args))
                    break

            for record in records:
                if _NETWORK_FAILURE.search(record.line):
                    self._add_finding(record, "NETWORK_ERROR", pattern)

    def _search_by_trace_ids(self) -> None:
        logger.info("No errors found with primary ID, searching by trace_id", extra={
            "action": "phase_start", "phase": "trace",
        })

        for trace_id in self.results.trace_ids_found[:MAX_TRACE_ID_SEARCHES]:
            records = self._fetch_records(self._query(trace_id, "ERROR"))
            for record in records:
                self._add_finding(record, "ERROR", f"trace_id:{trace_id}")

    def _build_workflow_timeline(self, identifier: str) -> None:
        logger.info("Building workflow timeline", extra={"action": "phase_start", "phase": "timeline"})

        body = self._fetch(self._query(identifier), limit=self.config.timeline_limit)
        if not logs_present(body):
            return

        try:
            streams = parse_streams(body)
        except ParseError as e:
            logger.error("Failed to parse timeline logs", extra={
                "action": "timeline_parse_error", "phase": "timeline", "extra": str(e),
            })
            return

        self.results.workflow_timeline = merge_timelines(*(classify(stream) for stream in streams))
        logger.info("Timeline built", extra={
            "action": "timeline_built",
            "phase": "timeline",
            "extra": {"events": len(self.results.workflow_timeline)},
        })

    def _build_grafana_urls(self, primary_id: str) -> dict[str, str]:
        trace_ids = self.results.trace_ids_found
        trace_query = self._query(trace_ids[0], "ERROR").text if trace_ids else None
        return build_link_map(
            self._query(primary_id).text,
            base_url=self.config.grafana_url or DEFAULT_GRAFANA_URL,
            window_seconds=self._window_seconds,
            trace_query=trace_query,
            datasource=self.config.datasource,
        )
