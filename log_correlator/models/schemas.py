from pydantic import BaseModel, ConfigDict, Field, computed_field
from typing import Any, Optional, Literal
from enum import Enum


IDENTIFIER_PRIORITY = ("subscription_uuid", "account_uuid", "msisdn", "iccid", "imei")

VALID_MODES = ("full", "errors", "workflows", "network", "trace", "timeline")
PHASES = ("errors", "workflows", "network", "trace", "timeline")


class EventType(str, Enum):
    ERROR = "error"
    WORKFLOW_START = "workflow_start"
    WORKFLOW_COMPLETE = "workflow_complete"
    ACTIVITY_START = "activity_start"
    ACTIVITY_COMPLETE = "activity_complete"
    KAFKA_EVENT = "kafka_event"
    GRPC_CALL = "grpc_call"
    NETWORK_CALL = "network_call"
    SUBSCRIPTION_UPDATE = "subscription_update"
    INFO = "info"
    SKIP = "skip"


class IdentifierSet(BaseModel):
    """Test data identifiers; the first present one by priority is the primary."""
    model_config = ConfigDict(extra="forbid")

    subscription_uuid: Optional[str] = None
    account_uuid: Optional[str] = None
    msisdn: Optional[str] = None
    iccid: Optional[str] = None
    imei: Optional[str] = None

    def primary(self) -> Optional[str]:
        for key in IDENTIFIER_PRIORITY:
            value = getattr(self, key)
            if value:
                return value
        return None

    def network_identifier(self) -> Optional[str]:
        # Network provider logs are only keyed by subscription or SIM
        return self.subscription_uuid or self.iccid or None


class LokiQuery(BaseModel):
    """A LogQL range query: env label selector plus literal-contains filters."""
    model_config = ConfigDict(frozen=True)

    env: str
    env_suffix: str = ""
    filters: tuple[str, ...] = ()
    window_seconds: int = 3600

    @computed_field
    @property
    def label(self) -> str:
        return f"{self.env}{self.env_suffix}"

    @computed_field
    @property
    def text(self) -> str:
        parts = [f'{{env="{self.label}"}}']
        parts.extend(f"|= `{f}`" for f in self.filters)
        return " ".join(parts)


class LogRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp_ns: int
    line: str
    parsed: Optional[dict[str, Any]] = None
    stream: dict[str, str] = Field(default_factory=dict)


class TimelineEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp_ns: int
    timestamp: str
    service: str
    event_type: EventType
    description: str
    level: str


class LogFinding(BaseModel):
    timestamp: str
    level: Literal["ERROR", "WORKFLOW", "NETWORK_ERROR"]
    message: str
    pattern_matched: str


class RootCause(BaseModel):
    category: str
    summary: str
    details: str
    first_error_timestamp: Optional[str] = None


class NetworkCallArgs(BaseModel):
    pattern: str
    args: dict[str, Any] = Field(default_factory=dict)


class AnalysisResult(BaseModel):
    """The single aggregate a run accumulates into, phase by phase."""
    identifiers: IdentifierSet
    hours_analyzed: int
    mode: str
    time_range_analyzed: str = ""
    queries_executed: list[str] = Field(default_factory=list)
    log_entries: list[LogFinding] = Field(default_factory=list)
    trace_ids_found: list[str] = Field(default_factory=list)
    workflow_timeline: list[TimelineEvent] = Field(default_factory=list)
    root_cause: Optional[RootCause] = None
    recommendations: list[str] = Field(default_factory=list)
    grafana_urls: dict[str, str] = Field(default_factory=dict)
    network_call_args: list[NetworkCallArgs] = Field(default_factory=list)
