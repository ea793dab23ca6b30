"""
Event classification and timeline construction.

Each log record is classified by walking an ordered rule table; the first rule
whose predicate matches decides the category. Structured (JSON) lines and
plain-text lines have their own tables because they expose different signals.
"""

import re
from dataclasses import dataclass
from itertools import chain
from typing import Callable, Iterable, Optional

from log_correlator.agents.log_processing import format_timestamp
from log_correlator.models.schemas import EventType, LogRecord, TimelineEvent


MAX_MESSAGE_CHARS = 150
MAX_ERROR_CHARS = 100

_WORKFLOW_START = re.compile(r"Starting.*Workflow|Triggering.*workflow", re.IGNORECASE)
_WORKFLOW_COMPLETE = re.compile(r"Workflow.*completed|completed.*successfully", re.IGNORECASE)
_ACTIVITY_START = re.compile(r"Starting.*Activity|Execute.*Activity", re.IGNORECASE)
_ACTIVITY_COMPLETE = re.compile(r"Activity.*completed", re.IGNORECASE)
_KAFKA = re.compile(r"kafka|Produced.*message|consuming.*topic", re.IGNORECASE)
_GRPC = re.compile(r"gRPC", re.IGNORECASE)
_NETWORK = re.compile(r"API Request|API Response|client.*request", re.IGNORECASE)
_SUBSCRIPTION_UPDATE = re.compile(r"updated|created|record", re.IGNORECASE)

_RAW_ERROR = re.compile(r"ERROR|Exception|failed", re.IGNORECASE)
_RAW_SUBSCRIPTION_UPDATE = re.compile(r"updated|record", re.IGNORECASE)

_SERVICE = re.compile(r"""(?:app\.)?service["']?\s*[:=]\s*["']?([\w-]+)""")
_RAW_INFO_DESCRIPTION = re.compile(r"\[INFO\]\s*\[(.{1,150})")
_RAW_JSON_MESSAGE = re.compile(r'"message"\s*:\s*"([^"]{1,150})')
_RAW_LEVELS = (
    ("ERROR", re.compile(r'\[ERROR\]|"level"\s*:\s*"ERROR"', re.IGNORECASE)),
    ("WARN", re.compile(r'\[WARN\]|"level"\s*:\s*"WARN"', re.IGNORECASE)),
    ("DEBUG", re.compile(r'\[DEBUG\]|"level"\s*:\s*"DEBUG"', re.IGNORECASE)),
)


@dataclass(frozen=True)
class Signals:
    """What the classifier looks at for one record."""
    level: str
    message: str
    workflow: Optional[str] = None
    activity: Optional[str] = None
    error: Optional[str] = None


Rule = tuple[Callable[[Signals], bool], EventType]

STRUCTURED_RULES: tuple[Rule, ...] = (
    (lambda s: s.level.upper() == "ERROR" or bool(s.error), EventType.ERROR),
    (lambda s: not s.message.strip(), EventType.SKIP),
    (lambda s: bool(_WORKFLOW_START.search(s.message)), EventType.WORKFLOW_START),
    (lambda s: bool(_WORKFLOW_COMPLETE.search(s.message)), EventType.WORKFLOW_COMPLETE),
    (lambda s: bool(s.activity) or bool(_ACTIVITY_START.search(s.message)), EventType.ACTIVITY_START),
    (lambda s: bool(_ACTIVITY_COMPLETE.search(s.message)), EventType.ACTIVITY_COMPLETE),
    (lambda s: bool(_KAFKA.search(s.message)), EventType.KAFKA_EVENT),
    (lambda s: bool(_GRPC.search(s.message)), EventType.GRPC_CALL),
    (lambda s: bool(_NETWORK.search(s.message)), EventType.NETWORK_CALL),
    (lambda s: bool(_SUBSCRIPTION_UPDATE.search(s.message)), EventType.SUBSCRIPTION_UPDATE),
)

RAW_RULES: tuple[Rule, ...] = (
    (lambda s: not s.message.strip(), EventType.SKIP),
    (lambda s: bool(_RAW_ERROR.search(s.message)), EventType.ERROR),
    (lambda s: bool(_WORKFLOW_START.search(s.message)), EventType.WORKFLOW_START),
    (lambda s: bool(_WORKFLOW_COMPLETE.search(s.message)), EventType.WORKFLOW_COMPLETE),
    (lambda s: bool(_ACTIVITY_START.search(s.message)), EventType.ACTIVITY_START),
    (lambda s: bool(_ACTIVITY_COMPLETE.search(s.message)), EventType.ACTIVITY_COMPLETE),
    (lambda s: bool(_KAFKA.search(s.message)), EventType.KAFKA_EVENT),
    (lambda s: bool(_GRPC.search(s.message)), EventType.GRPC_CALL),
    (lambda s: bool(_NETWORK.search(s.message)), EventType.NETWORK_CALL),
    (lambda s: bool(_RAW_SUBSCRIPTION_UPDATE.search(s.message)), EventType.SUBSCRIPTION_UPDATE),
)


def determine_event_type(signals: Signals, rules: Iterable[Rule] = STRUCTURED_RULES) -> EventType:
    """First matching rule wins; INFO when nothing matches."""
    for predicate, event_type in rules:
        if predicate(signals):
            return event_type
    return EventType.INFO


def _text(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def extract_service_from_log(line: str) -> str:
    match = _SERVICE.search(line)
    return match.group(1) if match else "unknown"


def resolve_service(parsed: dict, line: str) -> str:
    """service field, then the Nomad task name, then the raw text, else 'unknown'."""
    service = parsed.get("service")
    if isinstance(service, dict):
        service = service.get("name")
    return _text(service) or _text(parsed.get("NOMAD_TASK_NAME")) or extract_service_from_log(line)


def extract_level_from_log(line: str) -> str:
    for level, pattern in _RAW_LEVELS:
        if pattern.search(line):
            return level
    return "INFO"


def extract_description_from_log(line: str) -> str:
    match = _RAW_INFO_DESCRIPTION.search(line)
    if match:
        return match.group(1).split("]", 1)[0]
    match = _RAW_JSON_MESSAGE.search(line)
    if match:
        return match.group(1)
    return line[:MAX_MESSAGE_CHARS]


def build_event_description(message: str, workflow: Optional[str] = None,
                            activity: Optional[str] = None, error: Optional[str] = None) -> str:
    parts = []
    if workflow:
        parts.append(f"[WF: {workflow}]")
    if activity:
        parts.append(f"[ACT: {activity}]")
    if message:
        parts.append(message[:MAX_MESSAGE_CHARS])
    if error:
        parts.append(f"[ERROR: {error[:MAX_ERROR_CHARS]}]")
    return " ".join(parts).strip()


def classify_record(record: LogRecord) -> Optional[TimelineEvent]:
    """Turn one record into a TimelineEvent, or None when it classifies as SKIP."""
    timestamp = format_timestamp(record.timestamp_ns, with_millis=True)

    if record.parsed is not None:
        parsed = record.parsed
        signals = Signals(
            level=_text(parsed.get("level")) or "INFO",
            message=_text(parsed.get("msg")) or _text(parsed.get("message")) or "",
            workflow=_text(parsed.get("WorkflowType")) or _text(parsed.get("workflow_type")),
            activity=_text(parsed.get("ActivityType")) or _text(parsed.get("activity_type")),
            error=_text(parsed.get("error")) or _text(parsed.get("err")),
        )
        event_type = determine_event_type(signals, STRUCTURED_RULES)
        if event_type is EventType.SKIP:
            return None
        return TimelineEvent(
            timestamp_ns=record.timestamp_ns,
            timestamp=timestamp,
            service=resolve_service(parsed, record.line),
            event_type=event_type,
            description=build_event_description(
                signals.message, signals.workflow, signals.activity, signals.error
            ),
            level=signals.level,
        )

    level = extract_level_from_log(record.line)
    event_type = determine_event_type(Signals(level=level, message=record.line), RAW_RULES)
    if event_type is EventType.SKIP:
        return None
    return TimelineEvent(
        timestamp_ns=record.timestamp_ns,
        timestamp=timestamp,
        service=extract_service_from_log(record.line),
        event_type=event_type,
        description=extract_description_from_log(record.line),
        level=level,
    )


def classify(records: Iterable[LogRecord]) -> list[TimelineEvent]:
    """Classify records, dropping SKIPs and keeping input order."""
    events = []
    for record in records:
        event = classify_record(record)
        if event is not None:
            events.append(event)
    return events


def merge_timelines(*event_lists: Iterable[TimelineEvent]) -> list[TimelineEvent]:
    """Merge event lists into one ascending timeline.

    The sort is stable, so events sharing a timestamp keep discovery order.
    """
    return sorted(chain.from_iterable(event_lists), key=lambda e: e.timestamp_ns)
