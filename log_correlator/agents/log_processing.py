"""
Parsing of Loki query_range responses into LogRecords, plus the best-effort
extractors (trace IDs, structured ``args:{...}`` payloads) run over log text.

Extractors never raise: a line they cannot make sense of yields an empty or
absent result so one bad line never stops the rest of a response.
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Optional, Union

from log_correlator.errors import ParseError
from log_correlator.models.schemas import LogRecord
from log_correlator.utils.logger import get_logger

logger = get_logger(__name__)

# Scanned in this order; first-seen order is kept across all three families.
TRACE_ID_PATTERNS = (
    re.compile(r"app\.trace_id=([a-f0-9]+)", re.IGNORECASE),
    re.compile(r"trace_id[\"']?\s*[\":=]+\s*[\"']?([a-f0-9-]+)", re.IGNORECASE),
    re.compile(r"uber-trace-id[\"']?\s*[\":=]+\s*[\"']?([a-f0-9:]+)", re.IGNORECASE),
)

_ESCAPES = (
    ("\\u003e", ">"),
    ("\\u003c", "<"),
    ("&gt;", ">"),
    ("&lt;", "<"),
    ('\\"', '"'),
)
_ARGS_BLOCK = re.compile(r"args:\{([^}]+)\}")
_ARG_PAIR = re.compile(r":?(\w+)\s*=>\s*(.+?)\s*(?=,\s*:?\w+\s*=>|$)")
_QUOTED = re.compile(r"""^(["'])(.*)\1$""", re.DOTALL)
_DIGITS = re.compile(r"^\d+$")

NS_PER_SECOND = 1_000_000_000


def format_timestamp(timestamp_ns: int, with_millis: bool = False) -> str:
    """Render an epoch-nanosecond timestamp as a UTC wall-clock string."""
    seconds, remainder = divmod(int(timestamp_ns), NS_PER_SECOND)
    rendered = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    if with_millis:
        return f"{rendered}.{remainder // 1_000_000:03d}"
    return rendered


def _result_streams(body: Optional[str]) -> list:
    """Decode a body and return its stream list. Raises ParseError."""
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseError(f"Failed to parse Loki response: {e}") from e
    if not isinstance(payload, dict):
        raise ParseError("Failed to parse Loki response: top-level value is not an object")
    data = payload.get("data") or {}
    result = data.get("result") if isinstance(data, dict) else None
    return result if isinstance(result, list) else []


def logs_present(body: Optional[str]) -> bool:
    """True iff at least one stream carries at least one value pair."""
    if not body:
        return False
    try:
        streams = _result_streams(body)
    except ParseError:
        return False
    return any(
        isinstance(s, dict) and isinstance(s.get("values"), list) and bool(s["values"])
        for s in streams
    )


def _parse_line(line: str) -> Optional[dict]:
    try:
        parsed = json.loads(line)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_streams(body: Optional[str]) -> list[list[LogRecord]]:
    """Parse a response into one record list per stream, in response order."""
    if not body:
        return []

    parsed_streams: list[list[LogRecord]] = []
    for stream in _result_streams(body):
        if not isinstance(stream, dict):
            continue
        values = stream.get("values") or []
        if not isinstance(values, list):
            logger.warning("Skipping stream with malformed values", extra={
                "action": "parse_stream",
                "extra": {"values_type": type(values).__name__},
            })
            continue
        labels = stream.get("stream") if isinstance(stream.get("stream"), dict) else {}
        records: list[LogRecord] = []
        for value in values:
            try:
                ts_ns, line = value[0], value[1]
                records.append(LogRecord(
                    timestamp_ns=int(ts_ns),
                    line=str(line),
                    parsed=_parse_line(line),
                    stream={str(k): str(v) for k, v in labels.items()},
                ))
            except (TypeError, ValueError, IndexError, KeyError) as e:
                logger.warning("Skipping malformed log value", extra={
                    "action": "parse_record",
                    "extra": {"error": str(e)},
                })
        parsed_streams.append(records)
    return parsed_streams


def parse_response(body: Optional[str]) -> list[LogRecord]:
    """Flatten every stream of a response into one list of LogRecords.

    Order follows the response; nothing is sorted here.

    Raises:
        ParseError: If the body itself is not a JSON object.
    """
    return [record for stream in parse_streams(body) for record in stream]


def contains(body: Optional[str], pattern: Union[str, re.Pattern]) -> bool:
    """Check whether a raw body contains a literal string or matches a regex."""
    if not body:
        return False
    if isinstance(pattern, re.Pattern):
        return pattern.search(body) is not None
    return pattern in body


def extract_trace_ids(text: Optional[str]) -> list[str]:
    """Collect trace IDs from text, de-duplicated in first-seen order."""
    if not text:
        return []

    trace_ids: list[str] = []
    for family, pattern in enumerate(TRACE_ID_PATTERNS):
        for match in pattern.findall(text):
            # uber-trace-id is trace:span:parent:flags
            trace_id = match.split(":")[0] if family == 2 else match
            if trace_id.strip("-") and trace_id not in trace_ids:
                trace_ids.append(trace_id)
    return trace_ids


def first_trace_id(text: Optional[str]) -> Optional[str]:
    trace_ids = extract_trace_ids(text)
    return trace_ids[0] if trace_ids else None


def _coerce_arg(value: str) -> Any:
    if value == "nil":
        return None
    if value == "true":
        return True
    if value == "false":
        return False
    quoted = _QUOTED.match(value)
    if quoted:
        return quoted.group(2)
    if _DIGITS.match(value):
        return int(value)
    return value


def extract_structured_args(text: Optional[str]) -> Optional[dict[str, Any]]:
    """Parse an ``args:{:key=>value, ...}`` payload embedded in a log line.

    Returns None when there is no args block, otherwise a (possibly empty)
    dict of coerced values.
    """
    if not text:
        return None

    decoded = text
    for escaped, plain in _ESCAPES:
        decoded = decoded.replace(escaped, plain)

    block = _ARGS_BLOCK.search(decoded)
    if not block:
        return None

    return {key: _coerce_arg(value.strip()) for key, value in _ARG_PAIR.findall(block.group(1))}


def format_response(body: Optional[str]) -> str:
    """Human readable dump of a raw response, one ``timestamp line`` per value."""
    if not body:
        return "No logs to format"
    try:
        records = parse_response(body)
    except ParseError as e:
        return f"Failed to format logs: {e}"
    if not records:
        return "No log entries found"
    return "\n".join(
        f"{format_timestamp(r.timestamp_ns, with_millis=True)} {r.line}" for r in records
    )
