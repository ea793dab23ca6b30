"""
Report renderer: projects an AnalysisResult into a size-capped compact
summary for humans and agents, or the complete JSON form.
"""

from log_correlator.errors import ConfigurationError
from log_correlator.models.schemas import AnalysisResult, EventType

VALID_FORMATS = ("compact", "json")

MAX_FINDINGS = 15
MAX_TIMELINE_EVENTS = 20
MAX_TRACE_IDS = 5
MAX_MESSAGE_CHARS = 200
MAX_DESCRIPTION_CHARS = 150

EVENT_TAGS = {
    EventType.ERROR: "ERR",
    EventType.WORKFLOW_START: "WFS",
    EventType.WORKFLOW_COMPLETE: "WFC",
    EventType.ACTIVITY_START: "ACTS",
    EventType.ACTIVITY_COMPLETE: "ACTC",
    EventType.KAFKA_EVENT: "KFK",
    EventType.GRPC_CALL: "GRPC",
    EventType.NETWORK_CALL: "NET",
    EventType.SUBSCRIPTION_UPDATE: "SUB",
}
DEFAULT_TAG = "INFO"


def _more_note(total: int, shown: int) -> list[str]:
    return [f"_...and {total - shown} more_"] if total > shown else []


def render_compact(result: AnalysisResult) -> str:
    out = [f"# Log Analysis: {result.mode} mode ({result.hours_analyzed}h)", ""]

    if result.root_cause:
        rc = result.root_cause
        out.append("## Root Cause")
        out.append(f"**{rc.category}**: {rc.summary}")
        if rc.details:
            out.append(f"`{rc.details[:MAX_MESSAGE_CHARS]}`")
        out.append("")

    entries = result.log_entries
    if entries:
        out.append(f"## Log Entries ({len(entries)})")
        for entry in entries[:MAX_FINDINGS]:
            out.append(f"[{entry.timestamp}] **{entry.level}** {entry.message[:MAX_MESSAGE_CHARS]}")
        out.extend(_more_note(len(entries), MAX_FINDINGS))
        out.append("")

    timeline = result.workflow_timeline
    if timeline:
        out.append(f"## Timeline ({len(timeline)} events)")
        for event in timeline[:MAX_TIMELINE_EVENTS]:
            tag = EVENT_TAGS.get(event.event_type, DEFAULT_TAG)
            out.append(
                f"[{event.timestamp}] [{tag}] {event.service}: "
                f"{event.description[:MAX_DESCRIPTION_CHARS]}"
            )
        out.extend(_more_note(len(timeline), MAX_TIMELINE_EVENTS))
        out.append("")

    trace_ids = result.trace_ids_found
    if trace_ids:
        out.append("## Trace IDs")
        out.extend(f"- `{trace_id}`" for trace_id in trace_ids[:MAX_TRACE_IDS])
        out.extend(_more_note(len(trace_ids), MAX_TRACE_IDS))
        out.append("")

    if result.grafana_urls:
        out.append("## Grafana Links")
        out.extend(f"- **{name}**: {url}" for name, url in result.grafana_urls.items())
        out.append("")

    if result.recommendations:
        out.append("## Recommendations")
        out.extend(f"- {rec}" for rec in result.recommendations)

    return "\n".join(out)


def render_json(result: AnalysisResult) -> str:
    return result.model_dump_json(indent=2)


def render(result: AnalysisResult, fmt: str = "compact") -> str:
    if fmt not in VALID_FORMATS:
        raise ConfigurationError(f"Invalid format '{fmt}'. Valid formats: {', '.join(VALID_FORMATS)}")
    return render_compact(result) if fmt == "compact" else render_json(result)
