import json
from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from log_correlator.agents.correlation_agent import (
    LogCorrelationAgent, build_identifier_set, truncate_message,
)
from log_correlator.agents.loki_fetcher import LokiFetcher
from log_correlator.errors import ConfigurationError, TransportError
from log_correlator.models.schemas import EventType

TS = 1_700_000_000_000_000_000
TRACE = "deadbeefdeadbeefdeadbeefdeadbeef"


def _agent(identifiers, transport, config, mode="full", hours=3):
    fetcher = LokiFetcher(transport, sleep=MagicMock())
    return LogCorrelationAgent(identifiers, hours=hours, mode=mode, config=config, fetcher=fetcher)


# ─── Init / validation ────────────────────────────────────────────────────────

def test_invalid_mode_is_configuration_error(config, make_transport):
    with pytest.raises(ConfigurationError, match="Invalid mode"):
        LogCorrelationAgent({"subscription_uuid": "S1"}, mode="everything", config=config,
                            transport=make_transport())


def test_non_positive_hours_is_configuration_error(config, make_transport):
    with pytest.raises(ConfigurationError):
        LogCorrelationAgent({"subscription_uuid": "S1"}, hours=0, config=config, transport=make_transport())


def test_unknown_identifier_key_is_configuration_error():
    with pytest.raises(ConfigurationError, match="email"):
        build_identifier_set({"email": "a@b.c"})


def test_missing_credentials_fail_at_construction():
    from log_correlator.integrations.connection_config import AnalyzerConfig
    with pytest.raises(ConfigurationError, match="GRAFANA_URL"):
        LogCorrelationAgent({"subscription_uuid": "S1"}, config=AnalyzerConfig())


def test_truncate_message():
    assert truncate_message("short") == "short"
    assert truncate_message("x" * 501) == "x" * 500 + "..."


# ─── No identifier ────────────────────────────────────────────────────────────

@pytest.mark.parametrize("identifiers", [{}, {"subscription_uuid": None}, {"msisdn": ""}])
def test_no_identifier_never_fetches(identifiers, config, make_transport):
    transport = make_transport()
    result = _agent(identifiers, transport, config).analyze()

    assert transport.calls == []
    assert result.root_cause.category == "no_identifier"
    assert result.log_entries == []
    assert result.queries_executed == []
    assert result.trace_ids_found == []


# ─── End to end ────────────────────────────────────────────────────────────────────

def test_errors_mode_end_to_end(config, make_transport, loki_body):
    config = replace(config, error_patterns=("ERROR",))
    body = loki_body([(TS, f"[ERROR] device rejected trace_id={TRACE}")])
    transport = make_transport(routes={"`ERROR`": body})

    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="errors").analyze()

    assert len(result.log_entries) == 1
    assert result.log_entries[0].level == "ERROR"
    assert result.log_entries[0].pattern_matched == "ERROR"
    assert result.log_entries[0].timestamp == "2023-11-14 22:13:20"
    assert result.trace_ids_found == [TRACE]
    assert result.root_cause.category == "errors_found"
    assert result.root_cause.details == f"[ERROR] device rejected trace_id={TRACE}"
    assert result.queries_executed == ['{env="qa-mse"} |= `S1` |= `ERROR`']


def test_primary_identifier_priority(config, make_transport):
    transport = make_transport()
    identifiers = {"account_uuid": "A1", "subscription_uuid": "S1", "imei": "I1"}

    result = _agent(identifiers, transport, config, mode="full").analyze()

    non_trace = [q for q in result.queries_executed]
    assert non_trace
    assert all("`S1`" in q for q in non_trace)
    assert not any("`A1`" in q or "`I1`" in q for q in non_trace)


def test_account_used_when_no_subscription(config, make_transport):
    transport = make_transport()
    result = _agent({"account_uuid": "A1", "msisdn": "4477"}, transport, config, mode="errors").analyze()
    assert all("`A1`" in q for q in result.queries_executed)


def test_audit_trail_complete_when_nothing_found(config, make_transport):
    transport = make_transport()
    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="errors").analyze()

    assert len(result.queries_executed) == len(config.error_patterns)
    assert result.root_cause.category == "no_errors_found"
    assert result.recommendations[0] == "Extend the time range (hours) and run again"


# ─── Phases ───────────────────────────────────────────────────────────────────

def test_workflows_keep_only_failure_lines(config, make_transport, loki_body):
    body = loki_body([
        (TS, "Workflow::Activate started"),
        (TS + 1, "Workflow::Activate failed: provider timeout"),
        (TS + 2, "Workflow::Activate TIMEOUT waiting for signal"),
    ])
    transport = make_transport(routes={"`Workflow::`": body})

    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="workflows").analyze()

    assert [e.level for e in result.log_entries] == ["WORKFLOW", "WORKFLOW"]
    assert all(e.pattern_matched == "Workflow::" for e in result.log_entries)
    assert len(result.queries_executed) == len(config.workflow_patterns)


def test_network_phase_skipped_without_subscription_or_iccid(config, make_transport):
    transport = make_transport()
    result = _agent({"account_uuid": "A1", "imei": "I1"}, transport, config, mode="network").analyze()
    assert transport.calls == []
    assert result.queries_executed == []


def test_network_phase_uses_iccid_and_captures_args(config, make_transport, loki_body):
    body = loki_body([
        (TS, 'API client request args:{:iccid=>"8944", :retries=>2} trace_id=abc123'),
        (TS + 1, "API client response rejected by provider"),
        (TS + 2, "API client response ok"),
    ])
    transport = make_transport(routes={"`API client`": body})

    result = _agent({"account_uuid": "A1", "iccid": "8944"}, transport, config, mode="network").analyze()

    assert all("`8944`" in q for q in result.queries_executed)
    assert [e.level for e in result.log_entries] == ["NETWORK_ERROR"]
    assert result.network_call_args[0].pattern == "API client"
    assert result.network_call_args[0].args == {"iccid": "8944", "retries": 2}
    assert result.trace_ids_found == ["abc123"]


def test_trace_phase_runs_when_no_findings(config, make_transport, loki_body):
    config = replace(config, error_patterns=("rejected",))
    ids = ["aaa1", "bbb2", "ccc3", "ddd4"]
    workflow_body = loki_body([(TS, " ".join(f"trace_id={t}" for t in ids) + " all good")])
    trace_body = loki_body([(TS + 5, "[ERROR] downstream refused")])
    transport = make_transport(routes={"`Workflow::`": workflow_body, "`aaa1`": trace_body})

    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="full").analyze()

    trace_queries = [q for q in result.queries_executed if "`S1`" not in q]
    assert trace_queries == [
        '{env="qa-mse"} |= `aaa1` |= `ERROR`',
        '{env="qa-mse"} |= `bbb2` |= `ERROR`',
        '{env="qa-mse"} |= `ccc3` |= `ERROR`',
    ]
    assert len(result.log_entries) == 1
    assert result.log_entries[0].pattern_matched == "trace_id:aaa1"
    assert result.trace_ids_found == ids


def test_trace_phase_skipped_when_errors_found(config, make_transport, loki_body):
    body = loki_body([(TS, "[ERROR] failed trace_id=abc")])
    transport = make_transport(routes={"`ERROR`": body})

    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="full").analyze()

    assert result.log_entries
    assert not any("`abc`" in q for q in result.queries_executed)


def test_trace_mode_alone_has_no_trace_ids_to_search(config, make_transport):
    transport = make_transport()
    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="trace").analyze()
    assert transport.calls == []
    assert result.root_cause.category == "no_errors_found"


def test_timeline_merges_streams_chronologically(config, make_transport, loki_body):
    body = loki_body(
        [
            (TS + 3_000_000, json.dumps({"level": "INFO", "msg": "Workflow Activate completed", "service": "wf"})),
            (TS + 1_000_000, json.dumps({"level": "INFO", "msg": "Starting Activate Workflow", "service": "wf"})),
        ],
        [
            (TS + 2_000_000, "[ERROR] provider rejected service=sim-gw"),
            (TS, json.dumps({"level": "INFO", "msg": ""})),
        ],
    )
    transport = make_transport(default=body)

    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="timeline").analyze()

    assert result.queries_executed == ['{env="qa-mse"} |= `S1`']
    assert transport.calls[0]["limit"] == config.timeline_limit
    assert [e.event_type for e in result.workflow_timeline] == [
        EventType.WORKFLOW_START, EventType.ERROR, EventType.WORKFLOW_COMPLETE,
    ]
    assert [e.service for e in result.workflow_timeline] == ["wf", "sim-gw", "wf"]
    assert result.log_entries == []


def test_full_mode_runs_phases_in_order(config, make_transport):
    transport = make_transport()
    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="full").analyze()

    expected = (
        [f'{{env="qa-mse"}} |= `S1` |= `{p}`' for p in config.error_patterns]
        + [f'{{env="qa-mse"}} |= `S1` |= `{p}`' for p in config.workflow_patterns]
        + [f'{{env="qa-mse"}} |= `S1` |= `{p}`' for p in config.network_patterns]
        + ['{env="qa-mse"} |= `S1`']
    )
    assert result.queries_executed == expected


def test_grafana_urls_and_time_range(config, make_transport, loki_body):
    body = loki_body([(TS, "[ERROR] boom trace_id=abc")])
    transport = make_transport(routes={"`ERROR`": body})

    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="errors", hours=2).analyze()

    assert set(result.grafana_urls) == {"all_logs", "errors_only", "by_trace_id"}
    assert all(url.startswith("https://grafana.test/explore?panes=") for url in result.grafana_urls.values())
    assert "now-2h" in result.grafana_urls["all_logs"]
    assert result.time_range_analyzed.endswith(" UTC")


def test_no_trace_link_without_trace_ids(config, make_transport):
    result = _agent({"subscription_uuid": "S1"}, make_transport(), config, mode="errors").analyze()
    assert set(result.grafana_urls) == {"all_logs", "errors_only"}


def test_transport_error_propagates_but_query_is_audited(config):
    transport = MagicMock()
    transport.query_range.side_effect = TransportError("Grafana API returned HTTP 503", status_code=503)
    agent = _agent({"subscription_uuid": "S1"}, transport, config, mode="errors")

    with pytest.raises(TransportError, match="503"):
        agent.analyze()
    assert agent.results.queries_executed == ['{env="qa-mse"} |= `S1` |= `ERROR`']


def test_malformed_phase_response_is_treated_as_no_data(config, make_transport):
    transport = make_transport(default="not json at all")
    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="full").analyze()
    assert result.log_entries == []
    assert result.workflow_timeline == []
    assert result.root_cause.category == "no_errors_found"


def test_non_list_stream_values_do_not_abort_run(config, make_transport, loki_body):
    good = json.loads(loki_body([(TS, "[ERROR] provider rejected service=sim-gw")]))
    good["data"]["result"].insert(0, {"stream": {}, "values": 5})
    transport = make_transport(default=json.dumps(good))

    result = _agent({"subscription_uuid": "S1"}, transport, config, mode="timeline").analyze()

    assert [e.service for e in result.workflow_timeline] == ["sim-gw"]
    assert result.root_cause.category == "no_errors_found"


def test_phase_queries_use_configured_limit(config, make_transport):
    transport = make_transport()
    _agent({"subscription_uuid": "S1"}, transport, replace(config, query_limit=7), mode="errors").analyze()
    assert {call["limit"] for call in transport.calls} == {7}


def test_run_logs_carry_agent_name(config, make_transport):
    with patch("log_correlator.agents.correlation_agent.logger") as mock_logger:
        _agent({"subscription_uuid": "S1"}, make_transport(), config, mode="errors").analyze()
    actions = {
        c.kwargs["extra"]["action"]: c.kwargs["extra"].get("agent_name")
        for c in mock_logger.info.call_args_list
    }
    assert actions["start"] == "log_correlator"
    assert actions["complete"] == "log_correlator"
