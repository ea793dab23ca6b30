"""Root-cause and recommendation synthesis from collected findings."""

from log_correlator.models.schemas import LogFinding, RootCause

ERROR_LEVELS = ("ERROR", "NETWORK_ERROR")

FINDINGS_RECOMMENDATIONS = (
    "Review the error messages above for specific failure details",
    "Check workflow status in your workflow engine UI",
    "Use the Grafana URLs below to explore logs in detail",
    "Search by trace_id for distributed tracing across services",
)

NO_FINDINGS_RECOMMENDATIONS = (
    "Extend the time range (hours) and run again",
    "Check related services",
    "Review test timing and wait conditions",
    "Check environment health status",
)


def no_identifier_root_cause() -> RootCause:
    return RootCause(
        category="no_identifier",
        summary="No identifiers provided",
        details=(
            "Cannot analyze logs without at least one identifier "
            "(subscription_uuid, account_uuid, msisdn, iccid, or imei)"
        ),
    )


def determine_root_cause(findings: list[LogFinding]) -> RootCause:
    """Pick the first ERROR/NETWORK_ERROR finding (else the first finding) as the lead."""
    if not findings:
        return RootCause(
            category="no_errors_found",
            summary="No errors found in logs",
            details=(
                "The logs do not contain obvious error patterns. "
                "The issue may be timing-related or in a different service."
            ),
        )

    lead = next((f for f in findings if f.level in ERROR_LEVELS), findings[0])
    return RootCause(
        category="errors_found",
        summary=f"Found {len(findings)} log entries with errors/issues",
        details=lead.message,
        first_error_timestamp=lead.timestamp,
    )


def generate_recommendations(findings: list[LogFinding]) -> list[str]:
    return list(FINDINGS_RECOMMENDATIONS if findings else NO_FINDINGS_RECOMMENDATIONS)
