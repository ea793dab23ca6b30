"""Log analysis API endpoints."""

import os

from fastapi import APIRouter, Depends

from log_correlator import __version__
from log_correlator.agents.correlation_agent import LogCorrelationAgent
from log_correlator.errors import ConfigurationError
from log_correlator.integrations.connection_config import AnalyzerConfig, resolve_config
from log_correlator.integrations.loki_client import LogTransport, LokiClient
from log_correlator.integrations.report_renderer import VALID_FORMATS, render_compact
from log_correlator.api.models import AnalyzeRequest, AnalyzeResponse, HealthResponse
from log_correlator.utils.logger import get_logger

logger = get_logger("routes")

router = APIRouter(tags=["analysis"])


def get_config() -> AnalyzerConfig:
    return resolve_config(env_file=os.environ.get("LOG_CORRELATOR_ENV_FILE") or None)


def get_transport(config: AnalyzerConfig = Depends(get_config)) -> LogTransport:
    return LokiClient.from_config(config)


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", version=__version__)


@router.post("/api/v1/analyze", response_model=AnalyzeResponse, response_model_exclude_none=True)
def analyze(
    request: AnalyzeRequest,
    config: AnalyzerConfig = Depends(get_config),
    transport: LogTransport = Depends(get_transport),
):
    if request.format not in VALID_FORMATS:
        raise ConfigurationError(
            f"Invalid format '{request.format}'. Valid formats: {', '.join(VALID_FORMATS)}"
        )

    agent = LogCorrelationAgent(
        request.identifiers,
        hours=request.hours,
        mode=request.mode,
        config=config,
        transport=transport,
    )
    result = agent.analyze()
    logger.info("Analysis served", extra={
        "action": "analyze_request",
        "extra": {"mode": request.mode, "format": request.format,
                  "root_cause": result.root_cause.category if result.root_cause else None},
    })

    if request.format == "json":
        return AnalyzeResponse(format="json", result=result)
    return AnalyzeResponse(format="compact", report=render_compact(result))
