"""
API Request/Response Models
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Literal

from log_correlator.models.schemas import AnalysisResult


class AnalyzeRequest(BaseModel):
    identifiers: Dict[str, Optional[str]] = Field(
        ..., description="subscription_uuid, account_uuid, msisdn, iccid and/or imei"
    )
    hours: int = Field(default=3, description="Hours of logs to search, ending now")
    mode: str = Field(default="full", description="full, errors, workflows, network, trace or timeline")
    format: str = Field(default="compact", description="compact or json")


class AnalyzeResponse(BaseModel):
    format: Literal["compact", "json"]
    report: Optional[str] = Field(None, description="Compact report text")
    result: Optional[AnalysisResult] = Field(None, description="Full structured result")


class HealthResponse(BaseModel):
    status: str
    version: str
