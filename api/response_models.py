"""
Pydantic request and response models for the digest API.

Responses use one envelope: {status, data, computed_at, params, error?, error_code?}.
"""

from typing import Any

from pydantic import BaseModel, Field

# ==== Envelope ====


class DigestEnvelope(BaseModel):
    """Standard digest endpoint envelope."""

    status: str = Field(description="ok or error")
    data: Any = Field(default=None, description="Response payload")
    computed_at: str = Field(description="ISO timestamp of computation")
    params: dict[str, Any] = Field(default_factory=dict, description="Echo of request params")
    error: str | None = Field(default=None, description="Error message if status=error")
    error_code: str | None = Field(default=None, description="Error code if status=error")


# ==== Requests ====


class DueDigestRequest(BaseModel):
    project_ref: str | None = Field(
        default=None, description="Canonical id, project code, human id or slug. Omit for portfolio."
    )
    window_days: int | float | str | None = Field(
        default=None, description="Look-ahead in days, clamped to 1..90 (default 14)"
    )


class PeriodModel(BaseModel):
    from_: str | None = Field(default=None, alias="from", description="YYYY-MM-DD")
    to: str | None = Field(default=None, description="YYYY-MM-DD")

    model_config = {"populate_by_name": True}


class DeliveryReportRequest(BaseModel):
    project_ref: str | None = Field(default=None, description="Project reference (required)")
    period: PeriodModel = Field(default_factory=PeriodModel)
    window_days: int | float | str | None = Field(
        default=None, description="Next-period look-ahead in days (default 7)"
    )
    artifact_id: str | None = Field(
        default=None, description="Report artifact whose previous snapshot to compare with"
    )


# ==== Health Check ====


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or degraded")
    timestamp: str = Field(description="ISO timestamp")
    database: str = Field(description="Database path in use")
