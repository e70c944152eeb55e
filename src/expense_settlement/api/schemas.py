"""Pydantic schemas for API request/response models.

Amount fields accept numbers or numeric strings; range checks happen in the
engine so every failure reaches the caller in the same error envelope.
"""

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field

Amount = Union[float, str, None]


def ok(**payload: Any) -> dict[str, Any]:
    """Success envelope."""
    return {"ok": True, **payload}


# ============================================================================
# Envelope schemas
# ============================================================================


class ErrorBody(BaseModel):
    code: str
    message: str
    statusCode: int
    details: Any | None = None


class ErrorResponse(BaseModel):
    """Schema for error response."""

    ok: bool = False
    error: ErrorBody


# ============================================================================
# Claim schemas
# ============================================================================


class ClaimItemIn(BaseModel):
    """One expense line on a claim."""

    category: str = ""
    amount: Amount = None
    tax_amount: Amount = 0
    remark: str = ""


class ClaimUpsertRequest(BaseModel):
    """Create a claim, or replace one when claim_id is given."""

    claim_id: str | None = None
    project_id: str = ""
    claim_type: str = "electronic"
    occur_date: str | None = None
    applicant_id: str | None = None
    cost_category: str = ""
    source: str | None = None
    attachments: list[Any] = Field(default_factory=list)
    items: list[ClaimItemIn] = Field(default_factory=list)

    def header(self) -> dict[str, Any]:
        return self.model_dump(exclude={"items"})

    def item_dicts(self) -> list[dict[str, Any]]:
        return [item.model_dump() for item in self.items]


class ClaimDecisionRequest(BaseModel):
    action: str = "approve"
    reason: str | None = None


# ============================================================================
# Import schemas
# ============================================================================


class PaperImportRequest(BaseModel):
    """Paper claims as decoded rows or a base64 .xlsx file."""

    model_config = ConfigDict(extra="ignore")

    period: str
    rows: list[Any] | None = None
    file_base64: str | None = None
    mode: str = "excel"


class RevenuePullRequest(BaseModel):
    """Revenue rows inline; omit rows to fetch from the configured feed."""

    period: str
    rows: list[Any] | None = None


# ============================================================================
# Project schemas
# ============================================================================


class ProjectUpsertRequest(BaseModel):
    project_id: str = ""
    name: str = ""
    owner: str = ""
    status: str = "active"
    start_date: str | None = None
    end_date: str | None = None


class PeriodDataRequest(BaseModel):
    period: str
    labor_amount: Amount = None
    tax_fee_amount: Amount = None


class RevenueRequest(BaseModel):
    period: str
    revenue_amount: Amount = None


# ============================================================================
# Settlement schemas
# ============================================================================


class SettlementGenerateRequest(BaseModel):
    project_id: str = ""
    period: str = ""


class CommissionRangeIn(BaseModel):
    """Half-open tier ``[min, max)``; null bounds are unbounded."""

    min: float | None = None
    max: float | None = None
    rate: Amount = None


class CommissionRuleRequest(BaseModel):
    version: str = ""
    effective_from: str | None = None
    status: str = "active"
    ranges: list[CommissionRangeIn] = Field(default_factory=list)


# ============================================================================
# Report schemas
# ============================================================================


class MonthlyReportRequest(BaseModel):
    period: str
    project_id: str | None = None
    include_file: bool = True
