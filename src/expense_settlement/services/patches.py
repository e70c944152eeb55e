"""Typed partial-update structures.

Each entity gets an explicit patch type so only known fields are ever
written back to the store. Fields left as None are not part of the patch.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any


class _Patch:
    def as_patch(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not None
        }


@dataclass
class ClaimPatch(_Patch):
    """Writable expense claim fields."""

    project_id: str | None = None
    claim_type: str | None = None
    occur_date: str | None = None
    applicant_id: str | None = None
    amount_total: float | None = None
    tax_amount: float | None = None
    cost_category: str | None = None
    source: str | None = None
    attachments: list[Any] | None = None
    status: str | None = None
    submitted_at: str | None = None
    approval_by: str | None = None
    approval_at: str | None = None
    reject_reason: str | None = None
    void_reason: str | None = None
    updated_at: str | None = None


@dataclass
class ImportJobPatch(_Patch):
    """Final status patch applied once per import job."""

    status: str | None = None
    success_count: int | None = None
    fail_count: int | None = None
    errors: list[str] | None = None
    updated_at: str | None = None


@dataclass
class ProjectPatch(_Patch):
    name: str | None = None
    owner: str | None = None
    status: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    updated_by: str | None = None
    updated_at: str | None = None


@dataclass
class RevenuePatch(_Patch):
    revenue_amount: float | None = None
    source: str | None = None
    sync_batch_id: str | None = None
    updated_by: str | None = None
    updated_at: str | None = None


@dataclass
class LaborPatch(_Patch):
    labor_amount: float | None = None
    source: str | None = None
    updated_by: str | None = None
    updated_at: str | None = None


@dataclass
class TaxFeePatch(_Patch):
    tax_fee_amount: float | None = None
    source: str | None = None
    updated_by: str | None = None
    updated_at: str | None = None
