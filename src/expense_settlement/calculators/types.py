"""Type definitions for the settlement calculation."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from expense_settlement.utils import to_number


def _bound(value: Any, default: float) -> float:
    # Unbounded ends are stored as null since JSON has no infinity
    if value is None:
        return default
    if isinstance(value, (int, float)) and math.isinf(value):
        return float(value)
    number = to_number(value, None)
    return default if number is None else number


def _json_bound(value: float) -> float | None:
    return None if math.isinf(value) else value


@dataclass(frozen=True)
class CommissionRange:
    """One profit-rate tier, half-open ``[min_rate, max_rate)``."""

    min_rate: float
    max_rate: float
    rate: float

    def contains(self, profit_rate: float) -> bool:
        return self.min_rate <= profit_rate < self.max_rate

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CommissionRange:
        return cls(
            min_rate=_bound(data.get("min"), -math.inf),
            max_rate=_bound(data.get("max"), math.inf),
            rate=to_number(data.get("rate"), 0.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "min": _json_bound(self.min_rate),
            "max": _json_bound(self.max_rate),
            "rate": self.rate,
        }


@dataclass(frozen=True)
class CommissionRule:
    """A versioned, period-effective commission schedule."""

    version: str
    effective_from: str | None
    ranges: tuple[CommissionRange, ...]
    status: str = "active"

    @property
    def is_disabled(self) -> bool:
        return self.status == "disabled"

    def is_effective_for(self, period: str) -> bool:
        """Rules without ``effective_from`` apply to every period."""
        return not self.effective_from or self.effective_from <= period

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> CommissionRule:
        return cls(
            version=str(doc.get("version") or ""),
            effective_from=doc.get("effective_from") or None,
            ranges=tuple(CommissionRange.from_dict(r) for r in doc.get("ranges") or []),
            status=str(doc.get("status") or "active"),
        )

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "effective_from": self.effective_from,
            "ranges": [r.to_dict() for r in self.ranges],
        }


@dataclass(frozen=True)
class SettlementInputs:
    """Monetary inputs for one project period."""

    revenue: float
    expense_cost: float
    tax_fee: float
    labor_cost: float


@dataclass(frozen=True)
class SettlementFigures:
    """Computed settlement values."""

    revenue: float
    expense_cost: float
    tax_fee: float
    labor_cost: float
    profit: float
    profit_rate: float
    commission_rate: float
    commission_amount: float

    def to_dict(self) -> dict[str, float]:
        return {
            "revenue": self.revenue,
            "expense_cost": self.expense_cost,
            "tax_fee": self.tax_fee,
            "labor_cost": self.labor_cost,
            "profit": self.profit,
            "profit_rate": self.profit_rate,
            "commission_rate": self.commission_rate,
            "commission_amount": self.commission_amount,
        }


@dataclass
class RuleValidation:
    """Result of checking a rule before it is saved."""

    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
