"""Profit and commission computation."""

from __future__ import annotations

from typing import Sequence

from expense_settlement.calculators.commission import DEFAULT_COMMISSION_RANGES, resolve_commission_rate
from expense_settlement.calculators.types import CommissionRange, SettlementFigures, SettlementInputs
from expense_settlement.utils import ratio, round2


def compute_settlement(
    inputs: SettlementInputs,
    ranges: Sequence[CommissionRange] = DEFAULT_COMMISSION_RANGES,
) -> SettlementFigures:
    """Compute profit, profit rate and commission.

    Inputs are rounded to cents first so repeated recomputation never
    drifts. Commission is only paid on positive profit.
    """
    revenue = round2(inputs.revenue)
    expense_cost = round2(inputs.expense_cost)
    tax_fee = round2(inputs.tax_fee)
    labor_cost = round2(inputs.labor_cost)

    profit = round2(revenue - expense_cost - tax_fee - labor_cost)
    profit_rate = ratio(profit, revenue)
    commission_rate = resolve_commission_rate(ranges, profit_rate)
    commission_amount = round2(max(profit, 0.0) * commission_rate)

    return SettlementFigures(
        revenue=revenue,
        expense_cost=expense_cost,
        tax_fee=tax_fee,
        labor_cost=labor_cost,
        profit=profit,
        profit_rate=profit_rate,
        commission_rate=commission_rate,
        commission_amount=commission_amount,
    )
