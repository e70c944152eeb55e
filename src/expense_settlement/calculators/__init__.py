"""Settlement calculators."""

from expense_settlement.calculators.commission import (
    DEFAULT_COMMISSION_RANGES,
    DEFAULT_RULE,
    CommissionRuleResolver,
    resolve_commission_rate,
    select_active_rule,
)
from expense_settlement.calculators.settlement import compute_settlement
from expense_settlement.calculators.types import (
    CommissionRange,
    CommissionRule,
    SettlementFigures,
    SettlementInputs,
)

__all__ = [
    "DEFAULT_COMMISSION_RANGES",
    "DEFAULT_RULE",
    "CommissionRange",
    "CommissionRule",
    "CommissionRuleResolver",
    "SettlementFigures",
    "SettlementInputs",
    "compute_settlement",
    "resolve_commission_rate",
    "select_active_rule",
]
