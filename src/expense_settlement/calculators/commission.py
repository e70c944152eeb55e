"""Commission rule resolution and tier lookup."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from expense_settlement.calculators.types import CommissionRange, CommissionRule, RuleValidation
from expense_settlement.constants import Collection
from expense_settlement.utils import to_number

if TYPE_CHECKING:
    from expense_settlement.store import DocumentStore

DEFAULT_COMMISSION_RANGES: tuple[CommissionRange, ...] = (
    CommissionRange(-math.inf, 0.10, 0.0),
    CommissionRange(0.10, 0.20, 0.05),
    CommissionRange(0.20, 0.30, 0.08),
    CommissionRange(0.30, math.inf, 0.12),
)

DEFAULT_RULE = CommissionRule(
    version="default-v1",
    effective_from="1970-01",
    ranges=DEFAULT_COMMISSION_RANGES,
)


def select_active_rule(rules: Iterable[CommissionRule], period: str) -> CommissionRule:
    """Pick the rule in force for a period.

    Disabled rules and rules effective after the period are skipped. Among
    the rest the greatest ``effective_from`` wins; on a tie the rule stored
    first wins. Rules without ``effective_from`` sort lowest. Falls back to
    DEFAULT_RULE.
    """
    best: CommissionRule | None = None
    best_key = ""
    for rule in rules:
        if rule.is_disabled or not rule.is_effective_for(period):
            continue
        key = rule.effective_from or ""
        if best is None or key > best_key:
            best = rule
            best_key = key
    return best or DEFAULT_RULE


def resolve_commission_rate(ranges: Sequence[CommissionRange], profit_rate: float) -> float:
    """Return the rate of the first range containing ``profit_rate``.

    Ranges are used in the order given and are not checked for overlap or
    gaps. A rate that falls in no range earns 0.
    """
    for commission_range in ranges:
        if commission_range.contains(profit_rate):
            return commission_range.rate
    return 0.0


def validate_rule_ranges(ranges: Iterable[Mapping[str, Any]]) -> RuleValidation:
    """Per-range sanity checks applied when a rule is saved.

    Coverage and ordering across ranges are deliberately not enforced.
    """
    result = RuleValidation()
    ranges = list(ranges)
    if not ranges:
        result.errors.append("Rule must contain at least one range")
    for index, raw in enumerate(ranges, start=1):
        if not isinstance(raw, Mapping):
            result.errors.append(f"Range {index} is malformed")
            continue
        rate = to_number(raw.get("rate"), None)
        if rate is None or not 0 <= rate <= 1:
            result.errors.append(f"Range {index}: rate must be between 0 and 1")
        parsed = CommissionRange.from_dict(raw)
        if not parsed.min_rate < parsed.max_rate:
            result.errors.append(f"Range {index}: min must be below max")
    return result


class CommissionRuleResolver:
    """Loads stored commission rules and resolves the one in force."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def resolve(self, period: str) -> CommissionRule:
        docs = await self.store.list(Collection.COMMISSION_RULES)
        return select_active_rule((CommissionRule.from_document(d) for d in docs), period)

    async def resolve_rate(self, period: str, profit_rate: float) -> tuple[CommissionRule, float]:
        rule = await self.resolve(period)
        return rule, resolve_commission_rate(rule.ranges, profit_rate)
