"""External data providers."""

from expense_settlement.providers.revenue_feed import HttpRevenueFeed, RevenueFeed

__all__ = ["HttpRevenueFeed", "RevenueFeed"]
