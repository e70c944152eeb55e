"""Expense Settlement - project expense claims, imports, and commission settlement."""

__version__ = "0.1.0"
