"""Recurring bill, subscription and income detection."""

__version__ = "1.0.0"
