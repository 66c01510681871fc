"""Dividend Advisor — dividend-portfolio recommendations from stored holdings and market data."""

__version__ = "0.1.0"
