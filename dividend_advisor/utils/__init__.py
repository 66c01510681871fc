"""
Shared utilities: logging setup, retry policy, and date helpers.
"""
