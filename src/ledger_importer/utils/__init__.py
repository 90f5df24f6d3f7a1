"""Shared helpers: logging, amounts, balances, dates and files."""
