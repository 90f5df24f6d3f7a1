"""Decimal utilities for ledger amounts.

All monetary comparisons use Decimal to avoid floating-point precision issues.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# Three-letter commodity codes as printed by hledger ("CHF95.25", "EUR -3.00")
COMMODITY_PATTERN = re.compile(r"[A-Z]{3}\s*")

# Thousands separators seen in statement exports: 1,234.56 and 1'234.56
THOUSANDS_PATTERN = re.compile(r"[,'’]")


def parse_amount_value(raw_amount: str) -> Decimal:
    """Extract the numeric value of an amount string.

    Handles formats like "CHF95.25", "CHF-10.00", "-95.25", "1,234.56" and
    "1'234.56". Unparseable input yields zero, matching how hledger treats
    an empty amount cell.

    Args:
        raw_amount: The amount string, optionally prefixed with a commodity.

    Returns:
        The signed amount as Decimal.
    """
    if not raw_amount:
        return Decimal("0")

    cleaned = COMMODITY_PATTERN.sub("", raw_amount)
    cleaned = THOUSANDS_PATTERN.sub("", cleaned).replace(" ", "").strip()
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]

    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")


def format_amount(amount: Decimal, decimal_places: int = 2, explicit_sign: bool = False) -> str:
    """Format a Decimal amount with a fixed number of decimal places.

    Args:
        amount: The amount to format.
        decimal_places: Number of decimal places (default 2).
        explicit_sign: Prefix non-negative amounts with "+".

    Returns:
        Formatted string like "-1234.56", "1234.56" or "+1234.56".
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    rounded = amount.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)
    # Avoid "-0.00" after rounding
    if rounded == 0:
        rounded = abs(rounded)

    text = f"{rounded:f}"
    if explicit_sign and rounded >= 0:
        return f"+{text}"
    return text
