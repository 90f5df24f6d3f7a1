"""Balance parsing and comparison for statement reconciliation.

Balances are strings as found on statements or printed by hledger:
``"CHF 2324.79"``, ``"2324.79 CHF"``, ``"CHF2324.79"`` or a bare ``"-123.45"``.
Two balances are only ever compared when their currencies agree; a
mismatch raises instead of converting.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from ledger_importer.utils.decimal_utils import format_amount

# Amounts closer than this are considered equal
BALANCE_EPSILON = Decimal("0.01")

# "CHF 2324.79", "CHF2324.79", "CHF -5" or "2324.79 CHF"
CURRENCY_AMOUNT_PATTERN = re.compile(
    r"([A-Z]{3})\s*([+-]?[\d.,]+)|([+-]?[\d.,]+)\s*([A-Z]{3})"
)

# Bare signed decimal without currency
PLAIN_AMOUNT_PATTERN = re.compile(r"^([+-]?[\d.,]+)$")


class CurrencyMismatchError(ValueError):
    """Raised when two balances carry different specified currencies."""

    def __init__(self, first: str, second: str):
        self.first = first
        self.second = second
        super().__init__(f"Currency mismatch: {first} vs {second}")


@dataclass(frozen=True)
class ParsedBalance:
    """A balance split into currency code and amount.

    Attributes:
        currency: Three-letter currency code, or "" when unspecified.
        amount: Signed amount.
    """

    currency: str
    amount: Decimal


def _to_decimal(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw.replace(",", ""))
    except InvalidOperation:
        return None


def parse_balance(balance: str) -> Optional[ParsedBalance]:
    """Parse a balance string into currency and amount.

    Args:
        balance: Balance string in any supported layout.

    Returns:
        ParsedBalance, or None if the string holds no recognizable amount.
    """
    if balance is None:
        return None
    text = balance.strip()

    match = CURRENCY_AMOUNT_PATTERN.search(text)
    if match:
        currency = match.group(1) or match.group(4)
        raw_amount = match.group(2) or match.group(3)
    else:
        plain = PLAIN_AMOUNT_PATTERN.match(text)
        if not plain:
            return None
        currency = ""
        raw_amount = plain.group(1)

    amount = _to_decimal(raw_amount)
    if amount is None:
        return None
    return ParsedBalance(currency=currency, amount=amount)


def _shared_currency(first: ParsedBalance, second: ParsedBalance) -> str:
    if first.currency and second.currency and first.currency != second.currency:
        raise CurrencyMismatchError(first.currency, second.currency)
    return first.currency or second.currency


def balances_match(balance1: str, balance2: str) -> bool:
    """Check whether two balances are equal within BALANCE_EPSILON.

    Args:
        balance1: First balance string.
        balance2: Second balance string.

    Returns:
        True if both parse and the amounts differ by less than 0.01.
        False if either balance cannot be parsed.

    Raises:
        CurrencyMismatchError: If both balances specify different currencies.
    """
    parsed1 = parse_balance(balance1)
    parsed2 = parse_balance(balance2)
    if parsed1 is None or parsed2 is None:
        return False

    _shared_currency(parsed1, parsed2)
    return abs(parsed1.amount - parsed2.amount) < BALANCE_EPSILON


def calculate_difference(expected: str, actual: str) -> str:
    """Compute ``actual - expected`` as a signed, currency-tagged string.

    Args:
        expected: Expected (statement) balance.
        actual: Actual (ledger) balance.

    Returns:
        Difference like "CHF +5.50" or "CHF -5.00"; no prefix when
        neither balance specifies a currency.

    Raises:
        ValueError: If either balance cannot be parsed.
        CurrencyMismatchError: If both balances specify different currencies.
    """
    expected_parsed = parse_balance(expected)
    actual_parsed = parse_balance(actual)
    if expected_parsed is None or actual_parsed is None:
        raise ValueError(f'Cannot parse balances: expected="{expected}", actual="{actual}"')

    currency = _shared_currency(expected_parsed, actual_parsed)
    diff = format_amount(actual_parsed.amount - expected_parsed.amount, explicit_sign=True)
    return f"{currency} {diff}" if currency else diff


def format_balance(amount: Decimal, currency: Optional[str] = None) -> str:
    """Format an amount as a balance string, e.g. "CHF 2324.79"."""
    formatted = format_amount(amount)
    return f"{currency} {formatted}" if currency else formatted
