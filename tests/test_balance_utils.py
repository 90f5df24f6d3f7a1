"""Tests for balance parsing and comparison."""

from decimal import Decimal

import pytest

from ledger_importer.utils.balance_utils import (
    CurrencyMismatchError,
    balances_match,
    calculate_difference,
    format_balance,
    parse_balance,
)
from ledger_importer.utils.decimal_utils import format_amount, parse_amount_value


class TestParseBalance:
    """Tests for parse_balance."""

    @pytest.mark.parametrize(
        "text,currency,amount",
        [
            ("CHF 2324.79", "CHF", "2324.79"),
            ("CHF2324.79", "CHF", "2324.79"),
            ("2324.79 CHF", "CHF", "2324.79"),
            ("EUR -5", "EUR", "-5"),
            ("-123.45", "", "-123.45"),
            ("USD 1,234.56", "USD", "1234.56"),
        ],
    )
    def test_supported_layouts(self, text: str, currency: str, amount: str) -> None:
        """Test that every balance layout parses."""
        parsed = parse_balance(text)
        assert parsed is not None
        assert parsed.currency == currency
        assert parsed.amount == Decimal(amount)

    def test_unparseable(self) -> None:
        """Test that text without an amount yields None."""
        assert parse_balance("n/a") is None
        assert parse_balance("") is None


class TestBalancesMatch:
    """Tests for balances_match."""

    def test_equal_balances(self) -> None:
        """Test that equal balances in different layouts match."""
        assert balances_match("CHF 2324.79", "2324.79 CHF") is True

    def test_within_epsilon(self) -> None:
        """Test that differences below one cent match."""
        assert balances_match("CHF 100.004", "CHF 100.00") is True

    def test_one_cent_apart(self) -> None:
        """Test that a full cent difference does not match."""
        assert balances_match("CHF 100.01", "CHF 100.00") is False

    def test_missing_currency_matches_specified(self) -> None:
        """Test that a bare amount compares against a currency amount."""
        assert balances_match("100.00", "CHF 100.00") is True

    def test_currency_mismatch_raises(self) -> None:
        """Test that different currencies are never compared."""
        with pytest.raises(CurrencyMismatchError, match="CHF vs EUR"):
            balances_match("CHF 100.00", "EUR 100.00")

    def test_unparseable_does_not_match(self) -> None:
        """Test that an unparseable balance is a mismatch, not an error."""
        assert balances_match("unknown", "CHF 100.00") is False


class TestCalculateDifference:
    """Tests for calculate_difference."""

    def test_positive_difference(self) -> None:
        """Test actual above expected."""
        assert calculate_difference("CHF 100.00", "CHF 105.50") == "CHF +5.50"

    def test_negative_difference(self) -> None:
        """Test actual below expected."""
        assert calculate_difference("CHF 100.00", "CHF 95.00") == "CHF -5.00"

    def test_without_currency(self) -> None:
        """Test that bare amounts give a bare difference."""
        assert calculate_difference("10", "10") == "+0.00"

    def test_unparseable_raises(self) -> None:
        """Test that unparseable balances raise ValueError."""
        with pytest.raises(ValueError, match="Cannot parse balances"):
            calculate_difference("abc", "CHF 1.00")


class TestAmountHelpers:
    """Tests for amount parsing and formatting."""

    def test_parse_amount_value(self) -> None:
        """Test commodity prefixes and thousands separators."""
        assert parse_amount_value("CHF-10.00") == Decimal("-10.00")
        assert parse_amount_value("1'234.56") == Decimal("1234.56")
        assert parse_amount_value("+5") == Decimal("5")
        assert parse_amount_value("") == Decimal("0")
        assert parse_amount_value("n/a") == Decimal("0")

    def test_format_amount(self) -> None:
        """Test rounding and sign handling."""
        assert format_amount(Decimal("1.005")) == "1.01"
        assert format_amount(Decimal("-0.001")) == "0.00"
        assert format_amount(Decimal("3"), explicit_sign=True) == "+3.00"

    def test_format_balance(self) -> None:
        """Test currency-tagged formatting."""
        assert format_balance(Decimal("2324.79"), "CHF") == "CHF 2324.79"
        assert format_balance(Decimal("-1")) == "-1.00"
