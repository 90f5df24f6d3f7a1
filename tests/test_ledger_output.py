"""Tests for parsing hledger output."""

from ledger_importer.parsers.ledger_output import (
    count_transactions,
    extract_transaction_years,
    parse_balance_output,
    parse_last_register_date,
    parse_posting,
    parse_transactions,
    parse_unknown_postings,
)
from tests.conftest import UBS_PRINT, UBS_PRINT_UNKNOWN


class TestParseTransactions:
    """Tests for parse_transactions."""

    def test_headers_and_postings(self) -> None:
        """Test that transactions and their postings are read."""
        transactions = parse_transactions(UBS_PRINT)
        assert [t.date for t in transactions] == ["2026-01-05", "2026-01-10"]
        assert transactions[0].description == "MIGROS ZURICH"
        assert [p.account for p in transactions[0].postings] == [
            "assets:bank:ubs:chf",
            "expenses:groceries",
        ]

    def test_status_and_code(self) -> None:
        """Test that status marks and codes are not part of the description."""
        output = "2026-03-01 * (1234) Coffee shop\n    expenses:coffee  CHF4.50\n    assets:cash\n"
        transaction = parse_transactions(output)[0]
        assert transaction.description == "Coffee shop"
        assert transaction.postings[1].amount == ""

    def test_count_and_years(self) -> None:
        """Test transaction counting and year extraction."""
        output = UBS_PRINT + "2025-12-31 Old\n    a:b  CHF1\n    c:d\n"
        assert count_transactions(output) == 3
        assert extract_transaction_years(output) == {2025, 2026}

    def test_empty_output(self) -> None:
        """Test that empty output has no transactions."""
        assert parse_transactions("") == []


class TestParsePosting:
    """Tests for parse_posting."""

    def test_amount_and_balance(self) -> None:
        """Test splitting the amount from a balance assertion."""
        posting = parse_posting("    assets:bank:ubs:chf        CHF-45.20 = CHF954.80")
        assert posting is not None
        assert posting.amount == "CHF-45.20"
        assert posting.balance == "CHF954.80"

    def test_account_with_single_spaces(self) -> None:
        """Test that single spaces stay inside the account name."""
        posting = parse_posting("    expenses:eating out  CHF12.00  ; lunch")
        assert posting is not None
        assert posting.account == "expenses:eating out"
        assert posting.amount == "CHF12.00"

    def test_comment_line(self) -> None:
        """Test that posting comments are skipped."""
        assert parse_posting("    ; just a comment") is None


class TestUnknownPostings:
    """Tests for parse_unknown_postings."""

    def test_collects_unknown_postings(self) -> None:
        """Test that only unknown accounts are reported."""
        unknown = parse_unknown_postings(UBS_PRINT_UNKNOWN)
        assert len(unknown) == 1
        assert unknown[0].account == "income:unknown"
        assert unknown[0].amount == "CHF-5000.00"
        assert unknown[0].description == "ACME SALARY"

    def test_no_unknown_postings(self) -> None:
        """Test fully categorized output."""
        assert parse_unknown_postings(UBS_PRINT) == []


class TestQueryOutput:
    """Tests for register and balance output."""

    def test_last_register_date(self) -> None:
        """Test reading the date of the last register row."""
        output = (
            '"txnidx","date","code","description","account","amount","total"\n'
            '"1","2026-01-05","","MIGROS","assets:bank:ubs:chf","CHF-45.20","CHF-45.20"\n'
            '"2","2026-01-10","","SALARY","assets:bank:ubs:chf","CHF5000.00","CHF4954.80"\n'
        )
        assert parse_last_register_date(output) == "2026-01-10"

    def test_register_header_only(self) -> None:
        """Test that a register without rows has no date."""
        assert parse_last_register_date('"txnidx","date"\n') is None

    def test_balance_output(self) -> None:
        """Test extracting the amount from flat balance output."""
        assert parse_balance_output("         CHF 2324.79  assets:bank:ubs:chf\n") == "CHF 2324.79"

    def test_empty_balance_is_zero(self) -> None:
        """Test that an account without postings has a zero balance."""
        assert parse_balance_output("") == "0"
