"""Tests for rules file parsing and statement row lookup."""

from decimal import Decimal
from pathlib import Path

import pytest

from ledger_importer.models.ledger import UnknownPosting
from ledger_importer.parsers.rules_parser import (
    AmountFields,
    extract_accounts,
    parse_account1,
    parse_rules,
    parse_source_directive,
)
from ledger_importer.parsers.statement_rows import (
    attach_statement_rows,
    find_matching_row,
    parse_statement_rows,
    row_amount,
)
from ledger_importer.utils.date_utils import next_day, to_iso_date
from tests.conftest import TESTBANK_RULES, UBS_RULES, UBS_STATEMENT

DEBIT_CREDIT_RULES = """\
skip 1
separator ;
fields booked, text, debit, credit, reference
date %booked
date-format %d.%m.%Y
account1 assets:bank:zkb:chf

if %debit .
  amount -%debit
if %credit .
  amount %credit
"""


class TestDirectives:
    """Tests for individual directive readers."""

    def test_source_directive(self) -> None:
        """Test that the first source locator is returned."""
        assert parse_source_directive(UBS_RULES) == "../pending/ubs/chf/*.csv"

    def test_source_ignores_comments(self) -> None:
        """Test commented directives and trailing comments."""
        content = "# source old.csv\nsource new.csv  # current export\n"
        assert parse_source_directive(content) == "new.csv"

    def test_missing_source(self) -> None:
        """Test a rules file without a source directive."""
        assert parse_source_directive("skip 1\n") is None

    def test_account1(self) -> None:
        """Test reading the bank account."""
        assert parse_account1(TESTBANK_RULES) == "assets:bank:testbank:chf"
        assert parse_account1("; account1 commented:out\n") is None

    def test_extract_accounts(self) -> None:
        """Test collecting accounts from account1 and conditional blocks."""
        content = UBS_RULES + "if COFFEE\n  account2 expenses:eating out  ; cafe\n"
        assert extract_accounts(content) == {
            "assets:bank:ubs:chf",
            "expenses:groceries",
            "expenses:eating out",
        }

    def test_extract_accounts_skips_comments(self) -> None:
        """Test that commented-out assignments are not declared."""
        assert extract_accounts("# account2 expenses:old\n") == set()


class TestParseRules:
    """Tests for parse_rules."""

    def test_simple_layout(self) -> None:
        """Test a comma-separated file with a single amount field."""
        config = parse_rules(UBS_RULES)
        assert config.skip_rows == 1
        assert config.separator == ","
        assert config.field_names == ["date", "description", "amount", "currency", "balance"]
        assert config.date_field == "date"
        assert config.amount_fields.single == "amount"
        assert config.account1 == "assets:bank:ubs:chf"

    def test_debit_credit_layout(self) -> None:
        """Test separate debit and credit fields."""
        config = parse_rules(DEBIT_CREDIT_RULES)
        assert config.separator == ";"
        assert config.date_field == "booked"
        assert config.date_format == "%d.%m.%Y"
        assert config.amount_fields.debit == "debit"
        assert config.amount_fields.credit == "credit"
        assert config.amount_fields.single is None

    def test_named_separator(self) -> None:
        """Test hledger's named separators."""
        assert parse_rules("separator tab\n").separator == "\t"

    def test_numeric_field_reference(self) -> None:
        """Test that %N references resolve to field names."""
        config = parse_rules("fields d, desc, amt\namount %3\n")
        assert config.amount_fields.single == "amt"


class TestStatementRows:
    """Tests for reading and matching statement rows."""

    def _write(self, tmp_path: Path, content: str) -> Path:
        path = tmp_path / "statement.csv"
        path.write_text(content, encoding="utf-8")
        return path

    def test_rows_named_by_fields_directive(self, tmp_path: Path) -> None:
        """Test that rows use the names from the fields directive."""
        rows = parse_statement_rows(self._write(tmp_path, UBS_STATEMENT), parse_rules(UBS_RULES))
        assert len(rows) == 2
        assert rows[0]["description"] == "MIGROS ZURICH"

    def test_debit_and_credit_signs(self) -> None:
        """Test that debits are negative and credits positive."""
        fields = AmountFields(debit="debit", credit="credit")
        assert row_amount({"debit": "12.50", "credit": ""}, fields) == Decimal("-12.50")
        assert row_amount({"debit": "", "credit": "100.00"}, fields) == Decimal("100.00")

    def test_match_by_reference(self, tmp_path: Path) -> None:
        """Test that a transaction reference breaks ties."""
        content = (
            "booked;text;debit;credit;reference\n"
            "03.02.2026;CARD PAYMENT;20.00;;REF-001\n"
            "03.02.2026;CARD PAYMENT;20.00;;REF-002\n"
        )
        config = parse_rules(DEBIT_CREDIT_RULES)
        rows = parse_statement_rows(self._write(tmp_path, content), config)
        posting = UnknownPosting(
            date="2026-02-03", description="CARD PAYMENT", amount="CHF20.00", account="expenses:unknown"
        )
        assert find_matching_row(posting, rows, config)["reference"] == "REF-001"

    def test_no_candidate_raises(self) -> None:
        """Test that a posting without a matching row raises LookupError."""
        posting = UnknownPosting(date="2026-01-01", description="X", amount="CHF1.00", account="income:unknown")
        with pytest.raises(LookupError):
            find_matching_row(posting, [], parse_rules(UBS_RULES))

    def test_attach_rows(self, tmp_path: Path) -> None:
        """Test attaching rows, leaving unmatched postings without one."""
        csv_path = self._write(tmp_path, UBS_STATEMENT)
        postings = [
            UnknownPosting(date="2026-01-10", description="ACME SALARY", amount="CHF-5000.00", account="income:unknown"),
            UnknownPosting(date="2026-01-11", description="OTHER", amount="CHF-1.00", account="income:unknown"),
        ]
        attach_statement_rows(postings, csv_path, parse_rules(UBS_RULES))
        assert postings[0].csv_row is not None
        assert postings[0].csv_row["amount"] == "5000.00"
        assert postings[1].csv_row is None

    def test_attach_rows_unreadable_file(self, tmp_path: Path) -> None:
        """Test that an unreadable file leaves postings untouched."""
        posting = UnknownPosting(date="2026-01-10", description="X", amount="CHF1.00", account="income:unknown")
        attach_statement_rows([posting], tmp_path / "missing.csv", parse_rules(UBS_RULES))
        assert posting.csv_row is None


class TestDateHelpers:
    """Tests for date conversion."""

    def test_to_iso_date(self) -> None:
        """Test conversion with a custom date format."""
        assert to_iso_date("03.02.2026", "%d.%m.%Y") == "2026-02-03"
        assert to_iso_date("2026-02-03", "%F") == "2026-02-03"
        assert to_iso_date("garbage") == "garbage"

    def test_next_day(self) -> None:
        """Test month and year rollover."""
        assert next_day("2026-01-31") == "2026-02-01"
        assert next_day("2025-12-31") == "2026-01-01"
