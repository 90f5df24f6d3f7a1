"""Parsers for statement CSV files, hledger rules files and hledger output."""

from ledger_importer.parsers.base import ParseError, read_text
from ledger_importer.parsers.csv_preview import CSVPreview, read_preview
from ledger_importer.parsers.detector import (
    classify_files,
    detect_file,
    detect_provider,
    extract_metadata,
    render_filename,
)
from ledger_importer.parsers.ledger_output import (
    count_transactions,
    extract_transaction_years,
    parse_balance_output,
    parse_last_register_date,
    parse_transactions,
    parse_unknown_postings,
)
from ledger_importer.parsers.rules_parser import (
    RulesConfig,
    extract_accounts,
    load_rules,
    parse_account1,
    parse_rules,
    parse_source_directive,
)
from ledger_importer.parsers.statement_rows import attach_statement_rows, find_matching_row

__all__ = [
    "ParseError",
    "read_text",
    "CSVPreview",
    "read_preview",
    "detect_provider",
    "detect_file",
    "classify_files",
    "extract_metadata",
    "render_filename",
    "parse_transactions",
    "parse_unknown_postings",
    "count_transactions",
    "extract_transaction_years",
    "parse_last_register_date",
    "parse_balance_output",
    "RulesConfig",
    "parse_rules",
    "load_rules",
    "parse_source_directive",
    "parse_account1",
    "extract_accounts",
    "attach_statement_rows",
    "find_matching_row",
]
