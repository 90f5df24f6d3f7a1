"""hledger invocation and queries."""

from ledger_importer.ledger.executor import (
    LedgerExecutor,
    SubprocessLedgerExecutor,
    ValidationResult,
    get_account_balance,
    get_last_transaction_date,
    import_statement,
    preview_statement,
    validate_ledger,
)

__all__ = [
    "LedgerExecutor",
    "SubprocessLedgerExecutor",
    "ValidationResult",
    "preview_statement",
    "import_statement",
    "validate_ledger",
    "get_last_transaction_date",
    "get_account_balance",
]
