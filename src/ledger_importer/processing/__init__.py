"""Statement import pipeline components."""

from ledger_importer.processing.account_declarations import (
    ensure_account_declarations,
    get_all_accounts_from_rules,
)
from ledger_importer.processing.classifier import classify_statements
from ledger_importer.processing.importer import (
    ImportReport,
    check_statements,
    import_statements,
)
from ledger_importer.processing.journal import (
    JournalError,
    ensure_accounts_journal,
    ensure_year_journal,
)
from ledger_importer.processing.reconciler import reconcile_latest, reconcile_statement
from ledger_importer.processing.rules_matcher import find_rules_for_csv, load_rules_mapping

__all__ = [
    "classify_statements",
    "load_rules_mapping",
    "find_rules_for_csv",
    "ensure_account_declarations",
    "get_all_accounts_from_rules",
    "ImportReport",
    "check_statements",
    "import_statements",
    "JournalError",
    "ensure_year_journal",
    "ensure_accounts_journal",
    "reconcile_statement",
    "reconcile_latest",
]
