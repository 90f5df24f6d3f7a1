"""Reconciliation of imported statements against their closing balance.

The expected balance comes from the statement (metadata extracted during
detection) or a manual override. The actual balance is what hledger
reports for the statement's account at the end of its last transaction
day. Currencies must agree; they are never converted.
"""

from pathlib import Path
from typing import Optional

from ledger_importer.config import ImportConfig
from ledger_importer.ledger.executor import (
    LedgerExecutor,
    get_account_balance,
    get_last_transaction_date,
)
from ledger_importer.models.reconciliation import ReconciliationOutcome
from ledger_importer.parsers.base import ParseError
from ledger_importer.parsers.detector import detect_file
from ledger_importer.parsers.rules_parser import parse_account1
from ledger_importer.processing.journal import main_journal_path
from ledger_importer.processing.rules_matcher import find_rules_for_csv, load_rules_mapping
from ledger_importer.utils.balance_utils import (
    CurrencyMismatchError,
    balances_match,
    calculate_difference,
)
from ledger_importer.utils.file_utils import find_csv_files
from ledger_importer.utils.logging_config import LogContext, get_logger

logger = get_logger(__name__)


def metadata_value(metadata: dict[str, str], key: str) -> Optional[str]:
    """Look up a metadata field written either as ``closing_balance`` or ``closing-balance``."""
    for candidate in (key, key.replace("_", "-"), key.replace("-", "_")):
        value = metadata.get(candidate)
        if value:
            return value
    return None


def statement_metadata(csv_path: Path, config: ImportConfig) -> dict[str, str]:
    """Re-detect a statement to recover its metadata; empty if undetectable."""
    try:
        detection = detect_file(csv_path, config.providers)
    except ParseError as e:
        logger.warning(f"Cannot read metadata from {csv_path.name}: {e}")
        return {}
    return dict(detection.metadata) if detection else {}


def expected_balance(metadata: dict[str, str], override: Optional[str] = None) -> Optional[str]:
    """Closing balance to reconcile against, prefixed with the currency if missing."""
    if override:
        return override

    balance = metadata_value(metadata, "closing_balance")
    if not balance:
        return None

    currency = metadata_value(metadata, "currency")
    if currency and currency.upper() not in balance.upper():
        balance = f"{currency.upper()} {balance}"
    return balance


def account_for_statement(csv_path: Path, config: ImportConfig, base_dir: Path) -> Optional[str]:
    """The ``account1`` of the rules file matching a statement."""
    rules_file = find_rules_for_csv(csv_path, load_rules_mapping(config.paths.resolve(base_dir).rules))
    if rules_file is None:
        return None
    return parse_account1(Path(rules_file).read_text(encoding="utf-8"))


def reconcile_statement(
    base_dir: Path,
    config: ImportConfig,
    executor: LedgerExecutor,
    csv_path: Path,
    closing_balance: Optional[str] = None,
    account: Optional[str] = None,
    metadata: Optional[dict[str, str]] = None,
    as_of: Optional[str] = None,
) -> ReconciliationOutcome:
    """Compare a statement's closing balance with the ledger.

    Args:
        base_dir: Checkout root.
        config: Import configuration.
        executor: hledger executor.
        csv_path: Imported statement.
        closing_balance: Manual closing balance override.
        account: Manual account override.
        metadata: Statement metadata; re-detected from the file if None.
        as_of: Date to take the balance at (default: the account's last
            transaction date).

    Returns:
        ReconciliationOutcome; ``success`` is False on mismatch or when
        a required value cannot be determined.
    """
    outcome = ReconciliationOutcome(success=False, csv_file=_relative(csv_path, base_dir))

    with LogContext(logger, "reconcile", csv_file=outcome.csv_file, account=account):
        if metadata is None:
            metadata = statement_metadata(csv_path, config)
        outcome.metadata = dict(metadata)

        outcome.expected_balance = expected_balance(metadata, closing_balance)
        if not outcome.expected_balance:
            return _fail(
                outcome,
                "No closing balance found in CSV metadata",
                "Provide the closing balance manually",
            )

        outcome.account = account or account_for_statement(csv_path, config, base_dir)
        if not outcome.account:
            return _fail(
                outcome,
                "Could not determine account from rules file",
                "Provide the account manually or add an account1 directive to the rules file",
            )

        journal = main_journal_path(base_dir)
        outcome.last_transaction_date = as_of or get_last_transaction_date(
            executor, journal, outcome.account
        )
        if not outcome.last_transaction_date:
            return _fail(
                outcome, "No transactions found for account", "Ensure import completed successfully"
            )

        outcome.actual_balance = get_account_balance(
            executor, journal, outcome.account, outcome.last_transaction_date
        )
        if outcome.actual_balance is None:
            return _fail(outcome, "Failed to query account balance from hledger")

        try:
            matched = balances_match(outcome.expected_balance, outcome.actual_balance)
            if matched:
                outcome.success = True
                logger.info(f"{outcome.account} reconciled at {outcome.actual_balance}")
                return outcome
            outcome.difference = calculate_difference(
                outcome.expected_balance, outcome.actual_balance
            )
        except CurrencyMismatchError as e:
            return _fail(outcome, f"Cannot compare balances: {e}")
        except ValueError as e:
            return _fail(outcome, f"Cannot parse balances for comparison: {e}")

        return _fail(
            outcome,
            f"Balance mismatch: expected {outcome.expected_balance}, "
            f"got {outcome.actual_balance} (difference: {outcome.difference})",
            "Check for missing transactions, duplicate imports, or incorrect rules",
        )


def reconcile_latest(
    base_dir: Path,
    config: ImportConfig,
    executor: LedgerExecutor,
    provider: Optional[str] = None,
    currency: Optional[str] = None,
    closing_balance: Optional[str] = None,
    account: Optional[str] = None,
) -> ReconciliationOutcome:
    """Reconcile the most recent statement in the done tree."""
    csv_files = find_csv_files(config.paths.resolve(base_dir).done, provider, currency)
    if not csv_files:
        return ReconciliationOutcome(
            success=False,
            error="No CSV files found in done directory to reconcile",
            hint="Import statements first",
        )
    return reconcile_statement(
        base_dir,
        config,
        executor,
        csv_files[-1],
        closing_balance=closing_balance,
        account=account,
    )


def _relative(path: Path, base_dir: Path) -> str:
    try:
        return str(path.relative_to(base_dir))
    except ValueError:
        return str(path)


def _fail(outcome: ReconciliationOutcome, error: str, hint: Optional[str] = None) -> ReconciliationOutcome:
    logger.warning(f"Reconciliation failed for {outcome.csv_file}: {error}")
    outcome.success = False
    outcome.error = error
    outcome.hint = hint
    return outcome
