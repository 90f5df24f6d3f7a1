"""Execution of hledger commands.

Everything that talks to hledger goes through a ``LedgerExecutor``: a
callable taking an argument vector and returning a LedgerResult. The
default implementation runs the ``hledger`` binary; tests substitute a
fake that returns recorded output.
"""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from ledger_importer.models.ledger import LedgerResult
from ledger_importer.parsers.ledger_output import parse_balance_output, parse_last_register_date
from ledger_importer.utils.date_utils import next_day
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

LedgerExecutor = Callable[[list[str]], LedgerResult]


class SubprocessLedgerExecutor:
    """Runs hledger as a blocking subprocess.

    No timeout is applied; a hung hledger process blocks the caller.
    """

    def __init__(self, binary: str = "hledger", cwd: Optional[Path] = None):
        """Initialize the executor.

        Args:
            binary: hledger executable name or path.
            cwd: Working directory for the process.
        """
        self.binary = binary
        self.cwd = cwd

    def __call__(self, args: list[str]) -> LedgerResult:
        logger.debug(f"Running {self.binary} {' '.join(args)}")
        try:
            completed = subprocess.run(
                [self.binary, *args],
                capture_output=True,
                text=True,
                cwd=self.cwd,
                check=False,
            )
        except OSError as e:
            return LedgerResult(stdout="", stderr=str(e), exit_code=1)

        return LedgerResult(
            stdout=completed.stdout,
            stderr=completed.stderr,
            exit_code=completed.returncode,
        )


@dataclass
class ValidationResult:
    """Outcome of post-import ledger validation."""

    valid: bool = True
    errors: list[str] = field(default_factory=list)


def _error_text(result: LedgerResult) -> str:
    return result.stderr.strip() or result.stdout.strip()


def preview_statement(executor: LedgerExecutor, csv_path: Path, rules_path: Path) -> LedgerResult:
    """Print the transactions a statement would produce, without importing."""
    return executor(["print", "-f", str(csv_path), "--rules-file", str(rules_path)])


def import_statement(
    executor: LedgerExecutor,
    journal_path: Path,
    csv_path: Path,
    rules_path: Path,
) -> LedgerResult:
    """Import a statement into a journal."""
    return executor(
        ["import", "-f", str(journal_path), str(csv_path), "--rules-file", str(rules_path)]
    )


def validate_ledger(executor: LedgerExecutor, main_journal: Path) -> ValidationResult:
    """Run ``check --strict`` and ``bal`` against the main journal.

    Args:
        executor: hledger executor.
        main_journal: Root journal file.

    Returns:
        ValidationResult collecting the error output of failed commands.
    """
    result = ValidationResult()

    check = executor(["check", "--strict", "-f", str(main_journal)])
    if not check.ok:
        result.errors.append(f"hledger check --strict failed: {_error_text(check)}")

    balance = executor(["bal", "-f", str(main_journal)])
    if not balance.ok:
        result.errors.append(f"hledger bal failed: {_error_text(balance)}")

    result.valid = not result.errors
    return result


def get_last_transaction_date(
    executor: LedgerExecutor,
    main_journal: Path,
    account: str,
) -> Optional[str]:
    """Date of the last transaction posted to an account, or None."""
    result = executor(["register", account, "-f", str(main_journal), "-O", "csv"])
    if not result.ok or not result.stdout.strip():
        return None
    return parse_last_register_date(result.stdout)


def get_account_balance(
    executor: LedgerExecutor,
    main_journal: Path,
    account: str,
    as_of: str,
) -> Optional[str]:
    """Balance of an account at the end of a day.

    Args:
        executor: hledger executor.
        main_journal: Root journal file.
        account: Account to query.
        as_of: Inclusive ISO date; queried with the following day as the
            exclusive end date.

    Returns:
        Balance text such as "CHF 2324.79", "0" for an empty account, or
        None if hledger fails.
    """
    result = executor(
        ["bal", account, "-f", str(main_journal), "-e", next_day(as_of), "-N", "--flat"]
    )
    if not result.ok:
        logger.warning(f"Balance query for {account} failed: {_error_text(result)}")
        return None
    return parse_balance_output(result.stdout)
