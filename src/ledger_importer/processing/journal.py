"""Year journals and include directives of the main journal."""

from pathlib import Path

from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

MAIN_JOURNAL = ".hledger.journal"
LEDGER_DIR = "ledger"
ACCOUNTS_JOURNAL = "accounts.journal"


class JournalError(Exception):
    """Raised when a required journal file is missing."""

    pass


def main_journal_path(directory: Path) -> Path:
    """Path of the root journal of a ledger checkout."""
    return directory / MAIN_JOURNAL


def has_include(content: str, directive: str) -> bool:
    """Check for an active (uncommented) include directive.

    Commented-out includes do not count, so a new active one is still added.
    """
    for line in content.splitlines():
        stripped = line.strip()
        if stripped == directive or stripped.startswith(directive + " "):
            return True
    return False


def ensure_include(directory: Path, relative_path: str) -> bool:
    """Append ``include <relative_path>`` to the main journal unless present.

    Args:
        directory: Ledger checkout root.
        relative_path: Journal path relative to the root, e.g. "ledger/2026.journal".

    Returns:
        True if the directive was added.

    Raises:
        JournalError: If the main journal does not exist.
    """
    main_journal = main_journal_path(directory)
    if not main_journal.exists():
        raise JournalError(
            f"{MAIN_JOURNAL} not found at {main_journal}. "
            "Create it first with appropriate includes."
        )

    directive = f"include {relative_path}"
    content = main_journal.read_text(encoding="utf-8")
    if has_include(content, directive):
        return False

    main_journal.write_text(content.rstrip() + "\n" + directive + "\n", encoding="utf-8")
    logger.info(f"Added '{directive}' to {MAIN_JOURNAL}")
    return True


def ensure_year_journal(directory: Path, year: int) -> Path:
    """Create ``ledger/<year>.journal`` if needed and include it once.

    Args:
        directory: Ledger checkout root.
        year: Transaction year.

    Returns:
        Path of the year journal.

    Raises:
        JournalError: If the main journal does not exist.
    """
    ledger_dir = directory / LEDGER_DIR
    ledger_dir.mkdir(parents=True, exist_ok=True)

    year_journal = ledger_dir / f"{year}.journal"
    if not year_journal.exists():
        year_journal.write_text(f"; {year} transactions\n", encoding="utf-8")
        logger.info(f"Created {year_journal}")

    ensure_include(directory, f"{LEDGER_DIR}/{year}.journal")
    return year_journal


def ensure_accounts_journal(directory: Path) -> Path:
    """Create ``ledger/accounts.journal`` if needed and include it once."""
    ledger_dir = directory / LEDGER_DIR
    ledger_dir.mkdir(parents=True, exist_ok=True)

    accounts_journal = ledger_dir / ACCOUNTS_JOURNAL
    if not accounts_journal.exists():
        accounts_journal.write_text("; account declarations\n", encoding="utf-8")

    ensure_include(directory, f"{LEDGER_DIR}/{ACCOUNTS_JOURNAL}")
    return accounts_journal
