"""Dry run and import of pending statements.

A dry run prints every pending statement through its rules file and
reports transaction counts and postings routed to an unknown account.
The import itself only runs on a clean dry run. It is batch-atomic: files
move from pending to done only after every file imported and the ledger
passed ``check --strict``; otherwise all files stay in pending.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

from ledger_importer.config import ImportConfig
from ledger_importer.ledger.executor import (
    LedgerExecutor,
    import_statement,
    preview_statement,
    validate_ledger,
)
from ledger_importer.models.ledger import UnknownPosting
from ledger_importer.parsers.ledger_output import parse_transactions, parse_unknown_postings
from ledger_importer.parsers.rules_parser import parse_rules
from ledger_importer.parsers.statement_rows import attach_statement_rows
from ledger_importer.processing.journal import JournalError, ensure_year_journal, main_journal_path
from ledger_importer.processing.rules_matcher import find_rules_for_csv, load_rules_mapping
from ledger_importer.utils.file_utils import ensure_directory, find_csv_files
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)


class PostingSuggester(Protocol):
    """Anything that can propose accounts for unknown postings."""

    def suggest_accounts(
        self, postings: list[UnknownPosting], rules_content: str
    ) -> list[UnknownPosting]: ...


@dataclass
class FileResult:
    """Dry-run outcome for one statement.

    Attributes:
        csv: Statement path relative to the checkout root.
        rules_file: Rules file path relative to the checkout root.
        total_transactions: Transactions hledger printed.
        matched_transactions: Transactions without an unknown posting.
        unknown_postings: Postings routed to an unknown account.
        transaction_year: The single year all transactions fall in.
        first_date: Earliest transaction date.
        last_date: Latest transaction date.
        error: Error message, if the file cannot be imported.
    """

    csv: str
    csv_path: Path
    rules_file: Optional[str] = None
    rules_path: Optional[Path] = None
    total_transactions: int = 0
    matched_transactions: int = 0
    unknown_postings: list[UnknownPosting] = field(default_factory=list)
    transaction_year: Optional[int] = None
    first_date: Optional[str] = None
    last_date: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dict."""
        data: dict[str, object] = {
            "csv": self.csv,
            "rules_file": self.rules_file,
            "total_transactions": self.total_transactions,
            "matched_transactions": self.matched_transactions,
            "unknown_postings": [p.to_dict() for p in self.unknown_postings],
        }
        if self.transaction_year is not None:
            data["transaction_year"] = self.transaction_year
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ImportSummary:
    """Totals across all processed statements."""

    files_processed: int = 0
    files_with_errors: int = 0
    files_without_rules: int = 0
    total_transactions: int = 0
    matched: int = 0
    unknown: int = 0

    def to_dict(self) -> dict[str, int]:
        return dict(self.__dict__)


@dataclass
class ImportReport:
    """Outcome of a dry run or an import."""

    success: bool = True
    files: list[FileResult] = field(default_factory=list)
    summary: ImportSummary = field(default_factory=ImportSummary)
    imported: list[str] = field(default_factory=list)
    message: Optional[str] = None
    error: Optional[str] = None
    hint: Optional[str] = None

    @property
    def has_errors(self) -> bool:
        return self.summary.files_with_errors > 0 or self.summary.files_without_rules > 0

    @property
    def has_unknowns(self) -> bool:
        return self.summary.unknown > 0

    @property
    def date_range(self) -> tuple[Optional[str], Optional[str]]:
        """Earliest and latest transaction dates across all files."""
        firsts = [f.first_date for f in self.files if f.first_date]
        lasts = [f.last_date for f in self.files if f.last_date]
        return (min(firsts) if firsts else None, max(lasts) if lasts else None)

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dict."""
        data: dict[str, object] = {
            "success": self.success,
            "files": [f.to_dict() for f in self.files],
            "summary": self.summary.to_dict(),
        }
        if self.imported:
            data["imported"] = list(self.imported)
        for key in ("message", "error", "hint"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


def _relative(path: Path, base_dir: Path) -> str:
    try:
        return str(path.relative_to(base_dir))
    except ValueError:
        return str(path)


def _check_file(
    base_dir: Path,
    csv_path: Path,
    rules_mapping: dict[str, str],
    executor: LedgerExecutor,
    suggester: Optional[PostingSuggester],
) -> FileResult:
    result = FileResult(csv=_relative(csv_path, base_dir), csv_path=csv_path)

    rules_file = find_rules_for_csv(csv_path, rules_mapping)
    if rules_file is None:
        result.error = "No matching rules file found"
        return result

    result.rules_path = Path(rules_file)
    result.rules_file = _relative(result.rules_path, base_dir.resolve())

    output = preview_statement(executor, csv_path, result.rules_path)
    if not output.ok:
        result.error = f"hledger error: {output.stderr.strip() or 'Unknown error'}"
        return result

    transactions = parse_transactions(output.stdout)
    unknown = parse_unknown_postings(output.stdout)
    result.total_transactions = len(transactions)
    result.matched_transactions = sum(
        1 for t in transactions if not any(p.is_unknown for p in t.postings)
    )

    years = sorted({t.year for t in transactions})
    if len(years) > 1:
        result.error = (
            f"CSV contains transactions from multiple years ({', '.join(map(str, years))}). "
            "Split the CSV by year before importing."
        )
        return result

    if transactions:
        dates = sorted(t.date for t in transactions)
        result.transaction_year = years[0]
        result.first_date, result.last_date = dates[0], dates[-1]

    if unknown:
        rules_content = result.rules_path.read_text(encoding="utf-8")
        attach_statement_rows(unknown, csv_path, parse_rules(rules_content))
        if suggester is not None:
            unknown = suggester.suggest_accounts(unknown, rules_content)
    result.unknown_postings = unknown

    return result


def check_statements(
    base_dir: Path,
    config: ImportConfig,
    executor: LedgerExecutor,
    provider: Optional[str] = None,
    currency: Optional[str] = None,
    suggester: Optional[PostingSuggester] = None,
) -> ImportReport:
    """Dry-run every pending statement.

    Args:
        base_dir: Checkout root.
        config: Import configuration.
        executor: hledger executor.
        provider: Only process this provider's statements.
        currency: Only process this currency (requires provider).
        suggester: Optional account suggester for unknown postings.

    Returns:
        ImportReport; ``success`` is False on unknown postings or file errors.
    """
    paths = config.paths.resolve(base_dir)
    rules_mapping = load_rules_mapping(paths.rules)
    csv_files = find_csv_files(paths.pending, provider, currency)

    report = ImportReport()
    if not csv_files:
        report.message = "No CSV files found to process"
        return report

    for csv_path in csv_files:
        file_result = _check_file(base_dir, csv_path, rules_mapping, executor, suggester)
        report.files.append(file_result)

        if file_result.error:
            if file_result.rules_path is None:
                report.summary.files_without_rules += 1
            else:
                report.summary.files_with_errors += 1
            logger.warning(f"{file_result.csv}: {file_result.error}")
            continue

        report.summary.total_transactions += file_result.total_transactions
        report.summary.matched += file_result.matched_transactions
        report.summary.unknown += len(file_result.unknown_postings)

    report.summary.files_processed = len(csv_files)
    report.success = not report.has_unknowns and not report.has_errors

    if report.has_unknowns:
        report.message = (
            f"Found {report.summary.unknown} transaction(s) with unknown accounts. "
            "Add rules to categorize them."
        )
    elif report.has_errors:
        report.message = "Some files had errors. Check the file results for details."
    else:
        report.message = "All transactions matched."

    return report


def _plan_done_moves(base_dir: Path, config: ImportConfig, files: list[FileResult]) -> list[tuple[Path, Path]]:
    paths = config.paths.resolve(base_dir)
    return [
        (f.csv_path, paths.done / f.csv_path.relative_to(paths.pending))
        for f in files
    ]


def import_statements(
    base_dir: Path,
    config: ImportConfig,
    executor: LedgerExecutor,
    check_report: ImportReport,
) -> ImportReport:
    """Import the statements of a clean dry run and move them to done.

    Args:
        base_dir: Checkout root.
        config: Import configuration.
        executor: hledger executor.
        check_report: Result of check_statements for the same files.

    Returns:
        ImportReport listing the imported files. On any failure nothing is
        moved to done.
    """
    report = ImportReport(files=check_report.files, summary=check_report.summary)

    if check_report.has_unknowns or check_report.has_errors:
        return _failed(
            report,
            "Cannot import: some transactions have unknown accounts or files have errors",
            "Run a dry run to see details, then add missing rules",
        )

    to_import = [f for f in check_report.files if f.total_transactions > 0]
    moves = _plan_done_moves(base_dir, config, to_import)
    existing = [str(target) for _, target in moves if target.exists()]
    if existing:
        return _failed(report, f"Already imported: {', '.join(existing)}")

    for file_result in to_import:
        if file_result.rules_path is None or file_result.transaction_year is None:
            return _failed(report, f"No transactions found in {file_result.csv}")
        try:
            journal = ensure_year_journal(base_dir, file_result.transaction_year)
        except JournalError as e:
            return _failed(report, str(e))

        output = import_statement(executor, journal, file_result.csv_path, file_result.rules_path)
        if not output.ok:
            return _failed(report, f"Import failed for {file_result.csv}: {output.stderr.strip()}")
        report.imported.append(file_result.csv)
        logger.info(f"Imported {file_result.csv} into {journal.name}")

    validation = validate_ledger(executor, main_journal_path(base_dir))
    if not validation.valid:
        return _failed(
            report,
            "Ledger validation failed after import: " + "; ".join(validation.errors),
            "Statements were left in pending. Fix the journal or rules and retry.",
        )

    for source, target in moves:
        ensure_directory(target.parent)
        source.rename(target)

    report.success = True
    report.message = f"Imported {len(report.imported)} file(s)"
    return report


def _failed(report: ImportReport, error: str, hint: Optional[str] = None) -> ImportReport:
    logger.error(error)
    report.success = False
    report.error = error
    report.hint = hint
    return report
