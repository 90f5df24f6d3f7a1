"""Atomic import pipeline.

One run imports every pending statement inside a throwaway git worktree:

    worktree -> classify -> accounts -> dry_run -> import -> reconcile -> merge -> cleanup

The origin checkout only changes at the merge step, and only when every
earlier step succeeded. The worktree is removed on every outcome unless
the caller asks to keep it for inspection.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ledger_importer.config import ConfigError, ImportConfig, load_import_config
from ledger_importer.ledger.executor import LedgerExecutor, SubprocessLedgerExecutor
from ledger_importer.models.pipeline import PipelineResult, StepResult
from ledger_importer.models.reconciliation import ReconciliationOutcome
from ledger_importer.models.worktree import WorktreeContext
from ledger_importer.parsers.rules_parser import parse_account1
from ledger_importer.processing.account_declarations import (
    ensure_account_declarations,
    get_all_accounts_from_rules,
)
from ledger_importer.processing.ai.suggester import AccountSuggester
from ledger_importer.processing.classifier import classify_statements
from ledger_importer.processing.importer import (
    FileResult,
    ImportReport,
    PostingSuggester,
    check_statements,
    import_statements,
)
from ledger_importer.processing.journal import JournalError, ensure_accounts_journal
from ledger_importer.processing.reconciler import metadata_value, reconcile_statement
from ledger_importer.processing.rules_matcher import find_rules_for_csv, load_rules_mapping
from ledger_importer.utils.file_utils import find_csv_files, remove_files, sync_csv_files
from ledger_importer.utils.logging_config import LogContext, get_logger
from ledger_importer.vcs.worktree import WorktreeError, WorktreeManager

logger = get_logger(__name__)

ConfigLoader = Callable[[Path], ImportConfig]


@dataclass
class PipelineOptions:
    """Options for one pipeline run.

    Attributes:
        provider: Only import this provider's statements.
        currency: Only import this currency (requires provider).
        closing_balance: Manual closing balance for reconciliation.
        account: Manual account for reconciliation.
        skip_classify: Do not classify the import directory.
        preserve_worktree: Keep the worktree after the run.
        suggest: Attach account suggestions to unknown postings.
    """

    provider: Optional[str] = None
    currency: Optional[str] = None
    closing_balance: Optional[str] = None
    account: Optional[str] = None
    skip_classify: bool = False
    preserve_worktree: bool = False
    suggest: bool = False


class StepFailed(Exception):
    """Raised inside a run to stop at a failed step."""

    def __init__(self, error: str, hint: Optional[str] = None):
        self.error = error
        self.hint = hint
        super().__init__(error)


def build_commit_message(
    provider: Optional[str],
    currency: Optional[str],
    from_date: Optional[str],
    until_date: Optional[str],
    transaction_count: int,
) -> str:
    """Build the merge commit message for an import batch.

    Example: ``Import: UBS CHF 2026-01-01 to 2026-01-31 (42 transactions)``
    """
    message = f"Import: {provider.upper() if provider else 'statements'} {(currency or '').upper()}"
    if from_date and until_date:
        message += f" {from_date} to {until_date}"
    if transaction_count > 0:
        message += f" ({transaction_count} transactions)"
    return " ".join(message.split())


class ImportPipeline:
    """Runs the import steps for one ledger repository."""

    def __init__(
        self,
        directory: Path,
        config_loader: ConfigLoader = load_import_config,
        executor: Optional[LedgerExecutor] = None,
        worktree_manager: Optional[WorktreeManager] = None,
        suggester: Optional[PostingSuggester] = None,
    ):
        """Initialize the pipeline.

        Args:
            directory: Origin repository root.
            config_loader: Loads the import configuration from a directory.
            executor: hledger executor (default: the hledger binary).
            worktree_manager: Worktree manager (default: worktrees in the temp dir).
            suggester: Account suggester for unknown postings. When None and
                suggestions are requested, one is created per run.
        """
        self.directory = Path(directory).resolve()
        self.config_loader = config_loader
        self.executor = executor or SubprocessLedgerExecutor()
        self.worktree_manager = worktree_manager or WorktreeManager()
        self.suggester = suggester

    def run(self, options: Optional[PipelineOptions] = None) -> PipelineResult:
        """Run the pipeline.

        Returns:
            PipelineResult with one entry per executed step.
        """
        options = options or PipelineOptions()
        result = PipelineResult()

        try:
            config = self.config_loader(self.directory)
        except ConfigError as e:
            return result.fail(
                f"Configuration error: {e}",
                "Check config/import/providers.yaml",
            )
        except Exception as e:
            logger.exception("Configuration loading failed")
            return result.fail(f"Unexpected error: {e}", "Check config/import/providers.yaml")

        try:
            context = self.worktree_manager.create(self.directory)
        except WorktreeError as e:
            result.record("worktree", StepResult(success=False, message=str(e)))
            return result.fail(
                "Failed to create worktree",
                "Ensure the directory is a git repository with at least one commit",
            )

        result.worktree_id = context.uuid
        result.record(
            "worktree",
            StepResult(
                success=True,
                message=f"Created worktree at {context.path}",
                details={"path": str(context.path), "branch": context.branch},
            ),
        )

        with LogContext(logger, "import pipeline", worktree=context.uuid, provider=options.provider):
            try:
                self._run_steps(context, config, options, result)
            except StepFailed as e:
                result.fail(e.error, e.hint)
            except Exception as e:
                logger.exception("Pipeline aborted")
                result.fail(f"Unexpected error: {e}")
            finally:
                self._cleanup(context, options, result)

        return result

    def _run_steps(
        self,
        context: WorktreeContext,
        config: ImportConfig,
        options: PipelineOptions,
        result: PipelineResult,
    ) -> None:
        work_dir = context.path

        if options.skip_classify:
            result.record("classify", StepResult.skip("Classification skipped"))
            synced: list[str] = []
            statement_metadata: dict[str, dict[str, str]] = {}
        else:
            synced, statement_metadata = self._classify(work_dir, config, result)

        self._declare_accounts(work_dir, config, options, result)

        check = self._dry_run(work_dir, config, options, result)
        if check.summary.total_transactions == 0:
            for name in ("import", "reconcile", "merge"):
                result.record(name, StepResult.skip("No transactions to import"))
            result.success = True
            result.summary = "No transactions found to import"
            return

        imported = import_statements(work_dir, config, self.executor, check)
        result.record(
            "import",
            StepResult(
                success=imported.success,
                message=imported.message or imported.error or "",
                details={"imported": list(imported.imported)},
            ),
        )
        if not imported.success:
            raise StepFailed(imported.error or "Import failed", imported.hint)

        imported_files = [f for f in check.files if f.csv in imported.imported]
        self._reconcile(work_dir, config, options, imported_files, statement_metadata, result)

        provider, currency = self._batch_identity(work_dir, config, options, imported_files)
        from_date, until_date = self._batch_dates(imported_files, statement_metadata, check)
        message = build_commit_message(
            provider, currency, from_date, until_date, check.summary.total_transactions
        )
        try:
            self.worktree_manager.merge(context, message)
        except WorktreeError as e:
            result.record("merge", StepResult(success=False, message=str(e)))
            raise StepFailed("Merge to main branch failed", "Resolve the conflict and retry") from e

        origin_import = config.paths.resolve(self.directory).import_dir
        # Tracked incoming files are already gone after the merge
        removed = remove_files(origin_import, [n for n in synced if (origin_import / n).exists()])
        result.record(
            "merge",
            StepResult(
                success=True,
                message="Merged to main branch",
                details={"commit_message": message, "removed_incoming": removed.processed},
            ),
        )

        result.success = True
        result.summary = (
            f"Imported {check.summary.total_transactions} transaction(s) "
            f"from {len(imported_files)} file(s)"
        )

    def _classify(
        self, work_dir: Path, config: ImportConfig, result: PipelineResult
    ) -> tuple[list[str], dict[str, dict[str, str]]]:
        """Copy incoming files into the worktree and classify them there.

        A failed classification is recorded and the run continues with
        whatever is already pending.
        """
        origin_import = config.paths.resolve(self.directory).import_dir
        sync = sync_csv_files(origin_import, config.paths.resolve(work_dir).import_dir)

        report = classify_statements(work_dir, config)
        result.record(
            "classify",
            StepResult(
                success=report.success,
                message=report.error
                or f"Classified {len(report.classified)} file(s), {len(report.unrecognized)} unrecognized",
                details=report.to_dict(),
            ),
        )
        if not report.success:
            logger.warning(f"Classification failed, continuing with pending files: {report.error}")
            return [], {}

        metadata = {c.filename: dict(c.metadata) for c in report.classified}
        return sync.processed, metadata

    def _declare_accounts(
        self,
        work_dir: Path,
        config: ImportConfig,
        options: PipelineOptions,
        result: PipelineResult,
    ) -> None:
        paths = config.paths.resolve(work_dir)
        mapping = load_rules_mapping(paths.rules)
        rules_files = {
            Path(rules_file)
            for rules_file in (
                find_rules_for_csv(csv_path, mapping)
                for csv_path in find_csv_files(paths.pending, options.provider, options.currency)
            )
            if rules_file
        }

        accounts = get_all_accounts_from_rules(sorted(rules_files))
        if not accounts:
            result.record("accounts", StepResult(success=True, message="No accounts to declare"))
            return

        try:
            journal = ensure_accounts_journal(work_dir)
            declared = ensure_account_declarations(journal, accounts)
        except JournalError as e:
            result.record("accounts", StepResult(success=False, message=str(e)))
            raise StepFailed(
                f"Account declaration failed: {e}",
                "Create .hledger.journal at the repository root",
            ) from e

        result.record(
            "accounts",
            StepResult(
                success=True,
                message=f"Declared {len(declared.added)} new account(s)",
                details={"added": declared.added, "rules_files": len(rules_files)},
            ),
        )

    def _dry_run(
        self,
        work_dir: Path,
        config: ImportConfig,
        options: PipelineOptions,
        result: PipelineResult,
    ) -> ImportReport:
        suggester = self.suggester
        if suggester is None and options.suggest:
            suggester = AccountSuggester.create(work_dir, config.suggestions)

        check = check_statements(
            work_dir, config, self.executor, options.provider, options.currency, suggester
        )
        result.record(
            "dry_run",
            StepResult(success=check.success, message=check.message or "", details=check.to_dict()),
        )

        if not check.success:
            if check.has_unknowns:
                hint = "Add rules to categorize unknown transactions, then retry"
            else:
                hint = "Fix the file errors listed in the dry run, then retry"
            raise StepFailed("Dry run found unknown accounts or errors", hint)
        return check

    def _reconcile(
        self,
        work_dir: Path,
        config: ImportConfig,
        options: PipelineOptions,
        imported_files: list[FileResult],
        statement_metadata: dict[str, dict[str, str]],
        result: PipelineResult,
    ) -> None:
        """Reconcile the latest imported statement of each account."""
        paths = config.paths.resolve(work_dir)
        latest: dict[str, FileResult] = {}
        for file_result in imported_files:
            account = options.account or _rules_account(file_result) or file_result.csv
            current = latest.get(account)
            if current is None or (file_result.last_date or "") >= (current.last_date or ""):
                latest[account] = file_result

        if options.closing_balance and len(latest) > 1:
            result.record(
                "reconcile",
                StepResult(success=False, message="Closing balance given for several accounts"),
            )
            raise StepFailed(
                "A manual closing balance needs a single account per run",
                "Import one provider and currency at a time",
            )

        outcomes: list[ReconciliationOutcome] = []
        for account, file_result in latest.items():
            done_path = paths.done / file_result.csv_path.relative_to(paths.pending)
            outcomes.append(
                reconcile_statement(
                    work_dir,
                    config,
                    self.executor,
                    done_path,
                    closing_balance=options.closing_balance,
                    account=options.account or _rules_account(file_result),
                    metadata=statement_metadata.get(file_result.csv_path.name),
                    as_of=file_result.last_date,
                )
            )

        failed = [o for o in outcomes if not o.success]
        result.record(
            "reconcile",
            StepResult(
                success=not failed,
                message=(
                    f"Reconciled {len(outcomes)} account(s)"
                    if not failed
                    else failed[0].error or "Balance reconciliation failed"
                ),
                details={"outcomes": [o.to_dict() for o in outcomes]},
            ),
        )
        if failed:
            raise StepFailed(
                failed[0].error or "Balance reconciliation failed",
                failed[0].hint,
            )

    def _batch_identity(
        self,
        work_dir: Path,
        config: ImportConfig,
        options: PipelineOptions,
        imported_files: list[FileResult],
    ) -> tuple[Optional[str], Optional[str]]:
        """Provider and currency for the commit message, when unambiguous."""
        pending = config.paths.resolve(work_dir).pending
        providers = set()
        currencies = set()
        for file_result in imported_files:
            parts = file_result.csv_path.relative_to(pending).parts
            if len(parts) >= 3:
                providers.add(parts[0])
                currencies.add(parts[1])

        provider = options.provider or (providers.pop() if len(providers) == 1 else None)
        currency = options.currency or (currencies.pop() if len(currencies) == 1 else None)
        return provider, currency

    def _batch_dates(
        self,
        imported_files: list[FileResult],
        statement_metadata: dict[str, dict[str, str]],
        check: ImportReport,
    ) -> tuple[Optional[str], Optional[str]]:
        """Statement period from metadata, else the transaction date range."""
        froms = []
        untils = []
        for file_result in imported_files:
            metadata = statement_metadata.get(file_result.csv_path.name, {})
            from_date = metadata_value(metadata, "from_date")
            until_date = metadata_value(metadata, "until_date")
            if from_date and until_date:
                froms.append(from_date)
                untils.append(until_date)

        if froms and len(froms) == len(imported_files):
            return min(froms), max(untils)
        return check.date_range

    def _cleanup(self, context: WorktreeContext, options: PipelineOptions, result: PipelineResult) -> None:
        if options.preserve_worktree:
            result.record("cleanup", StepResult.skip(f"Worktree preserved at {context.path}"))
            return

        removal = self.worktree_manager.remove(context, force=True)
        if removal.success:
            message = "Worktree cleaned up" if result.success else "Worktree cleaned up after failure"
            result.record("cleanup", StepResult(success=True, message=message))
        else:
            logger.error(f"Cleanup failed for {context.path}: {removal.error}")
            result.record(
                "cleanup",
                StepResult(success=False, message=removal.error or "Failed to remove worktree"),
            )


def _rules_account(file_result: FileResult) -> Optional[str]:
    if file_result.rules_path is None or not file_result.rules_path.exists():
        return None
    return parse_account1(file_result.rules_path.read_text(encoding="utf-8"))

