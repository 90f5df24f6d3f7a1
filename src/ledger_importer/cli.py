"""Command-line interface for the ledger importer."""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from rich.console import Console

from ledger_importer import __version__
from ledger_importer.config import CONFIG_FILE, ConfigError, load_import_config
from ledger_importer.ledger.executor import SubprocessLedgerExecutor
from ledger_importer.models.pipeline import PipelineResult
from ledger_importer.pipeline import ImportPipeline, PipelineOptions
from ledger_importer.processing.ai.suggester import AccountSuggester
from ledger_importer.processing.classifier import classify_statements
from ledger_importer.processing.importer import check_statements
from ledger_importer.processing.reconciler import reconcile_latest
from ledger_importer.utils.logging_config import get_logger, setup_logging
from ledger_importer.vcs.worktree import cleanup_stale_worktrees, get_main_repo_path, is_in_worktree

# Load environment variables from .env file (if it exists)
load_dotenv()

console = Console()
logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="ledger-importer",
        description="Import bank statement CSV files into an hledger journal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s classify
  %(prog)s check --provider ubs --currency chf
  %(prog)s pipeline --provider revolut --currency eur --closing-balance "EUR 1234.56"
  %(prog)s cleanup-worktrees --dry-run
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-d", "--directory",
        type=Path,
        default=Path.cwd(),
        help="Ledger repository root (default: current directory)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "classify",
        help="Move incoming statements into pending/<provider>/<currency>/",
    )

    check = subparsers.add_parser(
        "check",
        help="Dry-run pending statements and report unknown postings",
    )
    _add_filter_arguments(check)
    check.add_argument(
        "--suggest",
        action="store_true",
        help="Suggest accounts for unknown postings",
    )

    pipeline = subparsers.add_parser(
        "pipeline",
        help="Classify, import, reconcile and merge in an isolated worktree",
    )
    _add_filter_arguments(pipeline)
    _add_reconcile_arguments(pipeline)
    pipeline.add_argument(
        "--skip-classify",
        action="store_true",
        help="Do not classify the import directory first",
    )
    pipeline.add_argument(
        "--keep-worktree",
        action="store_true",
        help="Keep the worktree after the run for inspection",
    )
    pipeline.add_argument(
        "--suggest",
        action="store_true",
        help="Suggest accounts for unknown postings",
    )

    reconcile = subparsers.add_parser(
        "reconcile",
        help="Reconcile the latest imported statement (inside an import worktree)",
    )
    _add_filter_arguments(reconcile)
    _add_reconcile_arguments(reconcile)

    cleanup = subparsers.add_parser(
        "cleanup-worktrees",
        help="Remove import worktrees left behind by interrupted runs",
    )
    cleanup.add_argument(
        "--all",
        action="store_true",
        dest="remove_all",
        help="Remove all import worktrees regardless of age",
    )
    cleanup.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be removed",
    )
    cleanup.add_argument(
        "--older-than-hours",
        type=float,
        default=24.0,
        help="Minimum age in hours (default: 24)",
    )
    cleanup.add_argument(
        "--force",
        action="store_true",
        help="Remove worktrees with uncommitted changes",
    )

    subparsers.add_parser(
        "validate-config",
        help=f"Validate {CONFIG_FILE}",
    )

    return parser


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--provider", help="Only process this provider")
    parser.add_argument("--currency", help="Only process this currency (requires --provider)")


def _add_reconcile_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--closing-balance",
        help='Closing balance to reconcile against, e.g. "CHF 2324.79"',
    )
    parser.add_argument("--account", help="Account to reconcile (default: account1 of the rules file)")


def get_log_level(verbosity: int) -> str:
    """Convert verbosity count to log level.

    Args:
        verbosity: Number of -v flags.

    Returns:
        Log level string.
    """
    if verbosity >= 2:
        return "DEBUG"
    elif verbosity >= 1:
        return "INFO"
    else:
        return "WARNING"


def configure_logging(args: argparse.Namespace) -> None:
    """Set up logging from the repository's ``logging`` section.

    ``-v`` flags override the configured level and add console output. The
    log file path is relative to the repository root.
    """
    level = get_log_level(args.verbose)
    log_file = None
    try:
        settings = load_import_config(args.directory).logging
    except ConfigError:
        # The command reports the configuration error itself
        settings = None

    if settings is not None:
        log_file = str(args.directory / settings.file)
        if not args.verbose:
            level = settings.level

    setup_logging(level=level, log_file=log_file, console_output=args.verbose > 0)


def emit_json(data: dict[str, Any]) -> None:
    """Print a result as JSON on stdout."""
    console.print_json(json.dumps(data, default=str))


def display_pipeline_result(result: PipelineResult) -> None:
    """Print pipeline steps and outcome."""
    console.print("\n[bold]Import Pipeline[/bold]")
    for name, step in result.steps.items():
        if step.skipped:
            marker = "[dim]-[/dim]"
        elif step.success:
            marker = "[green]✓[/green]"
        else:
            marker = "[red]✗[/red]"
        console.print(f"  {marker} {name}: {step.message}")

    if result.success:
        console.print(f"\n[green]{result.summary}[/green]")
    else:
        console.print(f"\n[red]Error: {result.error}[/red]")
        if result.hint:
            console.print(f"[yellow]Hint: {result.hint}[/yellow]")


def _validate_filters(args: argparse.Namespace) -> str | None:
    if getattr(args, "currency", None) and not getattr(args, "provider", None):
        return "--currency requires --provider"
    return None


def run_classify(args: argparse.Namespace) -> int:
    """Classify incoming statements in place."""
    config = load_import_config(args.directory)
    report = classify_statements(args.directory, config)

    if args.json:
        emit_json(report.to_dict())
        return 0 if report.success else 1

    if not report.success:
        console.print(f"[red]Error: {report.error}[/red]")
        for collision in report.collisions:
            console.print(f"  - {collision}")
        return 1

    for classified in report.classified:
        console.print(
            f"[green]✓[/green] {classified.original_filename or classified.filename} -> "
            f"{classified.provider}/{classified.currency}/{classified.filename}"
        )
    for filename in report.unrecognized:
        console.print(f"[yellow]?[/yellow] {filename} (unrecognized)")
    console.print(f"\nClassified {len(report.classified)} of {report.total} file(s)")
    return 0


def run_check(args: argparse.Namespace) -> int:
    """Dry-run pending statements."""
    config = load_import_config(args.directory)
    suggester = AccountSuggester.create(args.directory, config.suggestions) if args.suggest else None
    report = check_statements(
        args.directory,
        config,
        SubprocessLedgerExecutor(cwd=args.directory),
        args.provider,
        args.currency,
        suggester,
    )

    if args.json:
        emit_json(report.to_dict())
        return 0 if report.success else 1

    for file_result in report.files:
        if file_result.error:
            console.print(f"[red]✗[/red] {file_result.csv}: {file_result.error}")
            continue
        console.print(
            f"[green]✓[/green] {file_result.csv}: {file_result.matched_transactions}/"
            f"{file_result.total_transactions} matched"
        )
        for posting in file_result.unknown_postings:
            line = f"    {posting.date} {posting.description} {posting.amount} -> {posting.account}"
            if posting.suggested_account:
                line += f" (suggested: {posting.suggested_account})"
            console.print(f"[yellow]{line}[/yellow]")

    if report.message:
        console.print(f"\n{report.message}")
    return 0 if report.success else 1


def run_pipeline(args: argparse.Namespace) -> int:
    """Run the full import pipeline."""
    if is_in_worktree(args.directory):
        console.print(
            "[red]Error: run the pipeline from the main repository "
            f"({get_main_repo_path(args.directory)}), not from a worktree[/red]"
        )
        return 1

    pipeline = ImportPipeline(args.directory, executor=SubprocessLedgerExecutor())
    result = pipeline.run(
        PipelineOptions(
            provider=args.provider,
            currency=args.currency,
            closing_balance=args.closing_balance,
            account=args.account,
            skip_classify=args.skip_classify,
            preserve_worktree=args.keep_worktree,
            suggest=args.suggest,
        )
    )

    if args.json:
        emit_json(result.to_dict())
    else:
        display_pipeline_result(result)
    return 0 if result.success else 1


def run_reconcile(args: argparse.Namespace) -> int:
    """Reconcile the latest statement inside an import worktree."""
    if not is_in_worktree(args.directory):
        console.print(
            "[red]Error: reconcile must be run inside an import worktree "
            "(use the pipeline command for the full workflow)[/red]"
        )
        return 1

    config = load_import_config(args.directory)
    outcome = reconcile_latest(
        args.directory,
        config,
        SubprocessLedgerExecutor(cwd=args.directory),
        provider=args.provider,
        currency=args.currency,
        closing_balance=args.closing_balance,
        account=args.account,
    )

    if args.json:
        emit_json(outcome.to_dict())
    elif outcome.success:
        console.print(
            f"[green]✓[/green] {outcome.account} balance {outcome.actual_balance} "
            f"matches as of {outcome.last_transaction_date}"
        )
    else:
        console.print(f"[red]Error: {outcome.error}[/red]")
        if outcome.hint:
            console.print(f"[yellow]Hint: {outcome.hint}[/yellow]")
    return 0 if outcome.success else 1


def run_cleanup(args: argparse.Namespace) -> int:
    """Remove stale import worktrees."""
    repo_path = get_main_repo_path(args.directory) or args.directory
    report = cleanup_stale_worktrees(
        repo_path,
        older_than_hours=args.older_than_hours,
        remove_all=args.remove_all,
        dry_run=args.dry_run,
        force=args.force,
    )

    if args.json:
        emit_json(report.to_dict())
        return 0 if not report.failed else 1

    for stale in report.found:
        console.print(f"  {stale.context.path} ({stale.context.branch}, {stale.age_hours:.1f}h)")
    for path, error in report.failed.items():
        console.print(f"[red]✗[/red] {path}: {error}")
    console.print(report.summary)
    return 0 if not report.failed else 1


def validate_config(args: argparse.Namespace) -> int:
    """Validate the import configuration.

    Returns:
        0 if valid, 1 if errors found.
    """
    console.print("[bold]Validating configuration...[/bold]\n")
    config = load_import_config(args.directory)

    console.print(f"[green]✓[/green] {args.directory / CONFIG_FILE}")
    console.print(f"  - {len(config.providers)} providers")
    for provider in config.providers:
        console.print(
            f"    {provider.name}: {len(provider.rules)} rule(s), "
            f"currencies {', '.join(sorted(set(provider.currencies.values()))) or '-'}"
        )

    rules_dir = config.paths.resolve(args.directory).rules
    if not rules_dir.is_dir():
        console.print(f"\n[yellow]Warning: rules directory not found: {rules_dir}[/yellow]")

    console.print("\n[green]Configuration is valid.[/green]")
    return 0


COMMANDS = {
    "classify": run_classify,
    "check": run_check,
    "pipeline": run_pipeline,
    "reconcile": run_reconcile,
    "cleanup-worktrees": run_cleanup,
    "validate-config": validate_config,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    filter_error = _validate_filters(args)
    if filter_error:
        console.print(f"[red]Error: {filter_error}[/red]")
        parser.print_usage()
        return 1

    if not args.directory.is_dir():
        console.print(f"[red]Error: Not a directory: {args.directory}[/red]")
        return 1
    args.directory = args.directory.resolve()
    configure_logging(args)

    try:
        return COMMANDS[args.command](args)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        console.print("Run validate-config to check the configuration.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
