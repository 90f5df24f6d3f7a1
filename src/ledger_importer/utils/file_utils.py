"""Filesystem helpers for statement discovery and workspace syncing."""

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

CSV_SUFFIX = ".csv"


@dataclass
class FileSyncResult:
    """Outcome of copying or deleting a batch of files.

    Attributes:
        processed: Names of files handled successfully.
        errors: Mapping of file name to error message.
    """

    processed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


def ensure_directory(path: Path) -> Path:
    """Create a directory (and parents) if it does not exist."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def list_csv_files(directory: Path) -> list[Path]:
    """List the CSV files directly inside a directory.

    Args:
        directory: Directory to scan (not recursed).

    Returns:
        Sorted list of regular CSV files; empty if the directory is missing.
    """
    if not directory.is_dir():
        return []

    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() == CSV_SUFFIX
    )


def find_csv_files(
    base_dir: Path,
    provider: Optional[str] = None,
    currency: Optional[str] = None,
) -> list[Path]:
    """Recursively find CSV files under a provider/currency tree.

    Symlinked directories are not followed.

    Args:
        base_dir: Root of the tree, e.g. the pending directory.
        provider: Restrict to ``base_dir/<provider>``.
        currency: Restrict further to ``base_dir/<provider>/<currency>``.

    Returns:
        Sorted list of CSV file paths.
    """
    search_dir = base_dir
    if provider:
        search_dir = search_dir / provider
        if currency:
            search_dir = search_dir / currency

    if not search_dir.is_dir():
        return []

    found: list[Path] = []
    pending = [search_dir]
    while pending:
        current = pending.pop()
        for entry in current.iterdir():
            if entry.is_symlink() and entry.is_dir():
                logger.debug(f"Skipping symlinked directory: {entry}")
                continue
            if entry.is_dir():
                pending.append(entry)
            elif entry.is_file() and entry.suffix.lower() == CSV_SUFFIX:
                found.append(entry)

    return sorted(found)


def sync_csv_files(source_dir: Path, target_dir: Path) -> FileSyncResult:
    """Copy top-level CSV files from one directory into another.

    Args:
        source_dir: Directory holding incoming CSV files.
        target_dir: Destination directory, created if needed.

    Returns:
        FileSyncResult listing copied files and per-file errors.
    """
    result = FileSyncResult()
    csv_files = list_csv_files(source_dir)
    if not csv_files:
        return result

    ensure_directory(target_dir)
    for source in csv_files:
        try:
            shutil.copy2(source, target_dir / source.name)
            result.processed.append(source.name)
        except OSError as e:
            logger.warning(f"Failed to copy {source.name}: {e}")
            result.errors[source.name] = str(e)

    return result


def remove_files(directory: Path, names: list[str]) -> FileSyncResult:
    """Delete the named files from a directory, collecting errors."""
    result = FileSyncResult()
    for name in names:
        try:
            (directory / name).unlink()
            result.processed.append(name)
        except OSError as e:
            logger.warning(f"Failed to delete {name}: {e}")
            result.errors[name] = str(e)
    return result
