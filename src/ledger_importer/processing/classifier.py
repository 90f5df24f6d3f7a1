"""Classification of incoming statements into the pending tree.

Classification is all-or-nothing with respect to collisions: every move
is planned first, and if any destination already exists (or two files
would land on the same destination) no file is moved at all.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ledger_importer.config import ImportConfig
from ledger_importer.models.detection import ClassifiedFile, ClassifyReport, DetectionResult
from ledger_importer.parsers.base import ParseError
from ledger_importer.parsers.detector import detect_file
from ledger_importer.utils.file_utils import ensure_directory, list_csv_files
from ledger_importer.utils.logging_config import LogContext, get_logger

logger = get_logger(__name__)


@dataclass
class PlannedMove:
    """A move computed before anything touches the filesystem."""

    source: Path
    target: Path
    detection: Optional[DetectionResult]


def plan_moves(base_dir: Path, config: ImportConfig) -> list[PlannedMove]:
    """Detect every CSV in the import directory and compute its destination.

    A file whose leading rows cannot be parsed counts as undetected and is
    routed to the unrecognized directory with the rest.
    """
    paths = config.paths.resolve(base_dir)
    moves: list[PlannedMove] = []

    for source in list_csv_files(paths.import_dir):
        try:
            detection = detect_file(source, config.providers)
        except ParseError as e:
            logger.warning(f"{source.name}: detection failed: {e}")
            detection = None

        if detection is None:
            target = paths.unrecognized / source.name
            logger.info(f"{source.name}: no provider matched")
        else:
            filename = detection.output_filename or source.name
            target = paths.pending / detection.provider / detection.currency / filename
            logger.info(f"{source.name}: {detection.provider}/{detection.currency} -> {filename}")
        moves.append(PlannedMove(source=source, target=target, detection=detection))

    return moves


def find_collisions(moves: list[PlannedMove]) -> list[str]:
    """Destinations that exist already or are claimed by more than one file."""
    collisions: list[str] = []
    seen: set[Path] = set()
    for move in moves:
        if move.target.exists() or move.target in seen:
            collisions.append(str(move.target))
        seen.add(move.target)
    return collisions


def classify_statements(base_dir: Path, config: ImportConfig) -> ClassifyReport:
    """Move incoming statements to ``pending/<provider>/<currency>/``.

    Unrecognized files move to the unrecognized directory.

    Args:
        base_dir: Checkout root the configured paths are relative to.
        config: Import configuration.

    Returns:
        ClassifyReport. On collision, ``success`` is False, ``collisions``
        lists the offending destinations and nothing has been moved.
    """
    report = ClassifyReport()

    with LogContext(logger, "classify", directory=str(base_dir)):
        moves = plan_moves(base_dir, config)

        collisions = find_collisions(moves)
        if collisions:
            report.success = False
            report.collisions = collisions
            report.error = (
                f"Cannot classify: {len(collisions)} file(s) would overwrite existing files."
            )
            logger.error(report.error)
            return report

        for move in moves:
            ensure_directory(move.target.parent)
            move.source.rename(move.target)

            if move.detection is None:
                report.unrecognized.append(move.source.name)
                continue

            report.classified.append(
                ClassifiedFile(
                    filename=move.target.name,
                    provider=move.detection.provider,
                    currency=move.detection.currency,
                    target_path=move.target,
                    original_filename=(
                        move.source.name if move.target.name != move.source.name else None
                    ),
                    metadata=dict(move.detection.metadata),
                )
            )

    logger.info(
        f"Classified {len(report.classified)} files, {len(report.unrecognized)} unrecognized"
    )
    return report
