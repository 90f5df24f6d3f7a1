"""Data models for detection, ledger output, reconciliation and pipeline runs."""

from ledger_importer.models.detection import (
    ClassificationResult,
    ClassifiedFile,
    ClassifyReport,
    DetectionResult,
)
from ledger_importer.models.ledger import (
    UNKNOWN_ACCOUNTS,
    LedgerResult,
    LedgerTransaction,
    Posting,
    UnknownPosting,
)
from ledger_importer.models.pipeline import STEP_NAMES, PipelineResult, StepResult
from ledger_importer.models.reconciliation import ReconciliationOutcome
from ledger_importer.models.worktree import WorktreeContext

__all__ = [
    "DetectionResult",
    "ClassificationResult",
    "ClassifiedFile",
    "ClassifyReport",
    "LedgerResult",
    "LedgerTransaction",
    "Posting",
    "UnknownPosting",
    "UNKNOWN_ACCOUNTS",
    "StepResult",
    "PipelineResult",
    "STEP_NAMES",
    "ReconciliationOutcome",
    "WorktreeContext",
]
