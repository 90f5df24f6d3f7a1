"""Detection and classification result models."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ledger_importer.config import DetectionRule


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of fingerprinting a single CSV file.

    Attributes:
        provider: Name of the matched provider.
        currency: Normalized currency code.
        rule: The detection rule that matched.
        metadata: Values extracted from the rows preceding the header.
        output_filename: Renamed filename, or None to keep the original name.
    """

    provider: str
    currency: str
    rule: DetectionRule
    metadata: dict[str, str] = field(default_factory=dict)
    output_filename: Optional[str] = None


@dataclass(frozen=True)
class ClassificationResult:
    """Detection outcome for one file in a batch."""

    filename: str
    detected: Optional[DetectionResult] = None
    error: Optional[str] = None


@dataclass
class ClassifiedFile:
    """A file moved into the pending tree."""

    filename: str
    provider: str
    currency: str
    target_path: Path
    original_filename: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dict."""
        return {
            "filename": self.filename,
            "provider": self.provider,
            "currency": self.currency,
            "original_filename": self.original_filename,
            "target_path": str(self.target_path),
            "metadata": dict(self.metadata),
        }


@dataclass
class ClassifyReport:
    """Result of classifying the import directory.

    Attributes:
        success: False when a collision or I/O error aborted the batch.
        classified: Files moved to the pending tree.
        unrecognized: Files moved to the unrecognized directory.
        collisions: Destination paths that already existed.
        error: Error message when the batch was aborted.
    """

    success: bool = True
    classified: list[ClassifiedFile] = field(default_factory=list)
    unrecognized: list[str] = field(default_factory=list)
    collisions: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.classified) + len(self.unrecognized)

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dict."""
        return {
            "success": self.success,
            "classified": [c.to_dict() for c in self.classified],
            "unrecognized": list(self.unrecognized),
            "collisions": list(self.collisions),
            "error": self.error,
            "summary": {
                "total": self.total,
                "classified": len(self.classified),
                "unrecognized": len(self.unrecognized),
            },
        }
