"""Pipeline step and result models."""

from dataclasses import dataclass, field
from typing import Optional

# Step names in execution order
STEP_NAMES = (
    "worktree",
    "classify",
    "accounts",
    "dry_run",
    "import",
    "reconcile",
    "merge",
    "cleanup",
)


@dataclass
class StepResult:
    """Outcome of one pipeline step.

    Attributes:
        success: Whether the step succeeded.
        message: Human-readable summary.
        details: Structured, JSON-serializable details.
        skipped: True when the step was not run.
    """

    success: bool
    message: str = ""
    details: dict[str, object] = field(default_factory=dict)
    skipped: bool = False

    @classmethod
    def skip(cls, message: str) -> "StepResult":
        """Create a successful result for a step that did not run."""
        return cls(success=True, message=message, skipped=True)

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dict."""
        data: dict[str, object] = {"success": self.success, "message": self.message}
        if self.skipped:
            data["skipped"] = True
        if self.details:
            data["details"] = self.details
        return data


@dataclass
class PipelineResult:
    """Ordered record of a pipeline run.

    Steps are recorded as they complete; dict order is execution order.
    """

    success: bool = False
    steps: dict[str, StepResult] = field(default_factory=dict)
    worktree_id: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None
    hint: Optional[str] = None

    def record(self, name: str, step: StepResult) -> StepResult:
        """Record a step result and return it."""
        self.steps[name] = step
        return step

    def fail(self, error: str, hint: Optional[str] = None) -> "PipelineResult":
        """Mark the run as failed."""
        self.success = False
        self.error = error
        self.hint = hint
        return self

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dict."""
        data: dict[str, object] = {
            "success": self.success,
            "steps": {name: step.to_dict() for name, step in self.steps.items()},
        }
        for key in ("worktree_id", "summary", "error", "hint"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data
