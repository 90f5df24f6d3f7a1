"""Git worktree management for isolated imports.

Each import runs in its own worktree on a fresh ``import-<uuid>`` branch.
On success the branch is committed and merged into the origin checkout
with ``--no-ff`` so every import batch stays one merge commit in history;
on any outcome the worktree and its branch are removed.
"""

import subprocess
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ledger_importer.models.worktree import WorktreeContext
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

BRANCH_PREFIX = "import-"
WORKTREE_PREFIX = "import-worktree-"
DEFAULT_MAX_AGE_HOURS = 24.0


class GitError(Exception):
    """Raised when a git command fails."""

    def __init__(self, message: str, args: Optional[list[str]] = None):
        self.git_args = args or []
        super().__init__(message)


class WorktreeError(GitError):
    """Raised when a worktree cannot be created or merged."""

    pass


def run_git(args: list[str], cwd: Path) -> str:
    """Run a git command and return its stripped stdout.

    Args:
        args: Arguments after ``git``.
        cwd: Directory to run in.

    Returns:
        Command output.

    Raises:
        GitError: If git exits non-zero or cannot be started.
    """
    logger.debug(f"git {' '.join(args)} (in {cwd})")
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as e:
        raise GitError(f"Cannot run git: {e}", args) from e

    if completed.returncode != 0:
        message = completed.stderr.strip() or completed.stdout.strip() or f"git {args[0]} failed"
        raise GitError(message, args)
    return completed.stdout.strip()


def _try_git(args: list[str], cwd: Path) -> tuple[bool, str]:
    try:
        return True, run_git(args, cwd)
    except GitError as e:
        return False, str(e)


@dataclass
class RemovalResult:
    """Outcome of removing a worktree and its branch."""

    success: bool
    error: Optional[str] = None


@dataclass
class StaleWorktree:
    """An import worktree found during cleanup."""

    context: WorktreeContext
    age_hours: float

    def to_dict(self) -> dict[str, object]:
        return {
            "path": str(self.context.path),
            "branch": self.context.branch,
            "uuid": self.context.uuid,
            "age_hours": round(self.age_hours, 1),
        }


@dataclass
class CleanupReport:
    """Result of removing stale import worktrees."""

    found: list[StaleWorktree] = field(default_factory=list)
    removed: list[StaleWorktree] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    summary: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "found": [w.to_dict() for w in self.found],
            "removed": [w.to_dict() for w in self.removed],
            "failed": dict(self.failed),
            "summary": self.summary,
        }


class WorktreeManager:
    """Creates, merges and removes import worktrees."""

    def __init__(self, base_dir: Optional[Path] = None):
        """Initialize the manager.

        Args:
            base_dir: Directory that holds worktrees (default: system temp dir).
        """
        self.base_dir = Path(base_dir) if base_dir else Path(tempfile.gettempdir())

    def create(self, main_repo_path: Path) -> WorktreeContext:
        """Create a worktree on a new branch from the origin's HEAD.

        Raises:
            WorktreeError: If the path is not a git repository or git fails.
        """
        main_repo_path = Path(main_repo_path).resolve()
        ok, _ = _try_git(["rev-parse", "--git-dir"], main_repo_path)
        if not ok:
            raise WorktreeError(f"Not a git repository: {main_repo_path}")

        worktree_id = str(uuid.uuid4())
        branch = f"{BRANCH_PREFIX}{worktree_id}"
        path = self.base_dir / f"{WORKTREE_PREFIX}{worktree_id}"

        try:
            run_git(["branch", branch], main_repo_path)
        except GitError as e:
            raise WorktreeError(f"Failed to create branch {branch}: {e}") from e

        try:
            run_git(["worktree", "add", str(path), branch], main_repo_path)
        except GitError as e:
            _try_git(["branch", "-D", branch], main_repo_path)
            raise WorktreeError(f"Failed to create worktree: {e}") from e

        logger.info(f"Created worktree {path} on branch {branch}")
        return WorktreeContext(
            uuid=worktree_id,
            path=path,
            branch=branch,
            main_repo_path=main_repo_path,
        )

    def merge(self, context: WorktreeContext, message: str) -> bool:
        """Commit the worktree's changes and merge them with ``--no-ff``.

        A failed merge is aborted so the origin checkout is left untouched.

        Args:
            context: Worktree to merge.
            message: Message for both the commit and the merge commit.

        Returns:
            True if the worktree had changes to commit.

        Raises:
            WorktreeError: If committing or merging fails.
        """
        committed = False
        try:
            if run_git(["status", "--porcelain"], context.path):
                run_git(["add", "-A"], context.path)
                run_git(["commit", "-m", message], context.path)
                committed = True
        except GitError as e:
            raise WorktreeError(f"Failed to commit worktree changes: {e}") from e

        try:
            run_git(["merge", "--no-ff", context.branch, "-m", message], context.main_repo_path)
        except GitError as e:
            _try_git(["merge", "--abort"], context.main_repo_path)
            raise WorktreeError(f"Failed to merge {context.branch}: {e}") from e

        logger.info(f"Merged {context.branch} into {context.main_repo_path}")
        return committed

    def remove(self, context: WorktreeContext, force: bool = False) -> RemovalResult:
        """Remove a worktree and delete its branch.

        Never raises; failures are reported in the result.
        """
        args = ["worktree", "remove", str(context.path)]
        if force:
            args.append("--force")

        ok, output = _try_git(args, context.main_repo_path)
        if not ok and Path(context.path).exists():
            return RemovalResult(success=False, error=f"Failed to remove worktree: {output}")

        _try_git(["worktree", "prune"], context.main_repo_path)

        ok, output = _try_git(["branch", "-D", context.branch], context.main_repo_path)
        if not ok and "not found" not in output:
            return RemovalResult(success=False, error=f"Failed to delete branch: {output}")

        logger.info(f"Removed worktree {context.path}")
        return RemovalResult(success=True)

    def list_import_worktrees(self, repo_path: Path) -> list[WorktreeContext]:
        """List worktrees whose branch starts with ``import-``."""
        repo_path = Path(repo_path)
        ok, output = _try_git(["worktree", "list", "--porcelain"], repo_path)
        if not ok:
            return []

        worktrees: list[WorktreeContext] = []
        for block in output.split("\n\n"):
            path = ""
            branch = ""
            for line in block.splitlines():
                if line.startswith("worktree "):
                    path = line[len("worktree "):]
                elif line.startswith("branch "):
                    branch = line[len("branch "):].replace("refs/heads/", "", 1)

            if path and branch.startswith(BRANCH_PREFIX):
                worktrees.append(
                    WorktreeContext(
                        uuid=branch[len(BRANCH_PREFIX):],
                        path=Path(path),
                        branch=branch,
                        main_repo_path=repo_path,
                    )
                )
        return worktrees


def is_in_worktree(directory: Path) -> bool:
    """Check whether a directory is inside a linked worktree."""
    ok, git_dir = _try_git(["rev-parse", "--git-dir"], Path(directory))
    return ok and "/worktrees/" in git_dir.replace("\\", "/")


def get_main_repo_path(directory: Path) -> Optional[Path]:
    """Return the origin repository root for a worktree (or the repo itself)."""
    ok, common_dir = _try_git(["rev-parse", "--git-common-dir"], Path(directory))
    if not ok:
        return None

    common_path = Path(common_dir)
    if not common_path.is_absolute():
        common_path = (Path(directory) / common_path).resolve()
    return common_path.parent if common_path.name == ".git" else common_path


def cleanup_stale_worktrees(
    repo_path: Path,
    manager: Optional[WorktreeManager] = None,
    older_than_hours: float = DEFAULT_MAX_AGE_HOURS,
    remove_all: bool = False,
    dry_run: bool = False,
    force: bool = False,
) -> CleanupReport:
    """Remove import worktrees left behind by interrupted runs.

    Args:
        repo_path: Origin repository.
        manager: Worktree manager (default: a new one).
        older_than_hours: Minimum age (by directory mtime) to remove.
        remove_all: Remove regardless of age.
        dry_run: Report what would be removed without removing anything.
        force: Remove worktrees with uncommitted changes.

    Returns:
        CleanupReport describing found, removed and failed worktrees.
    """
    manager = manager or WorktreeManager()
    report = CleanupReport()
    now = time.time()

    for context in manager.list_import_worktrees(repo_path):
        try:
            age_hours = (now - context.path.stat().st_mtime) / 3600
        except OSError:
            # Directory already gone; prunable
            age_hours = float("inf")
        report.found.append(StaleWorktree(context=context, age_hours=age_hours))

    if not report.found:
        report.summary = "No worktrees found"
        return report

    to_remove = [w for w in report.found if remove_all or w.age_hours >= older_than_hours]

    if not to_remove:
        report.summary = (
            f"No worktrees to remove ({len(report.found)} found, "
            f"all newer than {older_than_hours:g}h)"
        )
        return report

    if dry_run:
        report.summary = f"Dry run: would remove {len(to_remove)}/{len(report.found)} worktrees"
        return report

    for stale in to_remove:
        result = manager.remove(stale.context, force=force)
        if result.success:
            report.removed.append(stale)
        else:
            report.failed[str(stale.context.path)] = result.error or "unknown error"
            logger.error(f"Failed to remove {stale.context.path}: {result.error}")

    report.summary = f"Removed {len(report.removed)}/{len(to_remove)} worktrees"
    return report
