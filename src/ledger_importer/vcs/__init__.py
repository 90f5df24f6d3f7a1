"""Version control operations for isolated imports."""

from ledger_importer.vcs.worktree import (
    CleanupReport,
    GitError,
    WorktreeError,
    WorktreeManager,
    cleanup_stale_worktrees,
    get_main_repo_path,
    is_in_worktree,
    run_git,
)

__all__ = [
    "GitError",
    "WorktreeError",
    "WorktreeManager",
    "CleanupReport",
    "cleanup_stale_worktrees",
    "get_main_repo_path",
    "is_in_worktree",
    "run_git",
]
