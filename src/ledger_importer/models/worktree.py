"""Isolated workspace model."""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class WorktreeContext:
    """A branch-backed git worktree used to stage one import.

    Attributes:
        uuid: Unique identifier shared by the branch and directory names.
        path: Filesystem path of the worktree.
        branch: Name of the branch checked out in the worktree.
        main_repo_path: Root of the origin repository.
    """

    uuid: str
    path: Path
    branch: str
    main_repo_path: Path
