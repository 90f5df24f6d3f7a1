"""Shared parser errors and file reading."""

from pathlib import Path
from typing import Optional

from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)


class ParseError(Exception):
    """Exception raised when parsing fails."""

    def __init__(self, message: str, file_path: Optional[Path] = None):
        """Initialize ParseError.

        Args:
            message: Error message.
            file_path: Optional path to the file that failed to parse.
        """
        self.file_path = file_path
        super().__init__(message)


def read_text(file_path: Path) -> str:
    """Read a statement file as text.

    A UTF-8 byte order mark is dropped and undecodable bytes are replaced,
    so that header comparison sees the same text hledger does.

    Raises:
        ParseError: If the file cannot be read.
    """
    try:
        with open(file_path, encoding="utf-8-sig", errors="replace", newline="") as f:
            return f.read()
    except OSError as e:
        raise ParseError(f"Cannot read {file_path.name}: {e}", file_path) from e
