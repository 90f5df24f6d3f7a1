"""Minimal CSV preview: preamble rows, header and first data row.

Detection never needs more than the first few rows of a file, so only
those are parsed. Tokenizing is delegated to the ``csv`` module.
"""

import csv
import io
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class CSVPreview:
    """The leading rows of a CSV file.

    Attributes:
        preamble: Rows preceding the header (the skipped rows), tokenized.
        header: Header fields with surrounding whitespace removed.
        first_row: First data row keyed by header field, or None.
    """

    preamble: list[list[str]] = field(default_factory=list)
    header: Optional[list[str]] = None
    first_row: Optional[dict[str, str]] = None

    @property
    def header_signature(self) -> str:
        """Header fields joined with commas, as compared against configuration."""
        return ",".join(self.header or [])

    def cell(self, row: int, column: int) -> Optional[str]:
        """Return a stripped preamble cell, or None if out of range."""
        if row >= len(self.preamble) or column >= len(self.preamble[row]):
            return None
        return self.preamble[row][column].strip()


def _is_blank(row: list[str]) -> bool:
    return all(not value.strip() for value in row)


def read_preview(content: str, skip_rows: int = 0, delimiter: str = ",") -> CSVPreview:
    """Parse the preamble, header and first data row of CSV content.

    Args:
        content: Full file content.
        skip_rows: Number of physical lines before the header row.
        delimiter: Single-character field delimiter.

    Returns:
        CSVPreview; ``header`` is None when the content has no header row.
    """
    if content.startswith("\ufeff"):
        content = content[1:]

    lines = content.splitlines()
    preview = CSVPreview()

    if skip_rows:
        preview.preamble = [
            row for row in csv.reader(lines[:skip_rows], delimiter=delimiter)
        ]

    reader = csv.reader(io.StringIO("\n".join(lines[skip_rows:])), delimiter=delimiter)
    for row in reader:
        if _is_blank(row):
            continue
        if preview.header is None:
            preview.header = [value.strip() for value in row]
            continue
        preview.first_row = {
            name: row[i] if i < len(row) else ""
            for i, name in enumerate(preview.header)
        }
        break

    return preview
