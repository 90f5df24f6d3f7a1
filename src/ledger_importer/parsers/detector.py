"""Provider and currency detection for statement CSV files.

Every provider's detection rules are tried in the order the configuration
declares them, and the first rule that matches wins. A rule matches when
its optional filename pattern matches, the header row at ``skip_rows`` is
exactly the configured signature, and the first data row carries a
non-empty currency.
"""

import csv
import re
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ledger_importer.config import (
    NORMALIZE_SPACES_TO_DASHES,
    DetectionRule,
    MetadataExtraction,
    ProviderRuleSet,
)
from ledger_importer.models.detection import ClassificationResult, DetectionResult
from ledger_importer.parsers.base import ParseError, read_text
from ledger_importer.parsers.csv_preview import CSVPreview, read_preview
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}]+)\}")
WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_value(value: str, normalize: Optional[str]) -> str:
    """Apply a metadata normalization to an extracted value."""
    if normalize == NORMALIZE_SPACES_TO_DASHES:
        return WHITESPACE_PATTERN.sub("-", value.strip())
    return value


def extract_metadata(
    preview: CSVPreview,
    extractions: Sequence[MetadataExtraction],
) -> dict[str, str]:
    """Pull metadata values out of the preamble rows.

    Cells that do not exist are omitted rather than treated as errors.

    Args:
        preview: Parsed preview of the file.
        extractions: Metadata definitions of the matched rule.

    Returns:
        Mapping of metadata field name to value.
    """
    metadata: dict[str, str] = {}
    for extraction in extractions:
        value = preview.cell(extraction.row, extraction.column)
        if value is None:
            logger.debug(
                f"No metadata for '{extraction.field}' at "
                f"row {extraction.row}, column {extraction.column}"
            )
            continue
        metadata[extraction.field] = normalize_value(value, extraction.normalize)
    return metadata


def render_filename(pattern: str, values: dict[str, str]) -> Optional[str]:
    """Substitute ``{placeholder}`` tokens in a rename pattern.

    Args:
        pattern: Template such as ``transactions-{provider}-{accountid}.csv``.
        values: Placeholder values.

    Returns:
        The rendered filename, or None if any placeholder has no value.
    """
    missing = [name for name in PLACEHOLDER_PATTERN.findall(pattern) if not values.get(name)]
    if missing:
        logger.warning(
            f"Rename pattern '{pattern}' has unresolved placeholders: {', '.join(missing)}"
        )
        return None
    return PLACEHOLDER_PATTERN.sub(lambda m: values[m.group(1)], pattern)


def _match_rule(
    preview: CSVPreview,
    provider: ProviderRuleSet,
    rule: DetectionRule,
) -> Optional[DetectionResult]:
    if preview.header_signature != rule.header:
        return None

    if preview.first_row is None:
        return None

    raw_currency = (preview.first_row.get(rule.currency_field) or "").strip()
    if not raw_currency:
        return None

    currency = provider.normalize_currency(raw_currency)
    metadata = extract_metadata(preview, rule.metadata)

    output_filename = None
    if rule.rename_pattern:
        values = {**metadata, "provider": provider.name, "currency": currency}
        output_filename = render_filename(rule.rename_pattern, values)

    return DetectionResult(
        provider=provider.name,
        currency=currency,
        rule=rule,
        metadata=metadata,
        output_filename=output_filename,
    )


def detect_provider(
    filename: str,
    content: str,
    providers: Iterable[ProviderRuleSet],
) -> Optional[DetectionResult]:
    """Detect the provider and currency of a CSV file.

    Args:
        filename: Bare file name (no directory).
        content: File content.
        providers: Provider rule sets in declaration order.

    Returns:
        DetectionResult for the first matching provider and rule, or None.
    """
    # Rules sharing a layout share a preview
    previews: dict[tuple[int, str], CSVPreview] = {}

    for provider in providers:
        for rule in provider.rules:
            if not rule.matches_filename(filename):
                continue

            key = (rule.skip_rows, rule.delimiter)
            if key not in previews:
                previews[key] = read_preview(content, rule.skip_rows, rule.delimiter)

            result = _match_rule(previews[key], provider, rule)
            if result is not None:
                logger.debug(f"{filename} detected as {result.provider}/{result.currency}")
                return result

    return None


def detect_file(file_path: Path, providers: Iterable[ProviderRuleSet]) -> Optional[DetectionResult]:
    """Read a file and detect its provider and currency.

    Raises:
        ParseError: If the file cannot be read or its leading rows cannot be
            tokenized.
    """
    content = read_text(file_path)
    try:
        return detect_provider(file_path.name, content, providers)
    except csv.Error as e:
        raise ParseError(f"Cannot parse {file_path.name}: {e}", file_path) from e


def classify_files(
    files: Iterable[tuple[str, str]],
    providers: Sequence[ProviderRuleSet],
) -> list[ClassificationResult]:
    """Detect a batch of files, capturing per-file errors.

    Args:
        files: (filename, content) pairs.
        providers: Provider rule sets in declaration order.

    Returns:
        One ClassificationResult per input file, in input order.
    """
    results: list[ClassificationResult] = []
    for filename, content in files:
        try:
            detected = detect_provider(filename, content, providers)
            results.append(ClassificationResult(filename=filename, detected=detected))
        except (ValueError, IndexError, csv.Error) as e:
            logger.warning(f"Detection failed for {filename}: {e}")
            results.append(ClassificationResult(filename=filename, error=str(e)))
    return results
