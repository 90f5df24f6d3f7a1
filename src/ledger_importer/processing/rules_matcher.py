"""Mapping of statement CSV files to hledger rules files.

Every rules file names its input with a ``source`` directive. The
locator may be absolute, relative to the rules file, or a glob. A CSV
path is matched against those locators in four tiers, stopping at the
first tier that yields a candidate:

1. exact path equality,
2. equality after normalizing ``.``/``..`` segments,
3. glob match for locators containing wildcards, segment by segment,
4. filename fallback: the longest literal basename prefix wins.

Path and glob matches always win over the filename fallback, so a file
moved from pending to done still binds to the rules file written for its
original location.
"""

import fnmatch
import os
from pathlib import Path, PurePath
from typing import Optional

from ledger_importer.parsers.rules_parser import parse_source_directive
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

RULES_SUFFIX = ".rules"
GLOB_CHARACTERS = set("*?[")

# Source locator -> absolute rules file path
RulesMapping = dict[str, str]


def has_glob(locator: str) -> bool:
    """Check whether a locator contains wildcard characters."""
    return any(char in GLOB_CHARACTERS for char in locator)


def literal_prefix(pattern: str) -> str:
    """Return the part of a pattern before its first wildcard."""
    for index, char in enumerate(pattern):
        if char in GLOB_CHARACTERS:
            return pattern[:index]
    return pattern


def resolve_source_path(source: str, rules_file: Path) -> str:
    """Resolve a source locator against the rules file's directory.

    Resolution is lexical so glob characters survive untouched.
    """
    if os.path.isabs(source):
        return source
    return os.path.normpath(os.path.join(os.path.dirname(os.path.abspath(rules_file)), source))


def load_rules_mapping(rules_dir: Path) -> RulesMapping:
    """Scan a directory for rules files and map their sources.

    Args:
        rules_dir: Directory containing ``*.rules`` files (not recursed).

    Returns:
        Mapping of source locator to absolute rules file path. Rules files
        without a ``source`` directive are skipped.
    """
    mapping: RulesMapping = {}
    if not rules_dir.is_dir():
        logger.warning(f"Rules directory not found: {rules_dir}")
        return mapping

    for rules_file in sorted(rules_dir.iterdir()):
        if rules_file.suffix != RULES_SUFFIX or not rules_file.is_file():
            continue

        source = parse_source_directive(rules_file.read_text(encoding="utf-8"))
        if source is None:
            logger.debug(f"No source directive in {rules_file.name}")
            continue

        locator = resolve_source_path(source, rules_file)
        mapping[locator] = str(rules_file.resolve())

    logger.debug(f"Loaded {len(mapping)} rules mappings from {rules_dir}")
    return mapping


def _match_exact(csv_path: str, mapping: RulesMapping) -> Optional[str]:
    return mapping.get(csv_path)


def _match_normalized(csv_path: str, mapping: RulesMapping) -> Optional[str]:
    normalized = os.path.normpath(csv_path)
    for locator, rules_file in mapping.items():
        if os.path.normpath(locator) == normalized:
            return rules_file
    return None


def glob_matches(path: str, pattern: str) -> bool:
    """Match a path against a glob one segment at a time.

    Wildcards never cross a directory separator, so ``pending/ubs/chf/*.csv``
    does not bind files in subdirectories of ``chf``.
    """
    path_parts = PurePath(os.path.normpath(path)).parts
    pattern_parts = PurePath(os.path.normpath(pattern)).parts
    if len(path_parts) != len(pattern_parts):
        return False
    return all(fnmatch.fnmatchcase(part, glob) for part, glob in zip(path_parts, pattern_parts))


def _match_glob(csv_path: str, mapping: RulesMapping) -> Optional[str]:
    for locator, rules_file in mapping.items():
        if has_glob(locator) and glob_matches(csv_path, locator):
            return rules_file
    return None


def _match_filename(csv_path: str, mapping: RulesMapping) -> Optional[str]:
    filename = os.path.basename(csv_path)
    best: Optional[str] = None
    best_length = -1

    for locator, rules_file in mapping.items():
        prefix = literal_prefix(os.path.basename(locator))
        # An empty prefix would bind every file
        if not prefix or not filename.startswith(prefix):
            continue

        if len(prefix) > best_length:
            best, best_length = rules_file, len(prefix)

    return best


MATCH_TIERS = (_match_exact, _match_normalized, _match_glob, _match_filename)


def find_rules_for_csv(csv_path: Path | str, mapping: RulesMapping) -> Optional[str]:
    """Find the rules file for a CSV file.

    Args:
        csv_path: Absolute path of the CSV file.
        mapping: Mapping from load_rules_mapping.

    Returns:
        Absolute path of the rules file, or None if no tier matches.
    """
    path = str(csv_path)
    for tier in MATCH_TIERS:
        rules_file = tier(path, mapping)
        if rules_file is not None:
            logger.debug(f"{os.path.basename(path)} -> {rules_file} ({tier.__name__[7:]})")
            return rules_file
    return None
