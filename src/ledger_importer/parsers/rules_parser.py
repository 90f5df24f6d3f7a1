"""Parsing of hledger CSV rules files.

Only the directives this tool needs are understood: ``source`` for rules
matching, ``account1``/``account2`` for account declarations, and the CSV
layout directives (``skip``, ``separator``, ``fields``, ``date-format``,
``date``, ``amount``) for locating statement rows.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ledger_importer.utils.date_utils import DEFAULT_DATE_FORMAT

COMMENT_PREFIXES = ("#", ";", "*")

SOURCE_PATTERN = re.compile(r"^source\s+([^#]+)")
SKIP_PATTERN = re.compile(r"^skip\s+(\d+)", re.MULTILINE)
SEPARATOR_PATTERN = re.compile(r"^separator\s+(\S+)", re.MULTILINE)
FIELDS_PATTERN = re.compile(r"^fields\s+(.+)$", re.MULTILINE)
DATE_FORMAT_PATTERN = re.compile(r"^date-format\s+(.+)$", re.MULTILINE)
DATE_FIELD_PATTERN = re.compile(r"^date\s+%(\w+)", re.MULTILINE)
AMOUNT_PATTERN = re.compile(r"^amount\s+-?%(\w+)", re.MULTILINE)
DEBIT_PATTERN = re.compile(r"if\s+%(\w+)\s+\.\s*\n\s*amount\s+-%\1\b", re.MULTILINE)
CREDIT_PATTERN = re.compile(r"if\s+%(\w+)\s+\.\s*\n\s*amount\s+%\1\b", re.MULTILINE)
ACCOUNT1_PATTERN = re.compile(r"^account1\s+(.+?)(?:\s{2,}|\t|$)")
ACCOUNT2_PATTERN = re.compile(r"\baccount2\s+(.+?)(?:\s{2,}|\t|$)")

# hledger's named separators
SEPARATOR_NAMES = {"comma": ",", "semicolon": ";", "tab": "\t", "space": " "}


@dataclass
class AmountFields:
    """Where a row's amount comes from.

    Either a single signed field, or separate debit and credit fields.
    """

    single: Optional[str] = None
    debit: Optional[str] = None
    credit: Optional[str] = None


@dataclass
class RulesConfig:
    """CSV layout described by a rules file.

    Attributes:
        skip_rows: Lines to skip before the header.
        separator: Field separator.
        field_names: Names assigned to CSV columns by the ``fields`` directive.
        date_format: strptime-style date format.
        date_field: Field holding the transaction date.
        amount_fields: Field(s) holding the amount.
        account1: Primary (bank) account, if declared.
    """

    skip_rows: int = 0
    separator: str = ","
    field_names: list[str] = field(default_factory=list)
    date_format: str = DEFAULT_DATE_FORMAT
    date_field: str = "date"
    amount_fields: AmountFields = field(default_factory=AmountFields)
    account1: Optional[str] = None


def _is_comment(line: str) -> bool:
    return line.startswith(COMMENT_PREFIXES)


def _resolve_field_ref(ref: str, field_names: list[str]) -> str:
    """Resolve ``%name`` or 1-based ``%N`` references to a field name."""
    if ref.isdigit():
        index = int(ref) - 1
        if 0 <= index < len(field_names):
            return field_names[index]
    return ref


def parse_source_directive(content: str) -> Optional[str]:
    """Return the locator of the first ``source`` directive.

    Comment lines are skipped; a trailing ``#`` comment is not part of
    the locator.
    """
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or _is_comment(line):
            continue
        match = SOURCE_PATTERN.match(line)
        if match:
            locator = match.group(1).strip()
            return locator or None
    return None


def parse_account1(content: str) -> Optional[str]:
    """Return the ``account1`` directive's account, if any."""
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if _is_comment(line):
            continue
        match = ACCOUNT1_PATTERN.match(line)
        if match:
            return match.group(1).strip()
    return None


def extract_accounts(content: str) -> set[str]:
    """Collect every account referenced by ``account1`` and ``account2``.

    Account names end at two spaces, a tab, or end of line, as in journals.
    """
    accounts: set[str] = set()
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or _is_comment(line):
            continue

        match = ACCOUNT1_PATTERN.match(line)
        if match:
            accounts.add(match.group(1).strip())
            continue

        match = ACCOUNT2_PATTERN.search(line)
        if match:
            accounts.add(match.group(1).strip())
    return accounts


def parse_amount_fields(content: str, field_names: list[str]) -> AmountFields:
    """Work out which field(s) carry the amount.

    Handles ``amount %amount`` as well as debit/credit pairs written as
    ``if %debit .`` followed by ``amount -%debit``.
    """
    result = AmountFields()

    debit = DEBIT_PATTERN.search(content)
    if debit:
        result.debit = debit.group(1)

    credit = CREDIT_PATTERN.search(content)
    if credit and credit.group(1) != result.debit:
        result.credit = credit.group(1)

    if result.debit or result.credit:
        return result

    simple = AMOUNT_PATTERN.search(content)
    result.single = _resolve_field_ref(simple.group(1), field_names) if simple else "amount"
    return result


def parse_rules(content: str) -> RulesConfig:
    """Parse the CSV layout directives of a rules file."""
    fields_match = FIELDS_PATTERN.search(content)
    field_names = (
        [name.strip() for name in fields_match.group(1).split(",")] if fields_match else []
    )

    skip_match = SKIP_PATTERN.search(content)
    separator_match = SEPARATOR_PATTERN.search(content)
    date_format_match = DATE_FORMAT_PATTERN.search(content)
    date_field_match = DATE_FIELD_PATTERN.search(content)

    separator = ","
    if separator_match:
        raw_separator = separator_match.group(1)
        separator = SEPARATOR_NAMES.get(raw_separator.lower(), raw_separator[0])

    if date_field_match:
        date_field = _resolve_field_ref(date_field_match.group(1), field_names)
    else:
        date_field = field_names[0] if field_names else "date"

    return RulesConfig(
        skip_rows=int(skip_match.group(1)) if skip_match else 0,
        separator=separator,
        field_names=field_names,
        date_format=date_format_match.group(1).strip() if date_format_match else DEFAULT_DATE_FORMAT,
        date_field=date_field,
        amount_fields=parse_amount_fields(content, field_names),
        account1=parse_account1(content),
    )


def load_rules(rules_path: Path) -> RulesConfig:
    """Read and parse a rules file."""
    return parse_rules(rules_path.read_text(encoding="utf-8"))
