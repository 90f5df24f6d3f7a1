"""Statement row lookup for unknown postings.

When a dry run reports postings routed to an unknown account, the
original CSV row is attached so the user (or the suggester) can see the
full context of the transaction. Rows are read with the layout declared
in the rules file and matched to postings by date and amount, then
narrowed by a transaction reference or the description.
"""

import csv
import io
import re
from decimal import Decimal
from pathlib import Path
from typing import Optional

from ledger_importer.models.ledger import UnknownPosting
from ledger_importer.parsers.base import ParseError, read_text
from ledger_importer.parsers.rules_parser import AmountFields, RulesConfig
from ledger_importer.utils.date_utils import to_iso_date
from ledger_importer.utils.decimal_utils import parse_amount_value
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

AMOUNT_TOLERANCE = Decimal("0.001")

ID_FIELD_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"transaction",
        r"trans_?(no|id)",
        r"reference",
        r"ref_?(no|id)",
        r"booking_?id",
        r"payment_?id",
        r"order_?id",
    )
]
ID_VALUE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,}$")

StatementRow = dict[str, str]


def parse_statement_rows(csv_path: Path, config: RulesConfig) -> list[StatementRow]:
    """Read data rows using the rules file's layout.

    As in hledger, ``skip`` drops the header row along with any preamble.
    Columns are named by the ``fields`` directive; without one, the last
    skipped line (or the first line when nothing is skipped) is the header.

    Raises:
        ParseError: If the file cannot be read or tokenized.
    """
    lines = read_text(csv_path).splitlines()
    start = config.skip_rows if config.field_names else max(config.skip_rows - 1, 0)
    if start >= len(lines):
        return []

    body = "\n".join(line for line in lines[start:] if line.strip())
    try:
        rows = list(csv.reader(io.StringIO(body), delimiter=config.separator))
    except csv.Error as e:
        raise ParseError(f"Cannot parse {csv_path.name}: {e}", csv_path) from e

    if config.field_names:
        names, data = config.field_names, rows
    elif rows:
        names, data = [name.strip() for name in rows[0]], rows[1:]
    else:
        return []
    return [
        {name: values[i] for i, name in enumerate(names) if i < len(values)}
        for values in data
    ]


def row_amount(row: StatementRow, amount_fields: AmountFields) -> Decimal:
    """Signed amount of a row: debits negative, credits positive."""
    if amount_fields.single:
        return parse_amount_value(row.get(amount_fields.single, ""))

    debit = parse_amount_value(row.get(amount_fields.debit or "", ""))
    if debit != 0:
        return -abs(debit)

    credit = parse_amount_value(row.get(amount_fields.credit or "", ""))
    return abs(credit)


def _transaction_id(row: StatementRow) -> Optional[tuple[str, str]]:
    for name, value in row.items():
        if not value or not any(p.search(name) for p in ID_FIELD_PATTERNS):
            continue
        if ID_VALUE_PATTERN.match(value.strip()):
            return name, value.strip()
    return None


def find_matching_row(
    posting: UnknownPosting,
    rows: list[StatementRow],
    config: RulesConfig,
) -> StatementRow:
    """Find the statement row a posting was generated from.

    Candidates must share the posting's date and amount. Ties are broken by
    a unique transaction reference, then by the description.

    Raises:
        LookupError: If no row has the posting's date and amount.
    """
    # The unknown leg mirrors the bank leg, so only magnitudes are compared
    amount = abs(parse_amount_value(posting.amount))

    candidates = [
        row for row in rows
        if to_iso_date(row.get(config.date_field, ""), config.date_format) == posting.date
        and abs(abs(row_amount(row, config.amount_fields)) - amount) <= AMOUNT_TOLERANCE
    ]

    if not candidates:
        raise LookupError(
            f"No statement row for {posting.date} {posting.description} {posting.amount}"
        )
    if len(candidates) == 1:
        return candidates[0]

    for candidate in candidates:
        found = _transaction_id(candidate)
        if found:
            name, value = found
            same_id = [row for row in candidates if row.get(name) == value]
            if len(same_id) == 1:
                return same_id[0]

    description = posting.description.lower()
    by_description = [
        row for row in candidates
        if any(description in (value or "").lower() for value in row.values())
    ]
    return by_description[0] if by_description else candidates[0]


def attach_statement_rows(
    postings: list[UnknownPosting],
    csv_path: Path,
    config: RulesConfig,
) -> list[UnknownPosting]:
    """Attach the originating CSV row to each unknown posting.

    A posting whose row cannot be located, or a file that cannot be read,
    leaves ``csv_row`` unset instead of failing.
    """
    try:
        rows = parse_statement_rows(csv_path, config)
    except ParseError as e:
        logger.warning(f"Skipping row lookup for {csv_path.name}: {e}")
        return postings

    for posting in postings:
        try:
            posting.csv_row = find_matching_row(posting, rows, config)
        except LookupError as e:
            logger.debug(str(e))
            posting.csv_row = None
    return postings
