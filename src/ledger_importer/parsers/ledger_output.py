"""Parser for hledger text output.

``hledger print`` output follows a small line grammar::

    transaction := header posting*
    header      := DATE [status] [(code)] description
    posting     := INDENT account [SEP amount] [= balance] [; comment]

where SEP is two or more spaces or a tab. Everything that does not fit
(blank lines, comment lines, directives) is ignored. ``register -O csv``
and ``bal --flat`` output get their own small readers below.
"""

import csv
import io
import re
from typing import Optional

from ledger_importer.models.ledger import LedgerTransaction, Posting, UnknownPosting

HEADER_PATTERN = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})(?:=\S+)?"
    r"(?:\s+[*!])?"
    r"(?:\s+\([^)]*\))?"
    r"(?:\s+(?P<description>.*))?$"
)
ACCOUNT_SEPARATOR = re.compile(r"\s{2,}|\t")
BALANCE_OUTPUT_PATTERN = re.compile(r"^\s*(.+?)\s{2,}")


def parse_posting(line: str) -> Optional[Posting]:
    """Parse one indented posting line.

    Returns:
        Posting, or None for blank and comment lines.
    """
    if not line[:1].isspace():
        return None

    content = line.strip()
    if not content or content.startswith(";"):
        return None

    content = content.split(";", 1)[0].rstrip()
    parts = ACCOUNT_SEPARATOR.split(content, maxsplit=1)
    account = parts[0].strip()
    rest = parts[1].strip() if len(parts) > 1 else ""

    balance = None
    if "=" in rest:
        rest, balance_text = rest.split("=", 1)
        balance = balance_text.lstrip("=*").strip() or None
    return Posting(account=account, amount=rest.strip(), balance=balance)


def parse_transactions(output: str) -> list[LedgerTransaction]:
    """Parse ``hledger print`` output into transactions.

    Args:
        output: Text printed by hledger.

    Returns:
        Transactions in output order.
    """
    transactions: list[LedgerTransaction] = []
    current: Optional[LedgerTransaction] = None

    for line in output.splitlines():
        header = HEADER_PATTERN.match(line)
        if header:
            current = LedgerTransaction(
                date=header.group("date"),
                description=(header.group("description") or "").strip(),
            )
            transactions.append(current)
            continue

        if current is None:
            continue

        if not line.strip():
            current = None
            continue

        posting = parse_posting(line)
        if posting is not None:
            current.postings.append(posting)

    return transactions


def parse_unknown_postings(output: str) -> list[UnknownPosting]:
    """Collect postings routed to ``income:unknown`` or ``expenses:unknown``."""
    unknown: list[UnknownPosting] = []
    for transaction in parse_transactions(output):
        for posting in transaction.postings:
            if posting.is_unknown:
                unknown.append(
                    UnknownPosting(
                        date=transaction.date,
                        description=transaction.description,
                        amount=posting.amount,
                        account=posting.account,
                        balance=posting.balance,
                    )
                )
    return unknown


def count_transactions(output: str) -> int:
    """Count transaction headers in ``hledger print`` output."""
    return len(parse_transactions(output))


def extract_transaction_years(output: str) -> set[int]:
    """Return the distinct years of all printed transactions."""
    return {transaction.year for transaction in parse_transactions(output)}


def parse_last_register_date(output: str) -> Optional[str]:
    """Return the date of the last row of ``hledger register -O csv`` output."""
    rows = [row for row in csv.reader(io.StringIO(output.strip())) if row]
    if len(rows) < 2:
        return None

    header, last = rows[0], rows[-1]
    index = header.index("date") if "date" in header else 1
    if index >= len(last):
        return None

    value = last[index].strip()
    return value if re.fullmatch(r"\d{4}-\d{2}-\d{2}", value) else None


def parse_balance_output(output: str) -> str:
    """Extract the amount from ``hledger bal <account> -N --flat`` output.

    An account with no postings prints nothing, which is a zero balance.
    """
    text = output.strip("\n")
    if not text.strip():
        return "0"

    first_line = text.splitlines()[0]
    match = BALANCE_OUTPUT_PATTERN.match(first_line)
    return match.group(1).strip() if match else first_line.strip()
