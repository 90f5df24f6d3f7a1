"""Models for ledger engine invocations and their parsed output."""

from dataclasses import dataclass, field
from typing import Optional

UNKNOWN_ACCOUNTS = ("income:unknown", "expenses:unknown")


@dataclass(frozen=True)
class LedgerResult:
    """Raw outcome of one ledger engine invocation."""

    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class Posting:
    """A single posting line of a printed transaction.

    Attributes:
        account: Full account name.
        amount: Amount as printed, e.g. "CHF-10.00". Empty when elided.
        balance: Balance assertion after "=", if present.
    """

    account: str
    amount: str = ""
    balance: Optional[str] = None

    @property
    def is_unknown(self) -> bool:
        return self.account in UNKNOWN_ACCOUNTS


@dataclass
class LedgerTransaction:
    """A transaction header and its postings."""

    date: str
    description: str
    postings: list[Posting] = field(default_factory=list)

    @property
    def year(self) -> int:
        return int(self.date[:4])


@dataclass
class UnknownPosting:
    """A posting the rules routed to a sentinel unknown account.

    Attributes:
        date: Transaction date (YYYY-MM-DD).
        description: Transaction description.
        amount: Amount on the unknown posting.
        account: "income:unknown" or "expenses:unknown".
        balance: Running balance assertion reported by the ledger, if any.
        csv_row: Original statement row, when it could be located.
        suggested_account: Suggested replacement account.
        suggestion_confidence: Confidence of the suggestion (0.0-1.0).
        suggestion_reasoning: Short explanation of the suggestion.
    """

    date: str
    description: str
    amount: str
    account: str
    balance: Optional[str] = None
    csv_row: Optional[dict[str, str]] = None
    suggested_account: Optional[str] = None
    suggestion_confidence: Optional[float] = None
    suggestion_reasoning: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dict, omitting empty fields."""
        data: dict[str, object] = {
            "date": self.date,
            "description": self.description,
            "amount": self.amount,
            "account": self.account,
        }
        optional = {
            "balance": self.balance,
            "csv_row": self.csv_row,
            "suggested_account": self.suggested_account,
            "suggestion_confidence": self.suggestion_confidence,
            "suggestion_reasoning": self.suggestion_reasoning,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data
