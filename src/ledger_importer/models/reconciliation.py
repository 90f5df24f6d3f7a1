"""Reconciliation outcome model."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ReconciliationOutcome:
    """Comparison of a statement's closing balance with the ledger.

    Attributes:
        success: True when both balances match within tolerance.
        csv_file: Statement file that was reconciled.
        account: Ledger account the statement belongs to.
        expected_balance: Closing balance claimed by the statement.
        actual_balance: Balance computed by the ledger engine.
        difference: actual - expected, signed and currency-tagged.
        last_transaction_date: Date the balance was taken at.
        metadata: Statement metadata used for the comparison.
        error: Error message on failure.
        hint: Remediation hint on failure.
    """

    success: bool
    csv_file: str = ""
    account: Optional[str] = None
    expected_balance: Optional[str] = None
    actual_balance: Optional[str] = None
    difference: Optional[str] = None
    last_transaction_date: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    hint: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        """Convert to a JSON-serializable dict, omitting empty fields."""
        data = {
            "success": self.success,
            "csv_file": self.csv_file,
            "account": self.account,
            "expected_balance": self.expected_balance,
            "actual_balance": self.actual_balance,
            "difference": self.difference,
            "last_transaction_date": self.last_transaction_date,
            "metadata": dict(self.metadata) or None,
            "error": self.error,
            "hint": self.hint,
        }
        return {k: v for k, v in data.items() if v is not None}
