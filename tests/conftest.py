"""Shared fixtures: a ledger repository layout and a fake hledger."""

from pathlib import Path
from typing import Optional

import pytest

from ledger_importer.config import ImportConfig, load_import_config
from ledger_importer.models.ledger import LedgerResult

PROVIDERS_YAML = """\
paths:
  import: statements/import
  pending: statements/pending
  done: statements/done
  unrecognized: statements/unrecognized
  rules: statements/rules

providers:
  ubs:
    detect:
      - header: "Trade date,Description,Amount,Currency,Balance"
        currency_field: Currency
    currencies:
      CHF: chf
      EUR: eur
  testbank:
    detect:
      - filename_pattern: "^export"
        header: "Date,Description,Amount,Currency"
        currency_field: Currency
        skip_rows: 3
        rename_pattern: "transactions-{provider}-{account-number}.csv"
        metadata:
          - field: account-number
            row: 0
            column: 1
            normalize: spaces-to-dashes
          - field: closing-balance
            row: 1
            column: 1
          - field: from-date
            row: 2
            column: 1
          - field: until-date
            row: 2
            column: 2
    currencies:
      CHF: chf
"""

UBS_RULES = """\
# UBS CHF account
source ../pending/ubs/chf/*.csv
skip 1
fields date, description, amount, currency, balance
date-format %Y-%m-%d
currency CHF
account1 assets:bank:ubs:chf

if MIGROS
  account2 expenses:groceries
"""

TESTBANK_RULES = """\
source ../pending/testbank/chf/transactions-testbank*.csv
skip 4
fields date, description, amount, currency
account1 assets:bank:testbank:chf

if COOP
  account2 expenses:groceries
"""

UBS_STATEMENT = """\
Trade date,Description,Amount,Currency,Balance
2026-01-05,MIGROS ZURICH,-45.20,CHF,954.80
2026-01-10,ACME SALARY,5000.00,CHF,5954.80
"""

TESTBANK_STATEMENT = """\
Account,1234 56789.0
Closing balance,2324.79
Period,2026-02-01,2026-02-28
Date,Description,Amount,Currency
2026-02-03,COOP BASEL,-12.50,CHF
"""

UBS_PRINT = """\
2026-01-05 MIGROS ZURICH
    assets:bank:ubs:chf        CHF-45.20 = CHF954.80
    expenses:groceries          CHF45.20

2026-01-10 ACME SALARY
    assets:bank:ubs:chf       CHF5000.00 = CHF5954.80
    income:salary            CHF-5000.00

"""

UBS_PRINT_UNKNOWN = """\
2026-01-05 MIGROS ZURICH
    assets:bank:ubs:chf        CHF-45.20 = CHF954.80
    expenses:groceries          CHF45.20

2026-01-10 ACME SALARY
    assets:bank:ubs:chf       CHF5000.00 = CHF5954.80
    income:unknown           CHF-5000.00

"""


class FakeLedger:
    """Records hledger invocations and answers them from canned output."""

    def __init__(
        self,
        prints: Optional[dict[str, str]] = None,
        balances: Optional[dict[str, str]] = None,
        registers: Optional[dict[str, str]] = None,
        failing: Optional[set[str]] = None,
    ):
        self.prints = prints or {}
        self.balances = balances or {}
        self.registers = registers or {}
        self.failing = failing or set()
        self.calls: list[list[str]] = []

    def commands(self, name: str) -> list[list[str]]:
        return [call for call in self.calls if call[0] == name]

    def __call__(self, args: list[str]) -> LedgerResult:
        self.calls.append(list(args))
        command = args[0]
        if command in self.failing:
            return LedgerResult(stdout="", stderr=f"{command}: simulated failure", exit_code=1)

        if command == "print":
            return LedgerResult(stdout=self.prints.get(Path(args[2]).name, ""), stderr="", exit_code=0)
        if command == "register":
            return LedgerResult(stdout=self.registers.get(args[1], ""), stderr="", exit_code=0)
        if command == "bal" and args[1] != "-f":
            account = args[1]
            if account not in self.balances:
                return LedgerResult(stdout="", stderr="", exit_code=0)
            return LedgerResult(
                stdout=f"         {self.balances[account]}  {account}\n", stderr="", exit_code=0
            )
        return LedgerResult(stdout="", stderr="", exit_code=0)


def write_repo(root: Path, journal: bool = True) -> Path:
    """Create the directory layout, configuration and rules of a ledger repository."""
    (root / "config" / "import").mkdir(parents=True)
    (root / "config" / "import" / "providers.yaml").write_text(PROVIDERS_YAML, encoding="utf-8")

    statements = root / "statements"
    for name in ("import", "pending", "done", "unrecognized", "rules"):
        (statements / name).mkdir(parents=True)
    (statements / "rules" / "ubs-chf.rules").write_text(UBS_RULES, encoding="utf-8")
    (statements / "rules" / "testbank-chf.rules").write_text(TESTBANK_RULES, encoding="utf-8")

    if journal:
        (root / ".hledger.journal").write_text("; main journal\n", encoding="utf-8")
    return root


def add_pending(root: Path, provider: str, currency: str, name: str, content: str) -> Path:
    """Place a statement in the pending tree."""
    target = root / "statements" / "pending" / provider / currency / name
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    return target


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A ledger repository without git."""
    return write_repo(tmp_path / "ledger")


@pytest.fixture
def config(repo: Path) -> ImportConfig:
    """The repository's parsed import configuration."""
    return load_import_config(repo)
