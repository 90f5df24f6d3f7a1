"""Account declarations for accounts referenced by rules files.

``hledger check --strict`` rejects postings to undeclared accounts. Before
a dry run, every account named by the matched rules files is declared in
the destination journal. Missing declarations are merged into a single
sorted block after the leading comments; existing declarations,
transactions and comments are kept.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from ledger_importer.parsers.rules_parser import extract_accounts
from ledger_importer.processing.journal import JournalError
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

ACCOUNT_DECLARATION = re.compile(r"^account\s+(.+?)(?:\s{2,}|\t|;|$)")
COMMENT_PREFIXES = (";", "#", "*")


@dataclass
class DeclarationResult:
    """Outcome of ensuring account declarations.

    Attributes:
        added: Accounts newly declared, sorted.
        updated: Whether the journal file was rewritten.
    """

    added: list[str] = field(default_factory=list)
    updated: bool = False


def extract_accounts_from_rules_file(rules_path: Path) -> set[str]:
    """Accounts referenced by one rules file; empty if the file is missing."""
    if not rules_path.exists():
        return set()
    return extract_accounts(rules_path.read_text(encoding="utf-8"))


def get_all_accounts_from_rules(rules_paths: Iterable[Path]) -> set[str]:
    """Union of the accounts referenced by several rules files."""
    accounts: set[str] = set()
    for rules_path in rules_paths:
        accounts |= extract_accounts_from_rules_file(Path(rules_path))
    return accounts


def parse_declared_accounts(content: str) -> list[str]:
    """Accounts declared with ``account`` directives in journal text, sorted."""
    accounts = {
        match.group(1).strip()
        for match in (ACCOUNT_DECLARATION.match(line.strip()) for line in content.splitlines())
        if match
    }
    return sort_account_declarations(accounts)


def sort_account_declarations(accounts: Iterable[str]) -> list[str]:
    """Sort accounts so parents precede their children.

    Sorting by the colon-separated components keeps ``assets:bank`` ahead
    of ``assets:bank:ubs`` and both ahead of ``assets:bank-old``.
    """
    return sorted(set(accounts), key=lambda account: account.split(":"))


def ensure_account_declarations(journal_path: Path, accounts: Iterable[str]) -> DeclarationResult:
    """Declare every account that is not yet declared in a journal.

    Args:
        journal_path: Journal that holds the declarations.
        accounts: Accounts that must be declared.

    Returns:
        DeclarationResult with the accounts that were added.

    Raises:
        JournalError: If the journal does not exist.
    """
    if not journal_path.exists():
        raise JournalError(f"Journal not found: {journal_path}")

    lines = journal_path.read_text(encoding="utf-8").splitlines()

    existing: set[str] = set()
    header_comments: list[str] = []
    declaration_lines: list[str] = []
    other_lines: list[str] = []
    in_header = True

    for line in lines:
        stripped = line.strip()
        declaration = ACCOUNT_DECLARATION.match(stripped)

        if declaration:
            in_header = False
            existing.add(declaration.group(1).strip())
            declaration_lines.append(line)
        elif in_header and (stripped.startswith(COMMENT_PREFIXES) or not stripped):
            if stripped:
                header_comments.append(line)
        else:
            in_header = False
            other_lines.append(line)

    missing = sorted(set(accounts) - existing)
    if not missing:
        return DeclarationResult()

    # Existing declarations keep their original text (and comments)
    by_name = {
        ACCOUNT_DECLARATION.match(line.strip()).group(1).strip(): line.strip()  # type: ignore[union-attr]
        for line in declaration_lines
    }
    by_name.update({account: f"account {account}" for account in missing})

    declarations = [by_name[name] for name in sort_account_declarations(by_name)]

    while other_lines and not other_lines[0].strip():
        other_lines.pop(0)

    content = header_comments + ([""] if header_comments else []) + declarations + [""] + other_lines
    journal_path.write_text("\n".join(content).rstrip("\n") + "\n", encoding="utf-8")

    logger.info(f"Declared {len(missing)} accounts in {journal_path.name}")
    return DeclarationResult(added=missing, updated=True)
