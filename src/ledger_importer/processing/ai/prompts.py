"""Prompt templates for account suggestions."""

import json

from ledger_importer.models.ledger import UnknownPosting

MAX_RULE_EXAMPLES = 10

SUGGESTION_SYSTEM_PROMPT = """You are an accounting assistant that classifies \
bank transactions into hledger accounts.

Guidelines:
1. Prefer an existing account from the hierarchy you are given
2. Only propose a new account when nothing existing fits, and follow the \
existing naming pattern (lowercase, colon-separated)
3. Income postings belong under income:, spending under expenses:
4. Be conservative - if uncertain, express lower confidence

Response format: Raw JSON only - no markdown code blocks, no explanation outside the JSON."""


def build_suggestion_prompt(
    postings: list[UnknownPosting],
    existing_accounts: list[str],
    rule_patterns: list[tuple[str, str]],
) -> str:
    """Build a batch prompt for a list of unknown postings.

    Args:
        postings: Postings to classify.
        existing_accounts: Declared accounts, sorted.
        rule_patterns: (condition, account) pairs from the rules file.

    Returns:
        Formatted prompt string.
    """
    sections = [f"Classify {len(postings)} transaction(s) into hledger accounts."]

    if existing_accounts:
        sections.append(
            "Existing accounts:\n" + "\n".join(f"- {account}" for account in existing_accounts)
        )

    if rule_patterns:
        examples = "\n".join(
            f'- if "{condition}" -> {account}'
            for condition, account in rule_patterns[:MAX_RULE_EXAMPLES]
        )
        sections.append(f"Existing classification rules:\n{examples}")

    entries = []
    for index, posting in enumerate(postings, 1):
        kind = "income" if posting.account.startswith("income") else "expense"
        entry = f'{index}. {posting.date} | "{posting.description}" | {posting.amount} | {kind}'
        if posting.csv_row:
            entry += f"\n   CSV row: {json.dumps(posting.csv_row, ensure_ascii=False)}"
        entries.append(entry)
    sections.append("Transactions:\n" + "\n".join(entries))

    sections.append(
        "Respond with a JSON array, one entry per transaction:\n"
        '[{"index": 1, "account": "...", "confidence": 0.0-1.0, "reasoning": "brief"}]'
    )
    return "\n\n".join(sections)
