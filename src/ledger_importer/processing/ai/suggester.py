"""Account suggestions for postings routed to an unknown account.

Suggestions come from Claude when enabled and an API key is set, and
from a keyword heuristic otherwise. Results are cached for the lifetime
of one suggester (one pipeline run) by a hash of the posting's
description, amount and account. A failure to suggest never fails the
dry run: the postings are returned without suggestions.
"""

import hashlib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ledger_importer.config import SuggestionConfig
from ledger_importer.models.ledger import UnknownPosting
from ledger_importer.processing.account_declarations import parse_declared_accounts
from ledger_importer.processing.ai.client import AIClient, AIClientConfig, AIClientError
from ledger_importer.processing.ai.cost_estimator import max_tokens_for_batch
from ledger_importer.processing.ai.models import AccountSuggestion, SuggestionBatchResult
from ledger_importer.processing.ai.prompts import SUGGESTION_SYSTEM_PROMPT, build_suggestion_prompt
from ledger_importer.processing.journal import ACCOUNTS_JOURNAL, LEDGER_DIR
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

IF_PATTERN = re.compile(r"^if\s+(.+)$")
ACCOUNT2_PATTERN = re.compile(r"^account2\s+(.+?)(?:\s{2,}|\t|$)")

# (keywords, account, confidence, reasoning)
HEURISTICS: list[tuple[tuple[str, ...], str, float, str]] = [
    (("migros", "coop"), "expenses:groceries", 0.9, "Transaction from known grocery store"),
    (("salary", "lohn"), "income:salary", 0.9, "Salary payment detected"),
    (("sbb", "train"), "expenses:transport", 0.6, "Transportation-related transaction"),
]


def posting_key(posting: UnknownPosting) -> str:
    """Cache key for a posting."""
    data = f"{posting.description}|{posting.amount}|{posting.account}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


@dataclass
class SuggestionCache:
    """In-memory suggestion cache owned by one run."""

    entries: dict[str, AccountSuggestion] = field(default_factory=dict)

    def get(self, posting: UnknownPosting) -> Optional[AccountSuggestion]:
        return self.entries.get(posting_key(posting))

    def put(self, posting: UnknownPosting, suggestion: AccountSuggestion) -> None:
        self.entries[posting_key(posting)] = suggestion

    def clear(self) -> None:
        self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)


def heuristic_suggestion(posting: UnknownPosting) -> AccountSuggestion:
    """Keyword-based suggestion used when the API is not in use."""
    description = posting.description.lower()
    for keywords, account, confidence, reasoning in HEURISTICS:
        if any(keyword in description for keyword in keywords):
            return AccountSuggestion(account=account, confidence=confidence, reasoning=reasoning)

    fallback = "income:other" if posting.account.startswith("income") else "expenses:other"
    return AccountSuggestion(
        account=fallback,
        confidence=0.3,
        reasoning="Generic classification based on transaction type",
    )


def extract_rule_patterns(rules_content: str) -> list[tuple[str, str]]:
    """Extract ``if <condition>`` / ``account2 <account>`` pairs from rules text.

    Only an ``account2`` line directly following an ``if`` line counts.
    """
    patterns: list[tuple[str, str]] = []
    condition: Optional[str] = None

    for line in rules_content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(("#", ";")):
            continue

        if_match = IF_PATTERN.match(stripped)
        if if_match:
            condition = if_match.group(1).strip()
            continue

        account_match = ACCOUNT2_PATTERN.match(stripped)
        if account_match and condition:
            patterns.append((condition, account_match.group(1).strip()))
        condition = None

    return patterns


def load_existing_accounts(directory: Path) -> list[str]:
    """Accounts declared in a checkout's accounts journal."""
    journal = directory / LEDGER_DIR / ACCOUNTS_JOURNAL
    if not journal.exists():
        return []
    return parse_declared_accounts(journal.read_text(encoding="utf-8"))


@dataclass
class AccountSuggester:
    """Suggests accounts for unknown postings.

    Attributes:
        directory: Checkout whose declared accounts give context.
        client: API client; None means heuristic suggestions only.
        batch_size: Postings per API request.
        cache: Per-run suggestion cache.
    """

    directory: Path
    client: Optional[AIClient] = None
    batch_size: int = 20
    cache: SuggestionCache = field(default_factory=SuggestionCache)

    @classmethod
    def create(cls, directory: Path, config: SuggestionConfig) -> "AccountSuggester":
        """Create a suggester from configuration.

        The API client is only attached when suggestions are enabled and
        the API key is set.
        """
        client = None
        if config.enabled:
            candidate = AIClient(
                config=AIClientConfig(model=config.model, budget_limit=config.budget_limit)
            )
            if candidate.is_available:
                client = candidate
            else:
                logger.warning("AI suggestions enabled but no API key set, using heuristics")
        return cls(directory=Path(directory), client=client, batch_size=config.batch_size)

    def suggest_accounts(
        self, postings: list[UnknownPosting], rules_content: str
    ) -> list[UnknownPosting]:
        """Attach suggestions to postings in place and return them."""
        if not postings:
            return postings

        try:
            result = self._suggest(postings, rules_content)
        except (AIClientError, ValueError, OSError) as e:
            logger.error(f"Failed to generate account suggestions: {e}")
            return postings

        for posting, suggestion in zip(postings, result.suggestions):
            if suggestion is None:
                continue
            posting.suggested_account = suggestion.account
            posting.suggestion_confidence = suggestion.confidence
            posting.suggestion_reasoning = suggestion.reasoning

        logger.info(
            f"Account suggestions: {result.cached} cached, {result.generated} generated"
        )
        return postings

    def _suggest(self, postings: list[UnknownPosting], rules_content: str) -> SuggestionBatchResult:
        result = SuggestionBatchResult(suggestions=[self.cache.get(p) for p in postings])
        result.cached = sum(1 for s in result.suggestions if s is not None)

        pending = [i for i, s in enumerate(result.suggestions) if s is None]
        if not pending:
            return result

        if self.client is None:
            generated = {i: heuristic_suggestion(postings[i]) for i in pending}
        else:
            generated = self._ask_model(self.client, postings, pending, rules_content, result)

        for index, suggestion in generated.items():
            result.suggestions[index] = suggestion
            self.cache.put(postings[index], suggestion)
        result.generated = len(generated)
        return result

    def _ask_model(
        self,
        client: AIClient,
        postings: list[UnknownPosting],
        pending: list[int],
        rules_content: str,
        result: SuggestionBatchResult,
    ) -> dict[int, AccountSuggestion]:
        accounts = load_existing_accounts(self.directory)
        patterns = extract_rule_patterns(rules_content)
        generated: dict[int, AccountSuggestion] = {}
        estimate = client.cost_estimator.estimate_suggestions(len(pending), len(accounts))
        logger.info(f"Requesting suggestions for {len(pending)} posting(s), about {estimate.total_tokens} tokens")

        for batch_start in range(0, len(pending), self.batch_size):
            batch = pending[batch_start : batch_start + self.batch_size]
            prompt = build_suggestion_prompt([postings[i] for i in batch], accounts, patterns)
            response, _, _ = client.send_message(
                SUGGESTION_SYSTEM_PROMPT, prompt, max_tokens=max_tokens_for_batch(len(batch))
            )

            data = client.parse_json_response(response)
            if not isinstance(data, list):
                result.errors.append(f"Unexpected response format for batch {batch_start // self.batch_size}")
                continue

            for item in data:
                suggestion = _suggestion_from_item(item, len(batch))
                if suggestion is None:
                    continue
                local_index, parsed = suggestion
                generated.setdefault(batch[local_index], parsed)

        client.usage_stats.suggestions_made += len(generated)
        logger.debug(client.get_usage_summary())
        return generated


def _suggestion_from_item(item: object, batch_length: int) -> Optional[tuple[int, AccountSuggestion]]:
    if not isinstance(item, dict):
        return None
    try:
        local_index = int(item.get("index")) - 1  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning(f"AI returned non-numeric index: {item.get('index')}")
        return None
    account = str(item.get("account", "")).strip()
    if not 0 <= local_index < batch_length or not account:
        logger.warning(f"AI returned invalid entry: {item}")
        return None

    try:
        confidence = max(0.0, min(1.0, float(item.get("confidence", 0.5))))
    except (TypeError, ValueError):
        confidence = 0.5
    return local_index, AccountSuggestion(
        account=account,
        confidence=confidence,
        reasoning=str(item.get("reasoning", "")),
        source="ai",
    )
