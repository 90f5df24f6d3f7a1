"""AI-specific data models for account suggestions."""

from dataclasses import dataclass, field


@dataclass
class AccountSuggestion:
    """Suggested account for one unknown posting.

    Attributes:
        account: The suggested hledger account.
        confidence: Confidence in the suggestion (0.0-1.0).
        reasoning: Brief explanation of why this account was chosen.
        source: "ai" or "heuristic".
    """

    account: str
    confidence: float
    reasoning: str
    source: str = "heuristic"


@dataclass
class SuggestionBatchResult:
    """Result of suggesting accounts for a batch of postings.

    Attributes:
        suggestions: One entry per input posting, None where no suggestion
            was produced.
        cached: Postings answered from the cache.
        generated: Postings answered by a new suggestion.
        errors: Error messages for failed requests.
    """

    suggestions: list[AccountSuggestion | None] = field(default_factory=list)
    cached: int = 0
    generated: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class CostEstimate:
    """Estimated cost for a suggestion request.

    Attributes:
        input_tokens: Estimated input tokens.
        output_tokens: Estimated output tokens.
        estimated_cost: Estimated cost in USD.
        posting_count: Number of postings in the estimate.
    """

    input_tokens: int
    output_tokens: int
    estimated_cost: float
    posting_count: int

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class AIUsageStats:
    """Cumulative API usage for one run."""

    total_requests: int = 0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0
    suggestions_made: int = 0

    def add_request(self, input_tokens: int, output_tokens: int, cost: float) -> None:
        """Record a completed request."""
        self.total_requests += 1
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        self.total_cost += cost
