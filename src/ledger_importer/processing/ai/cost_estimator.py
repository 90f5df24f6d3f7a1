"""Token and cost estimation for account suggestion requests."""

from dataclasses import dataclass

from ledger_importer.processing.ai.models import CostEstimate
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

# Per 1M tokens, USD
MODEL_PRICING: dict[str, dict[str, float]] = {
    "claude-sonnet-4-20250514": {"input": 3.00, "output": 15.00},
    "claude-sonnet-4-5-20250929": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
}

AVG_SYSTEM_PROMPT_TOKENS = 250
AVG_TOKENS_PER_ACCOUNT = 8
AVG_TOKENS_PER_POSTING = 60  # description, amount and the CSV row
AVG_OUTPUT_TOKENS_PER_POSTING = 40

MAX_TOKENS_PER_POSTING = 120
MAX_TOKENS_BUFFER = 100
MAX_OUTPUT_TOKENS_LIMIT = 4096


def max_tokens_for_batch(batch_size: int) -> int:
    """Output token limit for a batch request."""
    return min(MAX_OUTPUT_TOKENS_LIMIT, batch_size * MAX_TOKENS_PER_POSTING + MAX_TOKENS_BUFFER)


@dataclass
class CostEstimator:
    """Estimates and tracks spend against a budget.

    Attributes:
        model: Model used for pricing.
        budget_limit: Maximum budget in USD (None for unlimited).
        current_spend: Spend recorded so far in USD.
    """

    model: str = DEFAULT_MODEL
    budget_limit: float | None = None
    current_spend: float = 0.0

    def get_pricing(self) -> dict[str, float]:
        """Get pricing for the configured model."""
        if self.model in MODEL_PRICING:
            return MODEL_PRICING[self.model]
        logger.warning(f"Unknown model {self.model}, using default pricing")
        return MODEL_PRICING[DEFAULT_MODEL]

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """Calculate cost in USD for the given token counts."""
        pricing = self.get_pricing()
        return (input_tokens / 1_000_000) * pricing["input"] + (
            output_tokens / 1_000_000
        ) * pricing["output"]

    def estimate_suggestions(self, num_postings: int, num_accounts: int) -> CostEstimate:
        """Estimate the cost of suggesting accounts for postings in one request.

        Args:
            num_postings: Postings to classify.
            num_accounts: Accounts listed as context.

        Returns:
            CostEstimate with token and cost projections.
        """
        input_tokens = (
            AVG_SYSTEM_PROMPT_TOKENS
            + num_accounts * AVG_TOKENS_PER_ACCOUNT
            + num_postings * AVG_TOKENS_PER_POSTING
        )
        output_tokens = num_postings * AVG_OUTPUT_TOKENS_PER_POSTING
        return CostEstimate(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost=self.estimate_cost(input_tokens, output_tokens),
            posting_count=num_postings,
        )

    def check_budget(self, estimated_cost: float) -> tuple[bool, str]:
        """Check if an estimated cost fits the remaining budget.

        Returns:
            Tuple of (is_within_budget, message).
        """
        if self.budget_limit is None:
            return True, "No budget limit set"

        remaining = self.budget_limit - self.current_spend
        if estimated_cost > remaining:
            return False, (
                f"Estimated cost ${estimated_cost:.4f} exceeds remaining budget "
                f"${remaining:.4f} (limit: ${self.budget_limit:.2f}, "
                f"spent: ${self.current_spend:.4f})"
            )
        return True, f"Within budget (${remaining:.4f} remaining)"

    def record_spend(self, amount: float) -> None:
        """Record actual spend. Not thread-safe."""
        self.current_spend += amount
        logger.debug(f"Recorded spend: ${amount:.4f}, total: ${self.current_spend:.4f}")
