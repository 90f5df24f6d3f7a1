"""Account suggestions for unknown postings.

Example usage:
    from ledger_importer.processing.ai import AccountSuggester

    suggester = AccountSuggester.create(directory, config.suggestions)
    postings = suggester.suggest_accounts(postings, rules_content)
"""

from ledger_importer.processing.ai.client import (
    AIClient,
    AIClientConfig,
    AIClientError,
    APIKeyNotFoundError,
    BudgetExceededError,
)
from ledger_importer.processing.ai.cost_estimator import CostEstimator
from ledger_importer.processing.ai.models import (
    AccountSuggestion,
    AIUsageStats,
    CostEstimate,
    SuggestionBatchResult,
)
from ledger_importer.processing.ai.suggester import (
    AccountSuggester,
    SuggestionCache,
    extract_rule_patterns,
    heuristic_suggestion,
)

__all__ = [
    "AccountSuggester",
    "SuggestionCache",
    "extract_rule_patterns",
    "heuristic_suggestion",
    # Client
    "AIClient",
    "AIClientConfig",
    "AIClientError",
    "APIKeyNotFoundError",
    "BudgetExceededError",
    # Cost estimation
    "CostEstimator",
    "CostEstimate",
    # Result models
    "AccountSuggestion",
    "SuggestionBatchResult",
    "AIUsageStats",
]
