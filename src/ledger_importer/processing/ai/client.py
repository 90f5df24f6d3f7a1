"""Anthropic client used for account suggestions.

The client is created eagerly but connects on first use, so a dry run
without ``ANTHROPIC_API_KEY`` never touches the network. Every request is
checked against the spend budget before it is sent.
"""

import json
import os
import time
from dataclasses import dataclass, field
from typing import Any

import anthropic
from rich.console import Console

from ledger_importer.processing.ai.cost_estimator import DEFAULT_MODEL, CostEstimator
from ledger_importer.processing.ai.models import AIUsageStats
from ledger_importer.utils.logging_config import get_logger

logger = get_logger(__name__)
_console = Console(stderr=True)

# Rough characters-per-token ratio for pre-request cost estimates
CHARS_PER_TOKEN = 4

RETRYABLE_ERRORS = (
    anthropic.RateLimitError,
    anthropic.APIConnectionError,
    anthropic.InternalServerError,
)


class AIClientError(Exception):
    """Base exception for AI client errors."""

    pass


class APIKeyNotFoundError(AIClientError):
    """Raised when the API key environment variable is empty."""

    pass


class BudgetExceededError(AIClientError):
    """Raised when a request would exceed the spend budget."""

    pass


@dataclass
class AIClientConfig:
    """Settings for suggestion requests.

    Attributes:
        api_key_env: Environment variable holding the API key.
        model: Model name.
        max_tokens: Default response token limit.
        requests_per_minute: Requests allowed per rolling minute.
        retry_attempts: Attempts per request for transient failures.
        retry_delay: First backoff delay in seconds, doubled per retry.
        budget_limit: Spend limit in USD for the run, None for unlimited.
    """

    api_key_env: str = "ANTHROPIC_API_KEY"
    model: str = DEFAULT_MODEL
    max_tokens: int = 1024
    requests_per_minute: int = 20
    retry_attempts: int = 3
    retry_delay: float = 1.0
    budget_limit: float | None = 1.00


@dataclass
class RequestWindow:
    """Per-minute request counter."""

    limit: int
    count: int = 0
    opened_at: float = 0.0

    def acquire(self) -> None:
        """Block until another request fits into the current minute."""
        now = time.monotonic()
        if now - self.opened_at >= 60:
            self.count, self.opened_at = 0, now
        elif self.count >= self.limit:
            pause = 60 - (now - self.opened_at)
            _console.print(f"[yellow]Suggestion rate limit reached, pausing {pause:.0f}s...[/yellow]")
            logger.info(f"Rate limit of {self.limit}/min reached, sleeping {pause:.1f}s")
            time.sleep(pause)
            self.count, self.opened_at = 0, time.monotonic()
        self.count += 1


@dataclass
class AIClient:
    """Budget-aware wrapper around ``anthropic.Anthropic``."""

    config: AIClientConfig = field(default_factory=AIClientConfig)
    usage_stats: AIUsageStats = field(default_factory=AIUsageStats)
    cost_estimator: CostEstimator = field(init=False)
    _client: Any = field(default=None, init=False, repr=False)
    _window: RequestWindow = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.cost_estimator = CostEstimator(model=self.config.model, budget_limit=self.config.budget_limit)
        self._window = RequestWindow(limit=self.config.requests_per_minute)

    @property
    def is_available(self) -> bool:
        """True when the API key environment variable is set."""
        return bool(os.environ.get(self.config.api_key_env))

    def _connect(self) -> Any:
        if self._client is None:
            api_key = os.environ.get(self.config.api_key_env)
            if not api_key:
                raise APIKeyNotFoundError(
                    f"API key not found in environment variable: {self.config.api_key_env}"
                )
            self._client = anthropic.Anthropic(api_key=api_key)
            logger.info(f"Suggestion client connected, model {self.config.model}")
        return self._client

    def _create_with_retries(self, system_prompt: str, user_prompt: str, max_tokens: int) -> Any:
        client = self._connect()
        delay = self.config.retry_delay
        attempt = 1
        while True:
            self._window.acquire()
            try:
                return client.messages.create(
                    model=self.config.model,
                    max_tokens=max_tokens,
                    system=system_prompt,
                    messages=[{"role": "user", "content": user_prompt}],
                    timeout=60.0,
                )
            except RETRYABLE_ERRORS as e:
                if attempt >= self.config.retry_attempts:
                    raise AIClientError(f"Request failed after {attempt} attempts: {e}") from e
                logger.warning(f"Suggestion request attempt {attempt} failed ({e}), retrying in {delay}s")
                time.sleep(delay)
                delay *= 2
                attempt += 1
            except anthropic.APIError as e:
                raise AIClientError(f"Request failed: {e}") from e

    def send_message(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
    ) -> tuple[str, int, int]:
        """Send one prompt and record its cost.

        Args:
            system_prompt: System instructions.
            user_prompt: Prompt listing the postings.
            max_tokens: Response token limit, defaults to the configured one.

        Returns:
            Tuple of (response_text, input_tokens, output_tokens).

        Raises:
            BudgetExceededError: If the estimated cost exceeds the remaining budget.
            APIKeyNotFoundError: If no API key is configured.
            AIClientError: If the request fails.
        """
        limit = max_tokens or self.config.max_tokens
        estimate = self.cost_estimator.estimate_cost(
            (len(system_prompt) + len(user_prompt)) // CHARS_PER_TOKEN, limit
        )
        within_budget, msg = self.cost_estimator.check_budget(estimate)
        if not within_budget:
            raise BudgetExceededError(msg)

        response = self._create_with_retries(system_prompt, user_prompt, limit)

        text = response.content[0].text if response.content else ""
        input_tokens = response.usage.input_tokens
        output_tokens = response.usage.output_tokens
        cost = self.cost_estimator.estimate_cost(input_tokens, output_tokens)
        self.cost_estimator.record_spend(cost)
        self.usage_stats.add_request(input_tokens, output_tokens, cost)
        logger.debug(f"Suggestion request: {input_tokens} in, {output_tokens} out, ${cost:.4f}")
        return text, input_tokens, output_tokens

    def parse_json_response(self, response: str) -> dict[str, Any] | list[Any]:
        """Extract the first JSON object or array from a model response.

        Models sometimes wrap the JSON in prose or code fences, so every
        ``{`` or ``[`` is tried as a starting point.

        Raises:
            ValueError: If no JSON object or array can be decoded.
        """
        decoder = json.JSONDecoder()
        for index, char in enumerate(response):
            if char not in "{[":
                continue
            try:
                result, _ = decoder.raw_decode(response, index)
            except json.JSONDecodeError:
                continue
            if isinstance(result, (dict, list)):
                return result
        raise ValueError(f"No JSON found in response: {response[:100]}")

    def get_usage_summary(self) -> str:
        """Human-readable summary of API usage."""
        stats = self.usage_stats
        return (
            "Suggestion API usage:\n"
            f"  Total requests: {stats.total_requests}\n"
            f"  Input tokens: {stats.total_input_tokens:,}\n"
            f"  Output tokens: {stats.total_output_tokens:,}\n"
            f"  Total cost: ${stats.total_cost:.4f}\n"
            f"  Suggestions: {stats.suggestions_made}"
        )
