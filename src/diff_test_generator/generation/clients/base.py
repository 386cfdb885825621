"""Abstract transport layer for LLM providers.

Each concrete transport should ONLY perform HTTP/API I/O and return raw content
strings. Prompt building, parsing and validation live in higher layers. Provider
failures are surfaced as ``GenerationError`` kinds.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from diff_test_generator.exceptions import GenerationError

QUOTA_MARKERS = ("insufficient_quota", "exceeded your current quota", "credit balance is too low")


def _retry_after(headers: Mapping[str, str]) -> Optional[float]:
    value = headers.get('retry-after') or headers.get('Retry-After')
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def classify_http_error(status_code: int, body: str, headers: Mapping[str, str], provider: str) -> GenerationError:
    """Map a failed provider response onto an error kind.

    Authentication failures and exhausted quota are provider-wide, so they carry
    the provider name and stop the batch. Other client errors only concern the
    request that caused them.
    """
    text = (body or '').lower()
    if status_code == 402 or any(marker in text for marker in QUOTA_MARKERS):
        return GenerationError.quota(f"{provider} quota exhausted (HTTP {status_code})", provider=provider)
    if status_code == 429:
        return GenerationError.rate_limit(f"{provider} rate limit hit", retry_after=_retry_after(headers))
    if status_code in (401, 403):
        return GenerationError.non_retryable(
            f"{provider} rejected the credentials (HTTP {status_code})",
            provider=provider,
            suggestion="Check the API key environment variable for this provider.",
        )
    snippet = (body or '')[:300]
    return GenerationError.non_retryable(f"{provider} request failed (HTTP {status_code}): {snippet}")


def is_transient_status(status_code: Optional[int]) -> bool:
    return status_code is not None and (status_code >= 500 or status_code == 529)


class TransientResponseError(Exception):
    """A 5xx or overloaded response, raised so the retry helper tries again."""

    def __init__(self, response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class LLMTransport(ABC):
    """Abstract base class for provider transports."""

    provider = "llm"

    @abstractmethod
    def generate(self, *, system_prompt: str, user_content: str, max_tokens: int,
                 temperature: float = 0.2) -> str:
        """Send a generation request and return the raw response content (string)."""

    def refine(self, *, system_prompt: str, user_content: str, max_tokens: int,
               temperature: float = 0.1) -> str:
        """Send a repair request; same endpoint with lower-temperature defaults."""
        return self.generate(
            system_prompt=system_prompt,
            user_content=user_content,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    def get_token_usage(self) -> Optional[Dict[str, int]]:
        """Return last-request token usage as a dict with 'input' and 'output' keys if available."""
        return None
