from __future__ import annotations

import logging
from typing import Dict, Optional

import requests

from diff_test_generator.exceptions import GenerationError
from diff_test_generator.utils.retry import with_retry

from .base import LLMTransport, TransientResponseError, classify_http_error, is_transient_status

logger = logging.getLogger(__name__)

DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-20250514"
RETRYABLE_ERRORS = (TransientResponseError, requests.ConnectionError, requests.Timeout)


class ClaudeTransport(LLMTransport):
    """Anthropic Claude transport using HTTP API."""

    provider = "claude"

    def __init__(self, *, api_key: str, model: str = DEFAULT_CLAUDE_MODEL, timeout: int = 120,
                 max_retries: int = 3, session: Optional[requests.Session] = None, sleep=None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.api_url = "https://api.anthropic.com/v1/messages"
        self._session = session or requests.Session()
        self._sleep = sleep
        self._last_usage: Optional[Dict[str, int]] = None

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

    def _capture_usage(self, result: Dict) -> None:
        usage = result.get('usage') or {}
        self._last_usage = {
            'input': usage.get('input_tokens', 0) or 0,
            'output': usage.get('output_tokens', 0) or 0,
        }

    def _post(self, payload: Dict) -> requests.Response:
        response = self._session.post(self.api_url, headers=self._headers(), json=payload, timeout=self.timeout)
        if is_transient_status(response.status_code):
            raise TransientResponseError(response)
        return response

    def generate(self, *, system_prompt: str, user_content: str, max_tokens: int,
                 temperature: float = 0.2) -> str:
        payload: Dict = {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_content}],
        }
        if temperature is not None:
            payload["temperature"] = temperature

        retry_kwargs = {"sleep": self._sleep} if self._sleep else {}
        try:
            response = with_retry(
                lambda: self._post(payload),
                is_retryable=lambda e: isinstance(e, RETRYABLE_ERRORS),
                max_retries=self.max_retries,
                description="Claude request",
                **retry_kwargs,
            )
        except TransientResponseError as e:
            raise GenerationError.non_retryable(
                f"Claude API unavailable (HTTP {e.response.status_code}) after {self.max_retries} retries"
            ) from e
        except requests.RequestException as e:
            raise GenerationError.non_retryable(f"Claude API request failed: {e}") from e

        if response.status_code >= 400:
            raise classify_http_error(response.status_code, response.text, response.headers, self.provider)

        result = response.json()
        self._capture_usage(result)

        for block in result.get('content', []) or []:
            if block.get('type') == 'text' and 'text' in block:
                return block['text']
        return ""

    def get_token_usage(self) -> Optional[Dict[str, int]]:
        return self._last_usage
