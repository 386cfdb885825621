from __future__ import annotations

import logging
from typing import Dict, Optional

import openai

from diff_test_generator.exceptions import GenerationError

from .base import LLMTransport, classify_http_error

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4.1"


class OpenAITransport(LLMTransport):
    """OpenAI transport using official SDK. Only handles API I/O."""

    provider = "openai"

    def __init__(self, api_key: str, model: str = DEFAULT_OPENAI_MODEL, max_retries: int = 3, client=None):
        if client is None:
            client = openai.OpenAI(api_key=api_key, timeout=300.0, max_retries=max_retries)

        self.model = model
        self._client = client
        self._last_usage: Optional[Dict[str, int]] = None

    def generate(self, *, system_prompt: str, user_content: str, max_tokens: int,
                 temperature: float = 0.2) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.APIStatusError as e:
            headers = dict(e.response.headers) if getattr(e, 'response', None) is not None else {}
            raise classify_http_error(e.status_code, str(e), headers, self.provider) from e
        except openai.APIConnectionError as e:
            raise GenerationError.non_retryable(f"OpenAI API request failed: {e}") from e

        self._capture_usage(response)
        return response.choices[0].message.content or ""

    def _capture_usage(self, response) -> None:
        usage = getattr(response, 'usage', None)
        if usage:
            self._last_usage = {
                'input': getattr(usage, 'prompt_tokens', 0) or 0,
                'output': getattr(usage, 'completion_tokens', 0) or 0,
            }
        else:
            self._last_usage = None

    def get_token_usage(self) -> Optional[Dict[str, int]]:
        return self._last_usage
