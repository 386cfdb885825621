from __future__ import annotations

import logging
from typing import Dict, Optional

import requests

from diff_test_generator.exceptions import GenerationError
from diff_test_generator.utils.retry import with_retry

from .base import LLMTransport, TransientResponseError, classify_http_error, is_transient_status
from .claude import RETRYABLE_ERRORS

logger = logging.getLogger(__name__)

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiTransport(LLMTransport):
    """Google Gemini transport using the generateContent HTTP API."""

    provider = "google"

    def __init__(self, *, api_key: str, model: str = DEFAULT_GEMINI_MODEL, timeout: int = 120,
                 max_retries: int = 3, session: Optional[requests.Session] = None, sleep=None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.api_url = f"{GEMINI_API_URL}/models/{model}:generateContent"
        self._session = session or requests.Session()
        self._sleep = sleep
        self._last_usage: Optional[Dict[str, int]] = None

    def _headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self.api_key,
            "content-type": "application/json",
        }

    def _post(self, payload: Dict) -> requests.Response:
        response = self._session.post(self.api_url, headers=self._headers(), json=payload, timeout=self.timeout)
        if is_transient_status(response.status_code):
            raise TransientResponseError(response)
        return response

    def generate(self, *, system_prompt: str, user_content: str, max_tokens: int,
                 temperature: float = 0.2) -> str:
        config: Dict = {"maxOutputTokens": max_tokens}
        if temperature is not None:
            config["temperature"] = temperature
        payload: Dict = {
            "contents": [{"role": "user", "parts": [{"text": user_content}]}],
            "generationConfig": config,
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        retry_kwargs = {"sleep": self._sleep} if self._sleep else {}
        try:
            response = with_retry(
                lambda: self._post(payload),
                is_retryable=lambda e: isinstance(e, RETRYABLE_ERRORS),
                max_retries=self.max_retries,
                description="Gemini request",
                **retry_kwargs,
            )
        except TransientResponseError as e:
            raise GenerationError.non_retryable(
                f"Gemini API unavailable (HTTP {e.response.status_code}) after {self.max_retries} retries"
            ) from e
        except requests.RequestException as e:
            raise GenerationError.non_retryable(f"Gemini API request failed: {e}") from e

        if response.status_code == 404:
            raise GenerationError.non_retryable(
                f"Gemini model '{self.model}' not found",
                provider=self.provider,
                suggestion="Set llm.model to an available model such as gemini-2.5-flash or gemini-2.5-pro.",
            )
        if response.status_code >= 400:
            raise classify_http_error(response.status_code, response.text, response.headers, self.provider)

        result = response.json()
        usage = result.get('usageMetadata') or {}
        self._last_usage = {
            'input': usage.get('promptTokenCount', 0) or 0,
            'output': usage.get('candidatesTokenCount', 0) or 0,
        }

        candidates = result.get('candidates') or []
        if not candidates:
            raise GenerationError.non_retryable("Gemini API returned no candidates")
        candidate = candidates[0]
        if candidate.get('finishReason') == 'MAX_TOKENS':
            logger.warning("Gemini response truncated at max_tokens; output may be incomplete")
        parts = (candidate.get('content') or {}).get('parts') or []
        return "\n".join(part['text'] for part in parts if 'text' in part)

    def get_token_usage(self) -> Optional[Dict[str, int]]:
        return self._last_usage
