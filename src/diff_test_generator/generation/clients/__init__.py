"""Client transport implementations for LLM providers."""

from .base import LLMTransport, classify_http_error
from .claude import ClaudeTransport
from .gemini import GeminiTransport
from .openai_client import OpenAITransport

__all__ = [
    "LLMTransport",
    "ClaudeTransport",
    "GeminiTransport",
    "OpenAITransport",
    "classify_http_error",
]
