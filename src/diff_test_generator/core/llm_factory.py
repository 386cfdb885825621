"""Factory for creating LLM transports."""

import logging
import os
from typing import Optional

from diff_test_generator.exceptions import AuthenticationError, ConfigurationError
from diff_test_generator.generation.clients import ClaudeTransport, GeminiTransport, LLMTransport, OpenAITransport
from diff_test_generator.generation.clients.claude import DEFAULT_CLAUDE_MODEL
from diff_test_generator.generation.clients.gemini import DEFAULT_GEMINI_MODEL
from diff_test_generator.generation.clients.openai_client import DEFAULT_OPENAI_MODEL

logger = logging.getLogger(__name__)

PROVIDERS = ('auto', 'claude', 'openai', 'google')


class LLMClientFactory:
    """Factory for creating the transport configured for this run."""

    @staticmethod
    def create_transport(config, claude_api_key: Optional[str] = None,
                         openai_api_key: Optional[str] = None,
                         google_api_key: Optional[str] = None) -> LLMTransport:
        """Create a transport from explicit keys, then environment variables.

        With provider ``auto`` the first available key wins, in the order
        Claude, OpenAI, Google.
        """
        provider = config.get('llm.provider', 'auto') or 'auto'
        if provider not in PROVIDERS:
            raise ConfigurationError(
                f"Unknown LLM provider '{provider}'",
                suggestion=f"Use one of: {', '.join(PROVIDERS)}"
            )

        claude_api_key = claude_api_key or os.environ.get("CLAUDE_API_KEY") or os.environ.get("ANTHROPIC_API_KEY")
        openai_api_key = openai_api_key or os.environ.get("OPENAI_API_KEY")
        google_api_key = google_api_key or os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY")
        model = config.get('llm.model')

        if provider in ('auto', 'claude') and claude_api_key:
            logger.info("Using Claude transport")
            return ClaudeTransport(api_key=claude_api_key, model=model or DEFAULT_CLAUDE_MODEL)
        if provider in ('auto', 'openai') and openai_api_key:
            logger.info("Using OpenAI transport")
            return OpenAITransport(api_key=openai_api_key, model=model or DEFAULT_OPENAI_MODEL)
        if provider in ('auto', 'google') and google_api_key:
            logger.info("Using Gemini transport")
            return GeminiTransport(api_key=google_api_key, model=model or DEFAULT_GEMINI_MODEL)

        raise AuthenticationError(
            "No LLM API credentials provided",
            suggestion="Provide either:\n" +
            "  1. Claude API key: --claude-api-key or set CLAUDE_API_KEY environment variable\n" +
            "  2. OpenAI API key: --openai-api-key or set OPENAI_API_KEY environment variable\n" +
            "  3. Google API key: --google-api-key or set GOOGLE_API_KEY environment variable"
        )
