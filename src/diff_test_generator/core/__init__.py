"""Core application package."""

from .application import DiffTestGeneratorApp
from .llm_factory import LLMClientFactory

__all__ = [
    'DiffTestGeneratorApp',
    'LLMClientFactory'
]
