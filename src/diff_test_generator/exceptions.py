"""Custom exception classes for the diff test generator."""

from enum import Enum
from typing import Any, Dict, List, Optional


class DiffTestGeneratorError(Exception):
    """Base exception for all diff test generator errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def __str__(self):
        result = self.message
        if self.suggestion:
            result += f"\n\nSuggestion: {self.suggestion}"
        return result


class ConfigurationError(DiffTestGeneratorError):
    """Raised when there are configuration-related issues."""
    pass


class ValidationError(DiffTestGeneratorError):
    """Raised when input validation fails."""
    pass


class FileOperationError(DiffTestGeneratorError):
    """Raised when file operations fail."""

    def __init__(self, message: str, filepath: Optional[str] = None, suggestion: Optional[str] = None):
        super().__init__(message, suggestion)
        self.filepath = filepath


class AuthenticationError(DiffTestGeneratorError):
    """Raised when no usable LLM or GitHub credentials are available."""
    pass


class GitHubAPIError(DiffTestGeneratorError):
    """Raised when the GitHub REST API returns an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 headers: Optional[Dict[str, str]] = None, suggestion: Optional[str] = None):
        super().__init__(message, suggestion)
        self.status_code = status_code
        self.headers = headers or {}


class ErrorKind(Enum):
    """Closed set of failure kinds the pipeline reacts to."""
    RATE_LIMIT = "rate_limit"
    QUOTA = "quota"
    NON_RETRYABLE = "non_retryable"
    VALIDATION_FAILURE = "validation_failure"
    EXECUTION_FAILURE = "execution_failure"


class GenerationError(DiffTestGeneratorError):
    """Tagged pipeline error; callers branch on ``kind`` rather than on subclasses.

    Each kind carries its own fields:

    - RATE_LIMIT: ``retry_after`` (seconds), ``available_tokens``, ``requested_tokens``
    - QUOTA: ``provider``
    - NON_RETRYABLE: ``provider`` when raised by a provider call, else ``None``
    - VALIDATION_FAILURE: ``errors``
    - EXECUTION_FAILURE: ``failures``
    """

    def __init__(self, kind: ErrorKind, message: str, *, suggestion: Optional[str] = None,
                 retry_after: Optional[float] = None, available_tokens: Optional[int] = None,
                 requested_tokens: Optional[int] = None, provider: Optional[str] = None,
                 errors: Optional[List[str]] = None, failures: Optional[List[Any]] = None):
        super().__init__(message, suggestion)
        self.kind = kind
        self.retry_after = retry_after
        self.available_tokens = available_tokens
        self.requested_tokens = requested_tokens
        self.provider = provider
        self.errors = errors or []
        self.failures = failures or []

    @classmethod
    def rate_limit(cls, message: str, retry_after: Optional[float] = None,
                   available_tokens: Optional[int] = None,
                   requested_tokens: Optional[int] = None) -> "GenerationError":
        return cls(ErrorKind.RATE_LIMIT, message, retry_after=retry_after,
                   available_tokens=available_tokens, requested_tokens=requested_tokens)

    @classmethod
    def quota(cls, message: str, provider: Optional[str] = None) -> "GenerationError":
        return cls(ErrorKind.QUOTA, message, provider=provider,
                   suggestion="Check the billing and quota settings of your LLM provider account.")

    @classmethod
    def non_retryable(cls, message: str, provider: Optional[str] = None,
                      suggestion: Optional[str] = None) -> "GenerationError":
        return cls(ErrorKind.NON_RETRYABLE, message, provider=provider, suggestion=suggestion)

    @classmethod
    def validation(cls, message: str, errors: List[str]) -> "GenerationError":
        return cls(ErrorKind.VALIDATION_FAILURE, message, errors=errors)

    @classmethod
    def execution(cls, message: str, failures: List[Any]) -> "GenerationError":
        return cls(ErrorKind.EXECUTION_FAILURE, message, failures=failures)

    @property
    def is_retryable(self) -> bool:
        return self.kind in (ErrorKind.RATE_LIMIT, ErrorKind.VALIDATION_FAILURE, ErrorKind.EXECUTION_FAILURE)

    @property
    def aborts_batch(self) -> bool:
        """Quota and provider-raised non-retryable errors make every further call fail."""
        if self.kind is ErrorKind.QUOTA:
            return True
        if self.kind is ErrorKind.NON_RETRYABLE:
            return self.provider is not None
        return False


class DiffParseError(GenerationError):
    """Raised when a file's patch contains a malformed hunk header."""

    def __init__(self, message: str, filename: Optional[str] = None, line: Optional[str] = None):
        super().__init__(ErrorKind.NON_RETRYABLE, message,
                         suggestion="Regenerate the diff with 'git diff' and make sure it is not truncated.")
        self.filename = filename
        self.line = line


class TargetExtractionError(GenerationError):
    """Raised when a changed source file cannot be parsed."""

    def __init__(self, message: str, filepath: Optional[str] = None):
        super().__init__(ErrorKind.NON_RETRYABLE, message)
        self.filepath = filepath


class MergeError(GenerationError):
    """Raised when generated code cannot be merged into an existing test file."""

    def __init__(self, message: str, filepath: Optional[str] = None):
        super().__init__(ErrorKind.NON_RETRYABLE, message)
        self.filepath = filepath


class CodeStyleError(DiffTestGeneratorError):
    """Raised when a formatter or linter cannot process generated code."""

    def __init__(self, message: str, tool: Optional[str] = None):
        super().__init__(message)
        self.tool = tool
