"""Services package for the diff test generator."""

from .base_service import BaseService
from .git_service import GitService
from .github_client import GitHubClient, GitHubFileSource
from .test_generation_service import TestGenerationService, generate_tests_from_targets

__all__ = [
    'BaseService',
    'GitService',
    'GitHubClient',
    'GitHubFileSource',
    'TestGenerationService',
    'generate_tests_from_targets',
]
