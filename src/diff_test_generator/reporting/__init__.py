"""Reporting for test generation runs."""

from .reporter import TestGenerationReporter, build_commit_message, build_pr_comment

__all__ = [
    "TestGenerationReporter",
    "build_commit_message",
    "build_pr_comment",
]
