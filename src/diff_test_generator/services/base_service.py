"""Shared plumbing for the pipeline services."""

import logging
from abc import ABC
from pathlib import Path
from typing import Optional

from diff_test_generator.config import Config
from diff_test_generator.utils.user_feedback import UserFeedback


class BaseService(ABC):
    """Services report progress through ``UserFeedback`` when given one, else through logging."""

    def __init__(self, project_root: Path, config: Config, feedback: Optional[UserFeedback] = None):
        self.project_root = Path(project_root)
        self.config = config
        self.feedback = feedback
        self.logger = logging.getLogger(self.__class__.__name__)

    def _report(self, level: int, channel: str, message: str, suggestion: Optional[str] = None,
                prefix: str = ""):
        if self.feedback is not None:
            if channel in ("warning", "error"):
                getattr(self.feedback, channel)(message, suggestion)
            else:
                getattr(self.feedback, channel)(message)
            return
        self.logger.log(level, f"{prefix}{message}")
        if suggestion:
            self.logger.log(level, f"Suggestion: {suggestion}")

    def _log_info(self, message: str):
        self._report(logging.INFO, "info", message)

    def _log_success(self, message: str):
        self._report(logging.INFO, "success", message, prefix="SUCCESS: ")

    def _log_warning(self, message: str, suggestion: Optional[str] = None):
        self._report(logging.WARNING, "warning", message, suggestion)

    def _log_error(self, message: str, suggestion: Optional[str] = None):
        self._report(logging.ERROR, "error", message, suggestion)

    def _log_debug(self, message: str):
        # quiet feedback leaves debug output to the logger
        if self.feedback is not None and not self.feedback.verbose:
            self.logger.debug(message)
            return
        self._report(logging.DEBUG, "debug", message)
