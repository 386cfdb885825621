"""Main application orchestrator."""

import logging
from pathlib import Path
from typing import List, Optional

from diff_test_generator.analysis.target_extractor import extract_test_targets
from diff_test_generator.config import Config
from diff_test_generator.core.llm_factory import LLMClientFactory
from diff_test_generator.exceptions import DiffTestGeneratorError, GitHubAPIError
from diff_test_generator.generation.test_generator import TestGenerator
from diff_test_generator.models.data_models import FileDiff, GenerationMode, TestGenerationSummary, TestTarget
from diff_test_generator.reporting import TestGenerationReporter, build_commit_message, build_pr_comment
from diff_test_generator.services import GitHubClient, GitHubFileSource, GitService, TestGenerationService
from diff_test_generator.utils.user_feedback import UserFeedback
from diff_test_generator.utils.writer import TestFileWriter

logger = logging.getLogger(__name__)


class DiffTestGeneratorApp:
    """Coordinates diff collection, target extraction and the generation service."""

    def __init__(self, project_root: Path, config: Config, feedback: Optional[UserFeedback] = None,
                 generator: Optional[TestGenerator] = None, claude_api_key: Optional[str] = None,
                 openai_api_key: Optional[str] = None, google_api_key: Optional[str] = None,
                 dry_run: bool = False):
        self.project_root = Path(project_root)
        self.config = config
        self.feedback = feedback or UserFeedback()
        self.writer = TestFileWriter(self.project_root, dry_run=dry_run)
        self.reporter = TestGenerationReporter(self.project_root)
        self._generator = generator
        self._claude_api_key = claude_api_key
        self._openai_api_key = openai_api_key
        self._google_api_key = google_api_key

    @property
    def generator(self) -> TestGenerator:
        """Built on first use so runs without targets need no credentials."""
        if self._generator is None:
            transport = LLMClientFactory.create_transport(
                self.config, claude_api_key=self._claude_api_key, openai_api_key=self._openai_api_key,
                google_api_key=self._google_api_key)
            self._generator = TestGenerator(transport, self.config)
        return self._generator

    def _mode(self, mode: Optional[str]) -> GenerationMode:
        return GenerationMode(mode or self.config.get('test_generation.mode', 'pr'))

    def _generate(self, targets: List[TestTarget], mode: GenerationMode, file_source=None,
                  ref: Optional[str] = None) -> TestGenerationSummary:
        self.feedback.targets_table(targets)
        if not targets:
            self.feedback.info("No changed functions need tests")
            return TestGenerationSummary()

        service = TestGenerationService(
            self.project_root, self.config, self.generator,
            writer=self.writer, feedback=self.feedback, file_source=file_source, ref=ref,
        )
        return service.generate_tests_from_targets(targets, mode)

    def run_local(self, ref: str = 'HEAD', mode: Optional[str] = None) -> TestGenerationSummary:
        """Generate tests for working-tree changes against ``ref``."""
        self.feedback.section_header(f"Changes against {ref}")
        with self.feedback.status_spinner("Reading git diff"):
            diffs: List[FileDiff] = GitService(self.project_root).changed_files(ref)
        self.feedback.info(f"{len(diffs)} changed file(s)")

        # Working-tree sources are read from disk, hence no ref
        targets = extract_test_targets(diffs, self.writer, None, self.config)
        summary = self._generate(targets, self._mode(mode))
        self.feedback.generation_summary(summary)
        if targets and not self.writer.dry_run:
            self.reporter.generate_report(summary)
        return summary

    def run_pr(self, owner: str, repo: str, number: int, token: str,
               mode: Optional[str] = None) -> TestGenerationSummary:
        """Generate tests for a pull request, then optionally commit them and comment."""
        client = GitHubClient.from_config(self.config, token, owner, repo)
        self.feedback.section_header(f"{owner}/{repo}#{number}")

        pr = client.get_pull_request(number)
        head_ref, head_sha = pr['head']['ref'], pr['head']['sha']
        diffs = client.list_pull_request_files(number)
        self.feedback.info(f"{len(diffs)} changed file(s) on {head_ref}")

        source = GitHubFileSource(client)
        targets = extract_test_targets(diffs, source, head_sha, self.config)
        summary = self._generate(targets, self._mode(mode), file_source=source, ref=head_sha)
        self.feedback.generation_summary(summary)

        self._commit(client, summary, head_ref, number)
        if self.config.get('github.enable_pr_comments', True):
            try:
                client.comment_pr(number, build_pr_comment(
                    summary, self.config.get('test_generation.framework', 'pytest'), self._coverage_notes(summary)))
                self.feedback.success("Posted summary comment")
            except GitHubAPIError as e:
                self.feedback.warning(f"Failed to post PR comment: {e.message}")
        return summary

    def _coverage_notes(self, summary: TestGenerationSummary) -> Optional[str]:
        if summary.coverage_report is None or not self.config.get('github.coverage_summary', True):
            return None
        try:
            return self.generator.generate_coverage_summary(summary) or None
        except DiffTestGeneratorError as e:
            # the comment keeps the plain metrics
            self.feedback.warning(f"Failed to generate coverage summary: {e.message}")
            return None

    def _commit(self, client: GitHubClient, summary: TestGenerationSummary, branch: str, number: int) -> None:
        if not self.config.get('github.enable_auto_commit', False) or not summary.final_contents:
            return
        if summary.tests_failed > 0 and self.config.get('github.skip_commit_on_failure', True):
            self.feedback.warning(
                f"Skipping commit due to {summary.tests_failed} failure(s)",
                "Set github.skip_commit_on_failure to false to commit anyway.",
            )
            return

        message = build_commit_message(summary, self.config.get('github.commit_message_template'), number)
        for path, content in summary.final_contents.items():
            try:
                client.commit_or_update_file(path, content, message, branch)
            except DiffTestGeneratorError as e:
                self.feedback.error(f"Failed to commit {path}: {e.message}", e.suggestion)
                raise
        self.feedback.success(f"Committed {len(summary.final_contents)} test file(s) to {branch}")
