"""Command-line interface for the diff test generator."""

import argparse
import logging
import os
import sys
import traceback
from pathlib import Path
from typing import List, Optional

from diff_test_generator.config import CONFIG_FILENAME, MODES, Config
from diff_test_generator.core import DiffTestGeneratorApp
from diff_test_generator.exceptions import AuthenticationError, DiffTestGeneratorError, ValidationError
from diff_test_generator.models.data_models import TestGenerationSummary
from diff_test_generator.utils.user_feedback import UserFeedback


def configure_logging(verbose: bool = False, quiet: bool = False):
    """Configure logging based on verbosity level."""
    if quiet:
        logging.basicConfig(level=logging.ERROR, format='%(message)s')
        logging.getLogger('urllib3').setLevel(logging.WARNING)
        logging.getLogger('requests').setLevel(logging.WARNING)
    elif verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
    else:
        # Progress goes through UserFeedback; logging only carries warnings and errors
        logging.basicConfig(
            level=logging.WARNING,
            format='%(levelname)s: %(message)s'
        )
        logging.getLogger('urllib3').setLevel(logging.ERROR)
        logging.getLogger('requests').setLevel(logging.ERROR)
        logging.getLogger('openai').setLevel(logging.ERROR)
        logging.getLogger('httpx').setLevel(logging.ERROR)


logger = logging.getLogger(__name__)


def setup_argparse() -> argparse.ArgumentParser:
    """Set up command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="difftest",
        description="Generate, run and repair unit tests for the functions a change touches",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--directory", default=".", help="Project root (default: current directory)")
    parser.add_argument("--config", default=CONFIG_FILENAME, help=f"Configuration file (default: {CONFIG_FILENAME})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only show errors")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_generation_options(sub: argparse.ArgumentParser):
        sub.add_argument("--mode", choices=MODES, help="Override test_generation.mode")
        sub.add_argument("--framework", choices=['pytest', 'unittest'], help="Override test_generation.framework")
        sub.add_argument("--max-tests", type=int, help="Override test_generation.max_tests_per_pr (-1 for no limit)")
        sub.add_argument("--max-fix-attempts", type=int, help="Override test_generation.max_fix_attempts")
        sub.add_argument("--coverage", action="store_true", help="Measure the coverage change (full mode)")
        sub.add_argument("--provider", choices=['auto', 'claude', 'openai', 'google'], help="Override llm.provider")
        sub.add_argument("--model", help="Override llm.model")
        sub.add_argument("--claude-api-key", help="Claude API key (can also be set via CLAUDE_API_KEY env var)")
        sub.add_argument("--openai-api-key", help="OpenAI API key (can also be set via OPENAI_API_KEY env var)")
        sub.add_argument("--google-api-key", help="Google API key (can also be set via GOOGLE_API_KEY env var)")

    local = subparsers.add_parser("local", help="Generate tests for working-tree changes")
    local.add_argument("--ref", default="HEAD", help="Git ref to diff against (default: HEAD)")
    local.add_argument("--dry-run", action="store_true", help="Show the test file changes without writing them")
    add_generation_options(local)

    pr = subparsers.add_parser("pr", help="Generate tests for a GitHub pull request")
    pr.add_argument("--repo", required=True, help="Repository as owner/name")
    pr.add_argument("--number", type=int, required=True, help="Pull request number")
    pr.add_argument("--github-token", help="GitHub token (can also be set via GITHUB_TOKEN env var)")
    pr.add_argument("--commit", action="store_true", help="Commit generated tests to the PR branch")
    pr.add_argument("--no-comment", action="store_true", help="Do not post a summary comment")
    add_generation_options(pr)

    init = subparsers.add_parser("init", help=f"Write a sample {CONFIG_FILENAME}")
    init.add_argument("--force", action="store_true", help="Overwrite an existing configuration file")

    return parser


def apply_cli_overrides(args, config: Config) -> None:
    """Apply command-line options on top of the loaded configuration."""
    overrides = {
        'test_generation.mode': getattr(args, 'mode', None),
        'test_generation.framework': getattr(args, 'framework', None),
        'test_generation.max_tests_per_pr': getattr(args, 'max_tests', None),
        'test_generation.max_fix_attempts': getattr(args, 'max_fix_attempts', None),
        'llm.provider': getattr(args, 'provider', None),
        'llm.model': getattr(args, 'model', None),
    }
    for key, value in overrides.items():
        if value is not None:
            config.set(key, value)
    if getattr(args, 'coverage', False):
        config.set('test_generation.enable_coverage', True)
    if getattr(args, 'commit', False):
        config.set('github.enable_auto_commit', True)
    if getattr(args, 'no_comment', False):
        config.set('github.enable_pr_comments', False)


def load_and_validate_config(args, project_root: Path) -> Config:
    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = project_root / config_path
    config = Config(str(config_path))
    apply_cli_overrides(args, config)
    config.validate()
    return config


def handle_init(args, project_root: Path, feedback: UserFeedback) -> int:
    config_file = Path(args.config)
    if not config_file.is_absolute():
        config_file = project_root / config_file
    if config_file.exists() and not args.force:
        feedback.warning(f"{config_file} already exists", "Use --force to overwrite it.")
        return 1
    Config.from_dict({}).create_sample_config(str(config_file))
    feedback.success(f"Sample configuration created at {config_file}")
    return 0


def parse_repo(value: str) -> List[str]:
    parts = value.split('/')
    if len(parts) != 2 or not all(parts):
        raise ValidationError(f"Invalid repository '{value}'", suggestion="Use the owner/name form, e.g. octo/widgets.")
    return parts


def exit_code_for(summary: TestGenerationSummary) -> int:
    return 1 if summary.has_failures or summary.aborted else 0


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run the command and return the process exit status."""
    args = setup_argparse().parse_args(argv)
    feedback = UserFeedback(verbose=args.verbose, quiet=args.quiet)
    configure_logging(verbose=args.verbose, quiet=args.quiet)
    project_root = Path(args.directory).resolve()

    try:
        if args.command == 'init':
            return handle_init(args, project_root, feedback)

        config = load_and_validate_config(args, project_root)
        app = DiffTestGeneratorApp(
            project_root, config, feedback,
            claude_api_key=args.claude_api_key,
            openai_api_key=args.openai_api_key,
            google_api_key=args.google_api_key,
            dry_run=getattr(args, 'dry_run', False),
        )

        if args.command == 'local':
            summary = app.run_local(ref=args.ref)
        else:
            owner, repo = parse_repo(args.repo)
            token = args.github_token or os.environ.get("GITHUB_TOKEN")
            if not token:
                raise AuthenticationError(
                    "No GitHub token provided",
                    suggestion="Pass --github-token or set the GITHUB_TOKEN environment variable."
                )
            summary = app.run_pr(owner, repo, args.number, token)
        return exit_code_for(summary)

    except KeyboardInterrupt:
        feedback.warning("Operation cancelled by user")
        return 130
    except DiffTestGeneratorError as e:
        feedback.error(e.message, e.suggestion)
        return 1
    except Exception as e:
        feedback.error(f"Unexpected error: {e}",
                       "This appears to be a bug. Please report it with the details below.")
        if feedback.verbose:
            feedback.error("Full traceback:", details=traceback.format_exc())
        return 1


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
