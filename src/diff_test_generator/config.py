"""Configuration management for diff-driven test generation."""

import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml

from diff_test_generator.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".difftest.yml"

FRAMEWORKS = ('pytest', 'unittest')
MODES = ('scaffold', 'pr', 'full')
TEST_LOCATIONS = ('separate', 'co-located')
MAX_FIX_ATTEMPTS_LIMIT = 5


class Config:
    """Configuration management for test generation."""

    DEFAULT_CONFIG = {
        'test_generation': {
            'framework': 'pytest',           # 'pytest' | 'unittest'
            'mode': 'pr',                    # 'scaffold' | 'pr' | 'full'
            'max_tests_per_pr': 50,          # -1 for unlimited
            'max_fix_attempts': 3,           # 0..5 repair cycles per run
            'consolidate_class_targets': False,  # one request per class instead of per method
            'test_location': 'separate',     # 'separate' | 'co-located'
            'test_directory': 'tests',
            'test_file_pattern': 'test_*.py',
            'include_patterns': ['*.py'],
            'exclude_patterns': [
                'tests/*',
                '*/tests/*',
                'test_*.py',
                '*/test_*.py',
                '*_test.py',
                '*conftest.py',
                'setup.py',
                'docs/*',
            ],
            'enable_coverage': False,
            'coverage_report_path': 'coverage.json',
            'min_test_retention': 0.95,      # reject fixes that drop more tests than this allows
            'code_style': {
                'format_generated_code': True,
                'lint_generated_code': False,
                'line_length': 100,
            },
            'runner': {
                'environment_manager': 'auto',  # 'auto' | 'poetry' | 'pipenv' | 'uv' | 'none'
                'python': None,                 # If None, use current sys.executable
                'args': [],                     # Extra pytest args
                'timeout': 600,
                'env': {
                    'propagate': True,
                    'extra': {},
                    'append_pythonpath': [],
                },
            },
        },
        'llm': {
            'provider': 'auto',              # 'auto' | 'claude' | 'openai' | 'google'
            'model': None,
            'max_tokens': 4000,
            'temperature': 0.2,
            'fix_temperature': 0.1,
            'request_delay': 0.0,            # seconds to wait between targets
            'max_rate_limit_retries': 3,
        },
        'context': {
            'max_original_code': 24000,
            'max_error_message': 2000,
            'max_test_output': 4000,
            'max_failure_message': 1000,
            'max_stack': 1500,
        },
        'github': {
            'api_url': 'https://api.github.com',
            'enable_auto_commit': False,
            'enable_pr_comments': True,
            'coverage_summary': True,        # LLM-written coverage notes in the PR comment
            'skip_commit_on_failure': True,
            'commit_message_template': None,
            'max_retries': 3,
            'retry_delay': 1.0,
        },
    }

    def __init__(self, config_file: str = CONFIG_FILENAME):
        self.config_file = config_file
        self.config = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file or use defaults."""
        path = Path(self.config_file)
        if not path.exists():
            return self._deep_merge(self.DEFAULT_CONFIG, {})

        try:
            with open(path, 'r', encoding='utf-8') as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Could not parse {self.config_file}: {e}",
                suggestion="Fix the YAML syntax or regenerate the file with 'difftest init'."
            ) from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(
                f"{self.config_file} must contain a mapping at the top level",
                suggestion="Start from the sample created by 'difftest init'."
            )
        logger.info(f"Loaded configuration from {self.config_file}")
        return self._deep_merge(self.DEFAULT_CONFIG, user_config)

    @classmethod
    def from_dict(cls, overrides: Dict[str, Any]) -> 'Config':
        """Build a configuration from defaults plus an in-memory mapping."""
        instance = cls.__new__(cls)
        instance.config_file = None
        instance.config = instance._deep_merge(cls.DEFAULT_CONFIG, overrides or {})
        return instance

    def get(self, key: str, default=None):
        """Get configuration value using dot notation."""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation."""
        keys = key.split('.')
        node = self.config
        for k in keys[:-1]:
            node = node.setdefault(k, {})
        node[keys[-1]] = value

    def validate(self) -> None:
        """Check option values, raising ConfigurationError on the first problem."""
        framework = self.get('test_generation.framework')
        if framework not in FRAMEWORKS:
            raise ConfigurationError(
                f"Unsupported framework '{framework}'",
                suggestion=f"Use one of: {', '.join(FRAMEWORKS)}"
            )

        mode = self.get('test_generation.mode')
        if mode not in MODES:
            raise ConfigurationError(
                f"Unsupported mode '{mode}'",
                suggestion=f"Use one of: {', '.join(MODES)}"
            )

        location = self.get('test_generation.test_location')
        if location not in TEST_LOCATIONS:
            raise ConfigurationError(
                f"Unsupported test_location '{location}'",
                suggestion=f"Use one of: {', '.join(TEST_LOCATIONS)}"
            )

        max_tests = self.get('test_generation.max_tests_per_pr')
        if not isinstance(max_tests, int) or (max_tests < 1 and max_tests != -1):
            raise ConfigurationError(
                f"max_tests_per_pr must be a positive integer or -1, got {max_tests!r}"
            )

        max_fix = self.get('test_generation.max_fix_attempts')
        if not isinstance(max_fix, int) or not 0 <= max_fix <= MAX_FIX_ATTEMPTS_LIMIT:
            raise ConfigurationError(
                f"max_fix_attempts must be between 0 and {MAX_FIX_ATTEMPTS_LIMIT}, got {max_fix!r}"
            )

        pattern = self.get('test_generation.test_file_pattern', '')
        if '*' not in str(pattern):
            raise ConfigurationError(
                f"test_file_pattern '{pattern}' must contain a '*' placeholder for the module name"
            )

        for key in ('llm.temperature', 'llm.fix_temperature'):
            value = self.get(key)
            if not isinstance(value, (int, float)) or not 0 <= value <= 2:
                raise ConfigurationError(f"{key} must be a number between 0 and 2, got {value!r}")

    def patterns(self, kind: str) -> List[str]:
        return list(self.get(f'test_generation.{kind}_patterns', []) or [])

    def create_sample_config(self, filepath: str = CONFIG_FILENAME) -> None:
        """Create a commented sample configuration file."""
        config_content = """# =============================================================================
# difftest configuration
# =============================================================================
# Only the options you set here override the built-in defaults.

test_generation:
  framework: pytest                 # 'pytest' | 'unittest'
  mode: pr                          # 'scaffold' | 'pr' | 'full' (only 'full' runs tests)
  max_tests_per_pr: 50              # Targets beyond this are skipped, -1 for unlimited
  max_fix_attempts: 3               # Repair cycles after failing tests (0-5)
  consolidate_class_targets: false  # Generate the changed methods of a class in one request

  # Where test files go
  test_location: separate           # 'separate' | 'co-located'
  test_directory: tests             # Used when test_location is 'separate'
  test_file_pattern: 'test_*.py'    # '*' is replaced with the module name

  # Which changed files are considered (shell-style globs)
  include_patterns: ['*.py']
  exclude_patterns: ['tests/*', '*/tests/*', 'test_*.py', '*/test_*.py', '*conftest.py']

  # Coverage delta (full mode only, needs pytest-cov in the project)
  enable_coverage: false
  coverage_report_path: coverage.json

  code_style:
    format_generated_code: true     # black
    lint_generated_code: false      # ruff check --fix
    line_length: 100

  runner:
    environment_manager: auto       # 'auto' | 'poetry' | 'pipenv' | 'uv' | 'none'
    args: []                        # Extra pytest args, e.g. ['-x']
    timeout: 600

# =============================================================================
# LLM
# =============================================================================
# API keys come from CLAUDE_API_KEY, OPENAI_API_KEY or GOOGLE_API_KEY.

llm:
  provider: auto                    # 'auto' | 'claude' | 'openai' | 'google'
  model: null                       # Provider default when null
  max_tokens: 4000
  temperature: 0.2
  fix_temperature: 0.1
  request_delay: 0                  # Seconds to wait between targets
  max_rate_limit_retries: 3

# =============================================================================
# GITHUB (pr command)
# =============================================================================
# The token comes from GITHUB_TOKEN.

github:
  enable_auto_commit: false
  enable_pr_comments: true
  coverage_summary: true            # Ask the LLM for coverage notes when coverage was measured
  skip_commit_on_failure: true
  commit_message_template: null     # Supports {tests_generated}, {targets_processed}, {pr_number}
"""

        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(config_content)

        logger.info(f"Sample configuration created at {filepath}")

    def _deep_merge(self, default: Dict, user: Dict) -> Dict:
        """Deeply merge user config with defaults."""
        result = {}
        for key, value in default.items():
            result[key] = self._deep_merge(value, {}) if isinstance(value, dict) else value

        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
