"""Command builder for invoking pytest on generated tests with robust env handling."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

# manager -> (marker files, command prefix)
ENVIRONMENT_MANAGERS = {
    'poetry': (('poetry.lock',), ['poetry', 'run']),
    'pipenv': (('Pipfile', 'Pipfile.lock'), ['pipenv', 'run']),
    'uv': (('uv.lock',), ['uv', 'run']),
}


@dataclass
class CommandSpec:
    argv: List[str]
    cwd: Path
    env: Dict[str, str]


def detect_environment_manager(project_root: Path, preferred: Optional[str] = 'auto') -> Optional[str]:
    """Pick the environment manager that owns the project, if its executable is installed."""
    if preferred and preferred not in ('auto', 'none'):
        return preferred if preferred in ENVIRONMENT_MANAGERS else None
    if preferred == 'none':
        return None

    for name, (markers, prefix) in ENVIRONMENT_MANAGERS.items():
        if any((project_root / marker).exists() for marker in markers) and shutil.which(prefix[0]):
            logger.debug(f"Detected {name} environment in {project_root}")
            return name
    return None


def build_pytest_command(
    *,
    project_root: Path,
    config,
    test_files: Sequence[str],
    package_manager: Optional[str] = None,
    coverage: bool = False,
    coverage_report: Optional[str] = None,
) -> CommandSpec:
    """Construct the pytest command, working directory, and environment from config.

    - Runs through ``poetry run`` / ``pipenv run`` / ``uv run`` when the project uses one,
      otherwise through ``python -m pytest``
    - Both framework conventions run under pytest, which collects unittest.TestCase classes
    - Coverage uses pytest-cov with a JSON report so it can be read back afterwards
    - Propagates env by default; merges env.extra; appends env.append_pythonpath to PYTHONPATH
    """
    manager = package_manager or detect_environment_manager(
        project_root, config.get('test_generation.runner.environment_manager', 'auto'))
    runner_python = config.get('test_generation.runner.python') or sys.executable
    extra_args = list(config.get('test_generation.runner.args', []) or [])

    if manager in ENVIRONMENT_MANAGERS:
        argv = [*ENVIRONMENT_MANAGERS[manager][1], 'python', '-m', 'pytest']
    else:
        argv = [runner_python, '-m', 'pytest']

    # xunit1 junit output carries file and line attributes per test case
    argv += ['-o', 'junit_family=xunit1', '-q']
    if coverage:
        report = coverage_report or config.get('test_generation.coverage_report_path', 'coverage.json')
        argv += [f'--cov={project_root}', '--cov-branch', f'--cov-report=json:{report}']
    argv += [*extra_args, *test_files]

    base_env: Dict[str, str] = dict(os.environ) if config.get('test_generation.runner.env.propagate', True) else {}
    for k, v in (config.get('test_generation.runner.env.extra', {}) or {}).items():
        base_env[str(k)] = str(v)

    append_paths = list(config.get('test_generation.runner.env.append_pythonpath', []) or [])
    if append_paths:
        existing = base_env.get('PYTHONPATH', '')
        parts: List[str] = [p for p in (existing.split(os.pathsep) if existing else []) if p]
        parts.extend(str(Path(p)) for p in append_paths)
        base_env['PYTHONPATH'] = os.pathsep.join(parts)

    return CommandSpec(argv=argv, cwd=project_root, env=base_env)
