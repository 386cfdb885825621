"""Process runner for executing pytest with structured capture and artifacts."""

from __future__ import annotations

import json
import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .command_builder import CommandSpec

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    returncode: int
    stdout: str
    stderr: str
    duration: float
    cmd: List[str]
    cwd: str
    junit_xml_path: Optional[str] = None


def run_pytest(
    spec: CommandSpec,
    *,
    timeout: Optional[int] = None,
    artifacts_dir: Optional[Path] = None,
    junit_xml: bool = True,
) -> RunResult:
    """Run the provided command spec and capture structured results.

    - Captures stdout/stderr, return code, and duration
    - Writes artifacts (stdout.txt, stderr.txt, cmd.json) to artifacts_dir if provided,
      else to default: spec.cwd/.artifacts/difftest/<epoch_ms>
    - Raises TimeoutError on timeout
    """
    start = time.time()
    final_artifacts_dir = artifacts_dir or _default_artifacts_dir(spec.cwd)
    argv = list(spec.argv)
    junit_path = None
    if junit_xml:
        final_artifacts_dir.mkdir(parents=True, exist_ok=True)
        junit_path = str(final_artifacts_dir / "junit.xml")
        argv = [*argv, "--junitxml", junit_path]

    logger.debug(f"Running: {' '.join(argv)}")
    try:
        completed = subprocess.run(
            argv,
            cwd=spec.cwd,
            env=spec.env,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        partial = RunResult(
            returncode=-1,
            stdout=_as_text(e.stdout),
            stderr=_as_text(e.stderr),
            duration=time.time() - start,
            cmd=argv,
            cwd=str(spec.cwd),
        )
        _write_artifacts(partial, final_artifacts_dir)
        raise TimeoutError(f"pytest timed out after {timeout}s") from e

    result = RunResult(
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        duration=time.time() - start,
        cmd=argv,
        cwd=str(spec.cwd),
        junit_xml_path=junit_path,
    )
    _write_artifacts(result, final_artifacts_dir)
    return result


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode('utf-8', 'replace')
    return value


def _default_artifacts_dir(cwd: Path) -> Path:
    ts = int(time.time() * 1000)
    return Path(cwd) / ".artifacts" / "difftest" / str(ts)


def _write_artifacts(result: RunResult, base_dir: Path) -> None:
    try:
        base_dir.mkdir(parents=True, exist_ok=True)
        (base_dir / "stdout.txt").write_text(result.stdout)
        (base_dir / "stderr.txt").write_text(result.stderr)
        cmd_payload: Dict[str, object] = {
            "argv": result.cmd,
            "cwd": result.cwd,
            "returncode": result.returncode,
            "duration": result.duration,
        }
        (base_dir / "cmd.json").write_text(json.dumps(cmd_payload, indent=2))
    except OSError as e:
        # Best-effort artifacts
        logger.debug(f"Could not write run artifacts to {base_dir}: {e}")
