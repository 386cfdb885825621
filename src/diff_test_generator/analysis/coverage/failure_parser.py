"""Parse pytest results from JUnit XML or stdout/stderr into per-case records."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

logger = logging.getLogger(__name__)

PASSED = 'passed'
FAILED = 'failed'
ERROR = 'error'
SKIPPED = 'skipped'

JUNIT_OUTCOMES = (('failure', FAILED), ('error', ERROR), ('skipped', SKIPPED))

NODEID = r"[^\s]+\.py(?:::[\w\[\]:,\-\.\{\}\"'\/\?=]*)*"


@dataclass
class CaseRecord:
    nodeid: str
    file: str
    name: str
    outcome: str
    line: Optional[int] = None
    message: str = ""
    details: str = ""
    duration: float = 0.0

    @property
    def is_failure(self) -> bool:
        return self.outcome in (FAILED, ERROR)


def parse_junit_xml(junit_path: Path) -> List[CaseRecord]:
    """Read every test case from a JUnit report, passing ones included.

    Returns an empty list when the report is missing or unreadable so the
    caller can fall back to stdout parsing.
    """
    records: List[CaseRecord] = []
    try:
        root = ET.parse(str(junit_path)).getroot()
    except (ET.ParseError, OSError) as e:
        logger.debug(f"Could not read JUnit report {junit_path}: {e}")
        return records

    for case in root.iter('testcase'):
        classname = case.attrib.get('classname', '')
        name = case.attrib.get('name', '')
        time_attr = case.attrib.get('time')
        duration = float(time_attr) if time_attr else 0.0
        file_attr = case.attrib.get('file') or _file_from_classname(classname, name)
        line_attr = case.attrib.get('line')
        line = int(line_attr) + 1 if line_attr and line_attr.isdigit() else None

        outcome = PASSED
        message = ""
        details = ""
        for tag, tag_outcome in JUNIT_OUTCOMES:
            elem = case.find(tag)
            if elem is not None:
                outcome = tag_outcome
                message = (elem.attrib.get('message') or '').strip()
                details = (elem.text or '').strip()
                break

        records.append(CaseRecord(
            nodeid=_nodeid(file_attr, classname, name),
            file=file_attr,
            name=name,
            outcome=outcome,
            line=line,
            message=message or _first_line(details),
            details=details,
            duration=duration,
        ))
    return records


def parse_stdout_stderr(stdout: str, stderr: str) -> List[CaseRecord]:
    """Recover failing cases from pytest console output.

    Handles:
    1. Main test run format: "path::test FAILED/ERROR"
    2. Short summary format: "FAILED/ERROR path::test - message"
    3. Collection errors: "ERROR path.py - ImportError: message"
    """
    if not stdout and not stderr:
        return []

    text = (stdout or "") + "\n" + (stderr or "")
    by_nodeid: Dict[str, CaseRecord] = {}

    main_pattern = rf"^(?P<path>{NODEID})\s+(?P<status>FAILED|ERROR)"
    for match in re.finditer(main_pattern, text, re.MULTILINE):
        nodeid = match.group('path')
        snippet = text[match.end():match.end() + 500]
        by_nodeid.setdefault(nodeid, _failed_record(
            nodeid, match.group('status'), f"Test {match.group('status').lower()}", snippet))

    summary_pattern = rf"^(?P<status>FAILED|ERROR)\s+(?P<path>{NODEID})(?:\s+-\s+(?P<message>.*))?"
    for match in re.finditer(summary_pattern, text, re.MULTILINE):
        nodeid = match.group('path')
        message = (match.group('message') or '').strip()
        if nodeid in by_nodeid:
            if message:
                by_nodeid[nodeid].message = message
            continue
        by_nodeid[nodeid] = _failed_record(
            nodeid, match.group('status'), message or f"Test {match.group('status').lower()}", message)

    collection_pattern = r"^ERROR\s+(?P<path>[^\s:]+\.py)\s+-\s+(?P<message>.*)"
    for match in re.finditer(collection_pattern, text, re.MULTILINE):
        nodeid = f"{match.group('path')}::collection_error"
        by_nodeid.setdefault(nodeid, _failed_record(
            nodeid, 'ERROR', f"Collection error: {match.group('message').strip()}", ""))

    return list(by_nodeid.values())


def _failed_record(nodeid: str, status: str, message: str, context: str) -> CaseRecord:
    file_path, _, name = nodeid.partition('::')
    return CaseRecord(
        nodeid=nodeid,
        file=file_path,
        name=name.rsplit('::', 1)[-1] or file_path,
        outcome=ERROR if status == 'ERROR' else FAILED,
        message=message,
        details=_extract_assertion_diff(context) or "",
    )


def _nodeid(file_path: str, classname: str, name: str) -> str:
    parts = [file_path]
    module = file_path[:-3].replace('/', '.') if file_path.endswith('.py') else ''
    if classname and module and classname.startswith(module + '.'):
        parts.append(classname[len(module) + 1:])
    if name:
        parts.append(name)
    return "::".join(parts)


def _file_from_classname(classname: str, name: str) -> str:
    # Collection errors are reported with an empty classname and the module as name
    dotted = classname or name
    segments = dotted.split('.')
    while len(segments) > 1 and segments[-1][:1].isupper():
        segments.pop()
    return '/'.join(segments) + '.py'


def _first_line(text: str) -> str:
    return text.splitlines()[0].strip() if text else ""


def _extract_assertion_diff(text: str) -> Optional[str]:
    m = re.search(r"(AssertionError[\s\S]{0,400})", text)
    if m:
        return m.group(1)
    m = re.search(r"(assert [\s\S]{0,400})", text)
    if m:
        return m.group(1)
    return None
