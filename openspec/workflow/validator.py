"""
Change validator.

Checks a change directory against the structural conventions and returns a
ValidationReport. Checks never stop early: every problem is collected so
the CLI can show them all at once.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from openspec.lib import deltaparse
from openspec.lib.constants import CAPABILITY_PATTERN, PROPOSAL_FILE, TASKS_FILE
from openspec.lib.errors import ParseError
from openspec.lib.proposal import parse_sections, related_capabilities
from openspec.lib.rules import ValidationRules
from openspec.lib.store import DocumentStore
from openspec.lib.taskparse import scan_tasks

logger = logging.getLogger(__name__)


class Severity(Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


@dataclass
class Diagnostic:
    severity: Severity
    file: str  # Relative to the openspec root
    line: int | None
    message: str
    code: str = ""

    def location(self) -> str:
        return f"{self.file}:{self.line}" if self.line else self.file

    def format(self) -> str:
        code = f" [{self.code}]" if self.code else ""
        return f"{self.severity.value:<7} {self.location()}: {self.message}{code}"


@dataclass
class ValidationReport:
    change_id: str
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def add(self, severity: Severity, file: str, line: int | None, message: str, code: str = ""):
        self.diagnostics.append(Diagnostic(severity, file, line, message, code))

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]

    def passed(self, strict: bool = False) -> bool:
        """Errors always fail; strict mode also fails on warnings."""
        if self.errors:
            return False
        return not (strict and self.warnings)

    def format(self, strict: bool = False) -> str:
        lines = [d.format() for d in self.diagnostics]
        verdict = "valid" if self.passed(strict) else "INVALID"
        mode = " (strict)" if strict else ""
        lines.append(
            f"Change '{self.change_id}' is {verdict}{mode}: "
            f"{len(self.errors)} error(s), {len(self.warnings)} warning(s)"
        )
        return "\n".join(lines)


class Validator:
    """Structural checks for one change directory."""

    def __init__(self, store: DocumentStore, rules: ValidationRules | None = None):
        self.store = store
        self.rules = rules or ValidationRules()

    def _rel(self, path: Path) -> str:
        try:
            return path.relative_to(self.store.root).as_posix()
        except ValueError:
            return str(path)

    def validate(self, change_dir: Path) -> ValidationReport:
        report = ValidationReport(change_id=change_dir.name)
        logger.debug(f"Validating {change_dir}")

        proposal_path = change_dir / PROPOSAL_FILE
        tasks_path = change_dir / TASKS_FILE
        deltas = self.store.delta_files(change_dir)

        # 1. Required files
        for path in (proposal_path, tasks_path):
            if not path.is_file():
                report.add(Severity.ERROR, self._rel(path), None,
                           f"Required file {path.name} is missing", "MissingFile")
        if not deltas:
            report.add(Severity.ERROR, self._rel(change_dir / "specs"), None,
                       "No spec delta found; expected specs/<capability>/spec.md", "MissingDelta")

        # 3, 4, 7, 8. Spec deltas
        parsed = {}
        for capability, path in deltas:
            delta = self._check_delta(report, capability, path)
            if delta is not None:
                parsed[capability] = delta

        # 2, 5. proposal.md
        if proposal_path.is_file():
            text = self.store.read_text(proposal_path)
            self._check_sections(report, proposal_path, text)
            self._check_related(report, proposal_path, text, parsed)

        # 6. tasks.md
        if tasks_path.is_file():
            self._check_tasks(report, tasks_path)

        logger.debug(
            f"Validated {change_dir.name}: {len(report.errors)} error(s), "
            f"{len(report.warnings)} warning(s)"
        )
        return report

    def _check_sections(self, report: ValidationReport, path: Path, text: str):
        rel = self._rel(path)
        order = self.rules.section_order
        sections = [s for s in parse_sections(text) if s.canonical]

        if not sections:
            report.add(Severity.ERROR, rel, None,
                       f"No recognised sections; expected: {', '.join(order)}",
                       "MissingSectionHeader")
            return

        seen = {}
        highest = None
        for section in sections:
            if section.canonical in seen:
                report.add(Severity.WARNING, rel, section.line,
                           f"Section '{section.canonical}' appears more than once",
                           "DuplicateSection")
                continue
            seen[section.canonical] = section
            rank = order.index(section.canonical)
            if highest is not None and rank < order.index(highest):
                report.add(Severity.ERROR, rel, section.line,
                           f"Section '{section.canonical}' must come before '{highest}'",
                           "SectionOutOfOrder")
            else:
                highest = section.canonical

        missing = [
            name for name in order
            if name not in self.rules.optional_sections
            and (name not in seen or seen[name].is_empty)
        ]
        if missing:
            report.add(Severity.WARNING, rel, None,
                       f"Sections missing or empty: {', '.join(missing)}",
                       "MissingSectionHeader")

    def _check_delta(self, report: ValidationReport, capability: str, path: Path):
        rel = self._rel(path)

        if not CAPABILITY_PATTERN.match(capability):
            report.add(Severity.ERROR, rel, None,
                       f"Capability name '{capability}' must be kebab-case",
                       "InvalidCapability")

        delta, issues = deltaparse.scan(self.store.read_text(path), capability)
        for issue in issues:
            report.add(Severity.ERROR, rel, issue.line, issue.message, issue.kind.value)

        if not issues and delta.is_empty():
            report.add(Severity.WARNING, rel, None,
                       "Delta declares no requirements", "EmptyDelta")

        self._check_targets(report, rel, capability, delta)
        return delta

    def _check_targets(self, report: ValidationReport, rel: str, capability: str, delta):
        """Warn early about deltas that cannot merge into the current canonical spec."""
        if delta.is_empty():
            return

        existing: set[str] = set()
        if self.store.capability_exists(capability):
            spec_path = self.store.capability_path(capability)
            try:
                spec = deltaparse.parse_capability(self.store.read_text(spec_path), capability)
            except ParseError as e:
                report.add(Severity.ERROR, self._rel(spec_path), e.line, e.message, e.kind.value)
                return
            existing = set(spec.requirements)

        for op, titles in (("MODIFIED", delta.modified), ("REMOVED", delta.removed)):
            for title in titles:
                if title not in existing:
                    report.add(Severity.WARNING, rel, None,
                               f"{op} requirement '{title}' does not exist in "
                               f"capability '{capability}'",
                               "RequirementNotFound")
        for title in delta.added:
            if title in existing and title not in delta.removed:
                report.add(Severity.WARNING, rel, None,
                           f"ADDED requirement '{title}' already exists in "
                           f"capability '{capability}'",
                           "RequirementAlreadyExists")

    def _check_related(self, report: ValidationReport, path: Path, text: str, parsed: dict):
        rel = self._rel(path)
        introduced = {cap for cap, delta in parsed.items() if delta.added}
        existing = set(self.store.list_capabilities())

        for name, line in related_capabilities(text):
            if name in existing or name in introduced:
                continue
            report.add(Severity.ERROR, rel, line,
                       f"Related capability '{name}' does not exist and is not "
                       f"introduced by an ADDED delta in this change",
                       "UnknownCapability")

    def _check_tasks(self, report: ValidationReport, path: Path):
        rel = self._rel(path)
        task_list, issues = scan_tasks(self.store.read_text(path))
        for issue in issues:
            report.add(Severity.ERROR, rel, issue.line, issue.message, "InvalidTaskLine")
        if not task_list.tasks and not issues:
            report.add(Severity.WARNING, rel, None,
                       "No checklist items found", "EmptyTasks")
