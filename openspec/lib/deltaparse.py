"""
Spec delta parser for openspec.

A delta document changes the requirements of one capability:

    ## ADDED Requirements

    ### Requirement: Token Refresh
    The system SHALL refresh access tokens before they expire.

    #### Scenario: Expiring token
    - **Given** a token that expires in 30 seconds
    - **When** the client makes a request
    - **Then** a new token is issued

`scan` collects every structural issue, `parse` raises the first one as a
ParseError. Both are pure: the same text always produces the same result.
The canonical capability spec (specs/<cap>/spec.md) shares the requirement
and scenario grammar and is handled by parse_capability/render_capability.
"""

import re
from dataclasses import dataclass, field

from openspec.lib.errors import ErrorKind, ParseError
from openspec.lib.models import (
    STEP_ORDER,
    CapabilitySpec,
    Requirement,
    Scenario,
    SpecDelta,
    Step,
    StepKind,
)

SECTION_RE = re.compile(r'^##\s+(.+?)\s*$')
REQUIREMENT_RE = re.compile(r'^###\s+Requirement:\s*(.+?)\s*$')
SCENARIO_RE = re.compile(r'^####\s+Scenario:\s*(.+?)\s*$')
OTHER_HEADING_RE = re.compile(r'^(#{1,4})\s')
STEP_RE = re.compile(r'^\s*(?:[-*]\s+)?\*\*(Given|When|Then|And)\*\*:?\s*(.*?)\s*$')
FENCE_RE = re.compile(r'^\s*(```|~~~)')

DELTA_SECTIONS = {
    "ADDED Requirements": "added",
    "MODIFIED Requirements": "modified",
    "REMOVED Requirements": "removed",
}
SECTION_TITLES = {v: k for k, v in DELTA_SECTIONS.items()}
CAPABILITY_SECTIONS = {"Requirements": "requirements"}


@dataclass
class _OpenRequirement:
    section: str
    title: str
    line: int
    body: list[str] = field(default_factory=list)
    scenarios: list[tuple[Scenario, int, list[int]]] = field(default_factory=list)


class _Scanner:
    """Line-oriented scanner shared by delta and capability documents."""

    def __init__(self, sections: dict[str, str]):
        self.section_map = sections
        self.sections: dict[str, dict[str, Requirement]] = {key: {} for key in sections.values()}
        self.issues: list[ParseError] = []
        self.seen_section = False
        self.current_section: str | None = None
        self.requirement: _OpenRequirement | None = None
        self.other_sections: dict[str, list[str]] = {}
        self._other_name: str | None = None

    def issue(self, kind: ErrorKind, line: int, message: str, detail: str | None = None):
        self.issues.append(ParseError(kind, line, message, detail))

    def run(self, text: str):
        in_comment = False
        in_fence = False

        for lineno, line in enumerate(text.split("\n"), 1):
            line = line.rstrip("\r")

            # HTML comments hold template guidance and are dropped whole-line
            if not in_fence and (in_comment or '<!--' in line):
                tail = line.split('<!--')[-1] if '<!--' in line else line
                in_comment = '-->' not in tail
                continue

            if FENCE_RE.match(line):
                in_fence = not in_fence
                self._text(line)
                continue
            if in_fence:
                self._text(line)
                continue

            section = SECTION_RE.match(line)
            if section:
                self._close_requirement()
                name = section.group(1)
                self.current_section = self.section_map.get(name)
                if self.current_section:
                    self.seen_section = True
                    self._other_name = None
                else:
                    self._other_name = name
                    self.other_sections.setdefault(name, [])
                continue

            req = REQUIREMENT_RE.match(line)
            if req:
                self._close_requirement()
                if self.current_section is None:
                    self.issue(
                        ErrorKind.MISSING_SECTION_HEADER, lineno,
                        f"Requirement '{req.group(1)}' is not under an ADDED/MODIFIED/REMOVED Requirements section",
                    )
                    continue
                self.requirement = _OpenRequirement(self.current_section, req.group(1), lineno)
                continue

            scen = SCENARIO_RE.match(line)
            if scen:
                if self.requirement is None:
                    if self.current_section is not None:
                        self.issue(
                            ErrorKind.MISSING_SECTION_HEADER, lineno,
                            f"Scenario '{scen.group(1)}' is not under a '### Requirement:' heading",
                        )
                    continue
                self.requirement.scenarios.append((Scenario(title=scen.group(1)), lineno, []))
                continue

            if OTHER_HEADING_RE.match(line):
                # Any other heading ends the open requirement
                self._close_requirement()
                if line.startswith("# "):
                    self._other_name = None
                continue

            step = STEP_RE.match(line)
            if step and self.requirement is not None and self.requirement.scenarios:
                self._step(step.group(1), step.group(2), lineno)
                continue

            self._text(line)

        self._close_requirement()

    def _text(self, line: str):
        req = self.requirement
        if req is not None:
            if req.scenarios:
                scenario = req.scenarios[-1][0]
                # Continuation of a wrapped step line
                if line.strip() and scenario.steps:
                    last = scenario.steps[-1]
                    last.text = f"{last.text} {line.strip()}".strip()
            else:
                req.body.append(line)
        elif self._other_name is not None:
            self.other_sections[self._other_name].append(line)

    def _step(self, label: str, text: str, lineno: int):
        scenario, _, step_lines = self.requirement.scenarios[-1]
        if label == "And":
            if not scenario.steps:
                self.issue(
                    ErrorKind.STEPS_OUT_OF_ORDER, lineno,
                    f"Scenario '{scenario.title}' starts with **And**",
                )
                return
            scenario.steps.append(Step(scenario.steps[-1].kind, text, conjunction=True))
        else:
            scenario.steps.append(Step(StepKind(label), text))
        step_lines.append(lineno)

    def _close_requirement(self):
        req = self.requirement
        if req is None:
            return
        self.requirement = None

        if not req.scenarios:
            self.issue(
                ErrorKind.REQUIREMENT_WITHOUT_SCENARIO, req.line,
                f"Requirement '{req.title}' has no '#### Scenario:' block",
            )
        for scenario, line, step_lines in req.scenarios:
            self._check_scenario(scenario, line, step_lines)

        mapping = self.sections[req.section]
        if req.title in mapping:
            self.issue(
                ErrorKind.DUPLICATE_REQUIREMENT_TITLE, req.line,
                f"Requirement '{req.title}' appears more than once in "
                f"{_section_label(req.section)}",
            )
            return

        mapping[req.title] = Requirement(
            title=req.title,
            body=_strip_blank("\n".join(req.body)),
            scenarios=[s for s, _, _ in req.scenarios],
        )

    def _check_scenario(self, scenario: Scenario, line: int, step_lines: list[int]):
        present = scenario.kinds()
        for kind in (StepKind.GIVEN, StepKind.WHEN, StepKind.THEN):
            if kind not in present:
                self.issue(
                    ErrorKind.SCENARIO_MISSING_STEP, line,
                    f"Scenario '{scenario.title}' has no **{kind.value}** step",
                    detail=kind.value,
                )

        highest = -1
        for step, step_line in zip(scenario.steps, step_lines):
            rank = STEP_ORDER[step.kind]
            if rank < highest:
                self.issue(
                    ErrorKind.STEPS_OUT_OF_ORDER, step_line,
                    f"Scenario '{scenario.title}': **{step.kind.value}** after a later step",
                )
                break
            highest = rank


def _section_label(section: str) -> str:
    return SECTION_TITLES.get(section, section.capitalize())


def _strip_blank(text: str) -> str:
    """Right-strip each line and drop leading/trailing blank lines."""
    lines = [line.rstrip() for line in text.split("\n")]
    while lines and not lines[0]:
        lines.pop(0)
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


def scan(text: str, capability: str = "") -> tuple[SpecDelta, list[ParseError]]:
    """Parse a delta document, collecting every issue instead of stopping.

    The returned delta holds every requirement that could be placed, even
    when issues were found.
    """
    scanner = _Scanner(DELTA_SECTIONS)
    scanner.run(text)
    if not scanner.seen_section:
        scanner.issues.insert(0, ParseError(
            ErrorKind.MISSING_SECTION_HEADER, 1,
            "No '## ADDED Requirements', '## MODIFIED Requirements' or "
            "'## REMOVED Requirements' section found",
        ))
    # Scenario checks run when a requirement closes; report in document order
    scanner.issues.sort(key=lambda issue: issue.line)
    delta = SpecDelta(
        capability=capability,
        added=scanner.sections["added"],
        modified=scanner.sections["modified"],
        removed=scanner.sections["removed"],
    )
    return delta, scanner.issues


def parse(text: str, capability: str = "") -> SpecDelta:
    """Parse a delta document.

    Raises:
        ParseError: for the first structural issue found
    """
    delta, issues = scan(text, capability)
    if issues:
        raise issues[0]
    return delta


def _render_requirement(req: Requirement) -> list[str]:
    lines = [f"### Requirement: {req.title}"]
    if req.body:
        lines.extend(req.body.split("\n"))
    for scenario in req.scenarios:
        lines.append("")
        lines.append(f"#### Scenario: {scenario.title}")
        for step in scenario.steps:
            label = "And" if step.conjunction else step.kind.value
            lines.append(f"- **{label}** {step.text}".rstrip())
    lines.append("")
    return lines


def render(delta: SpecDelta) -> str:
    """Serialise a delta back to markdown."""
    parts = [
        (key, getattr(delta, key)) for key in ("added", "modified", "removed")
    ]
    non_empty = [(key, reqs) for key, reqs in parts if reqs] or parts

    lines = []
    for key, reqs in non_empty:
        lines.append(f"## {SECTION_TITLES[key]}")
        lines.append("")
        for req in reqs.values():
            lines.extend(_render_requirement(req))
    return "\n".join(lines).rstrip("\n") + "\n"


def parse_capability(text: str, name: str) -> CapabilitySpec:
    """Parse a canonical specs/<cap>/spec.md.

    Only duplicate titles and requirements outside '## Requirements' are
    fatal; scenario rules were enforced when the requirements were merged.
    """
    scanner = _Scanner(CAPABILITY_SECTIONS)
    scanner.run(text)
    for issue in scanner.issues:
        if issue.kind in (ErrorKind.DUPLICATE_REQUIREMENT_TITLE, ErrorKind.MISSING_SECTION_HEADER):
            raise issue
    purpose = _strip_blank("\n".join(scanner.other_sections.get("Purpose", [])))
    return CapabilitySpec(name=name, purpose=purpose, requirements=scanner.sections["requirements"])


def render_capability(spec: CapabilitySpec) -> str:
    """Serialise a canonical capability spec."""
    purpose = spec.purpose or f"TBD - created by archiving changes to {spec.name}."
    lines = [
        f"# {spec.name} Specification",
        "",
        "## Purpose",
        purpose,
        "",
        "## Requirements",
        "",
    ]
    for req in spec.requirements.values():
        lines.extend(_render_requirement(req))
    return "\n".join(lines).rstrip("\n") + "\n"
