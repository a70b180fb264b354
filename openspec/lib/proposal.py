"""
proposal.md handling: section extraction, Related capability references,
and the templates `openspec propose` scaffolds.
"""

import re
from dataclasses import dataclass

from openspec.lib.constants import PROPOSAL_SECTIONS

SECTION_RE = re.compile(r'^##\s+(?:\d+[.)]\s*)?(.+?)\s*:?\s*#*\s*$')
RELATED_RE = re.compile(
    r'^\s*(?:[-*]\s+)?\**Related(?:\s+capabilit(?:y|ies))?\**\s*:\**\s*(.*)$',
    re.IGNORECASE,
)
COMMENT_RE = re.compile(r'<!--.*?-->', re.DOTALL)
PLACEHOLDERS = {"", "tbd", "todo", "n/a", "...", "-"}


@dataclass
class ProposalSection:
    heading: str
    canonical: str | None  # Canonical section name, None if unrecognised
    line: int
    body: str

    @property
    def is_empty(self) -> bool:
        text = COMMENT_RE.sub("", self.body).strip()
        return text.lower().rstrip(".") in PLACEHOLDERS


def canonical_section(heading: str) -> str | None:
    """Map a heading to its canonical proposal section name."""
    key = heading.strip().lower()
    for name, aliases in PROPOSAL_SECTIONS:
        if key in aliases:
            return name
    return None


def parse_sections(text: str) -> list[ProposalSection]:
    """Split proposal.md into its '## ' sections, in document order."""
    sections = []
    current = None
    body: list[str] = []
    in_fence = False

    for lineno, line in enumerate(text.split("\n"), 1):
        if line.lstrip().startswith(("```", "~~~")):
            in_fence = not in_fence
        match = None if in_fence else SECTION_RE.match(line)
        if match:
            if current:
                current.body = "\n".join(body).strip()
                sections.append(current)
            heading = match.group(1)
            current = ProposalSection(heading, canonical_section(heading), lineno, "")
            body = []
        elif current:
            body.append(line)

    if current:
        current.body = "\n".join(body).strip()
        sections.append(current)

    return sections


def related_capabilities(text: str) -> list[tuple[str, int]]:
    """Return (capability, line) for every name on a 'Related:' line."""
    refs = []
    for lineno, line in enumerate(COMMENT_RE.sub(lambda m: "\n" * m.group(0).count("\n"), text).split("\n"), 1):
        match = RELATED_RE.match(line)
        if not match:
            continue
        for raw in re.split(r'[,\s]+', match.group(1)):
            name = raw.strip().strip('`*_[]()').rstrip('.')
            if name and name.lower() not in ("none", "n/a"):
                refs.append((name, lineno))
    return refs


def scaffold_proposal(change_id: str, title: str, author: str, created_at: str,
                      capabilities: list[str]) -> str:
    """proposal.md template with every required section, in order."""
    related = ", ".join(f"`{c}`" for c in capabilities) if capabilities else "none"
    lines = [
        f"# Change: {title}",
        "",
        f"- **ID:** {change_id}",
        f"- **Author:** {author}",
        f"- **Created:** {created_at}",
        f"- **Related:** {related}",
        "",
    ]
    guidance = {
        "Executive Summary": "One paragraph: what changes and why it matters.",
        "Background": "Why is this change needed now?",
        "Goals": "Measurable outcomes this change delivers.",
        "Scope": "What is in scope, and the explicit non-goals.",
        "Approach": "How the change will be made; list the capabilities touched.",
        "Risks": "What could go wrong and how it is mitigated.",
        "Validation": "How the change will be verified.",
        "Open Questions": "Unresolved decisions.",
    }
    for name, _ in PROPOSAL_SECTIONS:
        lines.extend([f"## {name}", "", f"<!-- {guidance[name]} -->", ""])
    return "\n".join(lines)


def scaffold_tasks(title: str) -> str:
    return "\n".join([
        f"# Tasks: {title}",
        "",
        "## 1. Implementation",
        "",
        "- [ ] 1.1 Implement the change",
        "- [ ] 1.2 Add tests",
        "",
        "## 2. Validation",
        "",
        "- [ ] 2.1 Run the test suite",
        "",
    ])


def scaffold_delta(capability: str) -> str:
    return "\n".join([
        "## ADDED Requirements",
        "",
        f"### Requirement: {capability} behaviour",
        "Describe the behaviour the system SHALL provide.",
        "",
        "#### Scenario: Primary flow",
        "- **Given** a precondition",
        "- **When** an action happens",
        "- **Then** an observable outcome follows",
        "",
    ])
