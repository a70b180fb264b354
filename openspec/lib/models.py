"""
Data models for change proposals and capability specs.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class StepKind(Enum):
    GIVEN = "Given"
    WHEN = "When"
    THEN = "Then"


# Relative order a scenario's steps must follow
STEP_ORDER = {StepKind.GIVEN: 0, StepKind.WHEN: 1, StepKind.THEN: 2}


@dataclass
class Step:
    kind: StepKind
    text: str
    conjunction: bool = False  # Written as **And**, inheriting `kind`


@dataclass
class Scenario:
    title: str
    steps: list[Step] = field(default_factory=list)

    def kinds(self) -> set[StepKind]:
        return {s.kind for s in self.steps}


@dataclass
class Requirement:
    """A testable behavioural statement.

    `body` is the prose between the requirement heading and its first
    scenario, with surrounding blank lines stripped.
    """
    title: str
    body: str = ""
    scenarios: list[Scenario] = field(default_factory=list)


@dataclass
class SpecDelta:
    """ADDED/MODIFIED/REMOVED requirement changes for one capability.

    Each mapping preserves document order (dicts are ordered).
    """
    capability: str = ""
    added: dict[str, Requirement] = field(default_factory=dict)
    modified: dict[str, Requirement] = field(default_factory=dict)
    removed: dict[str, Requirement] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)

    def titles(self) -> set[str]:
        return set(self.added) | set(self.modified) | set(self.removed)


@dataclass
class CapabilitySpec:
    """Canonical merged requirements of a capability."""
    name: str
    purpose: str = ""
    requirements: dict[str, Requirement] = field(default_factory=dict)


@dataclass
class Task:
    text: str
    done: bool
    line_number: int
    phase: str | None = None  # Heading the task sits under, if any
    number: str | None = None  # Leading "1.2" style number, if any


@dataclass
class TaskList:
    tasks: list[Task] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return sum(1 for t in self.tasks if not t.done)

    @property
    def completed(self) -> int:
        return sum(1 for t in self.tasks if t.done)

    def phases(self) -> list[str]:
        seen = []
        for t in self.tasks:
            if t.phase and t.phase not in seen:
                seen.append(t.phase)
        return seen


class ChangeStatus(Enum):
    """Lifecycle states, in forward order."""
    DRAFT = "draft"
    VALIDATED = "validated"
    APPLIED = "applied"
    ARCHIVED = "archived"


@dataclass
class ChangeProposal:
    """A change as loaded from disk (meta.env + proposal.md)."""
    id: str
    status: ChangeStatus
    author: str
    created_at: str
    dir: Path
    sections: dict[str, str] = field(default_factory=dict)
    validated_hash: str | None = None
