"""Shared constants for openspec."""

import re

# Change ID validation: kebab-case, first token a verb
CHANGE_ID_PATTERN = re.compile(r'^[a-z]+(-[a-z0-9]+)*$')
MAX_CHANGE_ID_LEN = 64

# Capability directories follow the same kebab-case shape, without the verb rule
CAPABILITY_PATTERN = re.compile(r'^[a-z0-9]+(-[a-z0-9]+)*$')

DEFAULT_VERBS = frozenset({
    "add", "adopt", "allow", "change", "clean", "configure", "consolidate",
    "create", "deprecate", "disable", "document", "drop", "enable", "enforce",
    "expose", "extend", "extract", "fix", "harden", "implement", "improve",
    "integrate", "introduce", "make", "merge", "migrate", "move", "optimize",
    "refactor", "refine", "remove", "rename", "replace", "restructure",
    "retire", "revise", "rework", "simplify", "split", "standardize",
    "support", "tighten", "unify", "update", "upgrade", "use",
})

# Layout under the openspec root
CHANGES_DIR = "changes"
SPECS_DIR = "specs"
ARCHIVE_DIR = "archive"
LOCKS_DIR = ".locks"

PROPOSAL_FILE = "proposal.md"
TASKS_FILE = "tasks.md"
DESIGN_FILE = "design.md"
META_FILE = "meta.env"
SPEC_FILE = "spec.md"

ARCHIVE_DATE_FORMAT = "%Y-%m-%d"

# proposal.md sections in required order. Each canonical name lists the
# heading spellings that count as that section (compared case-insensitively).
PROPOSAL_SECTIONS = [
    ("Executive Summary", ("executive summary", "summary")),
    ("Background", ("background", "why", "background/why", "background / why")),
    ("Goals", ("goals",)),
    ("Scope", ("scope", "non-goals", "scope and non-goals", "scope/non-goals", "scope / non-goals")),
    ("Approach", ("approach", "what changes")),
    ("Risks", ("risks", "risks and mitigations")),
    ("Validation", ("validation", "testing", "validation plan")),
    ("Open Questions", ("open questions",)),
]
