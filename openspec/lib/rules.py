"""
Validation rule configuration.

Loads <root>/rules.yaml to adjust the conventions the validator enforces.
If no rules file exists, returns defaults matching the built-in conventions.

Example rules.yaml:

    extra_verbs: [bump, localize]
    optional_sections: [Open Questions, Risks]
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from openspec.lib.constants import DEFAULT_VERBS, PROPOSAL_SECTIONS

logger = logging.getLogger(__name__)

RULES_FILE = "rules.yaml"


@dataclass
class ValidationRules:
    """Conventions for change ids and proposal.md."""
    verbs: frozenset[str] = DEFAULT_VERBS
    # Sections whose absence is not reported
    optional_sections: frozenset[str] = field(default_factory=frozenset)

    @property
    def section_order(self) -> list[str]:
        return [name for name, _ in PROPOSAL_SECTIONS]


def load_rules(root: Optional[Path]) -> ValidationRules:
    """Load rules.yaml and return ValidationRules.

    If root is None or the file doesn't exist, returns defaults.
    """
    if root is None:
        return ValidationRules()

    rules_path = root / RULES_FILE
    if not rules_path.exists():
        return ValidationRules()

    try:
        data = yaml.safe_load(rules_path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError("top level must be a mapping")

        verbs = set(DEFAULT_VERBS)
        verbs.update(str(v).strip().lower() for v in data.get("extra_verbs") or [])

        known = {name for name, _ in PROPOSAL_SECTIONS}
        optional = set()
        for name in data.get("optional_sections") or []:
            if name not in known:
                logger.warning(f"{rules_path}: unknown section '{name}' in optional_sections, ignoring")
                continue
            optional.add(name)

        return ValidationRules(verbs=frozenset(verbs), optional_sections=frozenset(optional))
    except (yaml.YAMLError, ValueError, TypeError) as e:
        logger.warning(f"Failed to parse {rules_path}: {e}")
        return ValidationRules()
