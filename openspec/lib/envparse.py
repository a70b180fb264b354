"""
Safe .env parser and writer.

Used for project.env and each change's meta.env. Values are KEY="value"
pairs; nothing is ever evaluated by a shell, and values carrying shell
metacharacters are rejected so the files stay safe to `source`.
"""

import re
from pathlib import Path

FORBIDDEN_PATTERNS = [
    r'`',           # backticks
    r'\$\(',        # command substitution
    r'\$\{',        # variable expansion
    r';',           # command chaining
    r'&&',          # AND chaining
    r'\|',          # pipe / OR chaining
]

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')


def parse_env(text: str, source: str = "<string>") -> dict[str, str]:
    """
    Parse env text, return dict preserving file order.

    Raises:
        ValueError: if syntax invalid or forbidden pattern found
    """
    result = {}

    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()

        if not line or line.startswith('#'):
            continue

        if '=' not in line:
            raise ValueError(f"{source}:{lineno}: Invalid syntax (no '=')")

        key, _, value = line.partition('=')
        key = key.strip()
        value = value.strip()

        if not KEY_PATTERN.match(key):
            raise ValueError(f"{source}:{lineno}: Invalid key '{key}'")

        if len(value) >= 2:
            if (value.startswith('"') and value.endswith('"')) or \
               (value.startswith("'") and value.endswith("'")):
                value = value[1:-1]

        for pattern in FORBIDDEN_PATTERNS:
            if re.search(pattern, value):
                raise ValueError(f"{source}:{lineno}: Forbidden pattern in value for {key}")

        result[key] = value

    return result


def load_env(filepath: Path) -> dict[str, str]:
    """
    Parse env file safely.

    Raises:
        FileNotFoundError: if file doesn't exist
        ValueError: if syntax invalid or forbidden pattern found
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Env file not found: {filepath}")
    return parse_env(path.read_text(encoding="utf-8"), source=str(path))


def format_env(values: dict[str, str]) -> str:
    """Serialize a dict to KEY="value" lines, skipping None values."""
    lines = []
    for key, value in values.items():
        if value is None:
            continue
        if not KEY_PATTERN.match(key):
            raise ValueError(f"Invalid key '{key}'")
        value = str(value)
        if '"' in value or '\n' in value:
            raise ValueError(f"Value for {key} must be a single line without quotes")
        for pattern in FORBIDDEN_PATTERNS:
            if re.search(pattern, value):
                raise ValueError(f"Forbidden pattern in value for {key}")
        lines.append(f'{key}="{value}"')
    return "\n".join(lines) + "\n"


def merge_env(current: dict[str, str], updates: dict[str, str | None]) -> dict[str, str]:
    """Apply updates to an env dict. A None value removes the key."""
    merged = dict(current)
    for key, value in updates.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged
