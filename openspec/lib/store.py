"""
Document store for openspec.

Owns the on-disk layout under the openspec root:

    changes/<id>/{proposal.md,tasks.md,design.md?,meta.env,specs/<cap>/spec.md}
    specs/<cap>/spec.md
    archive/<date>-<id>/...

All writes go through atomic_write (temp file + rename) so a reader never
sees a half-written document.
"""

import hashlib
import logging
import os
from datetime import datetime
from pathlib import Path

from openspec.lib import envparse, schema
from openspec.lib.constants import (
    ARCHIVE_DATE_FORMAT,
    ARCHIVE_DIR,
    CHANGES_DIR,
    DESIGN_FILE,
    LOCKS_DIR,
    META_FILE,
    PROPOSAL_FILE,
    SPEC_FILE,
    SPECS_DIR,
    TASKS_FILE,
)
from openspec.lib.taskparse import normalize_checkboxes

logger = logging.getLogger(__name__)


def atomic_write(path: Path, content: str) -> None:
    """Write text to path via a sibling temp file and rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def load_meta(change_dir: Path) -> dict[str, str]:
    """Load and schema-check a change's meta.env."""
    meta = envparse.load_env(change_dir / META_FILE)
    schema.validate(meta, "meta")
    return meta


def update_meta(change_dir: Path, updates: dict[str, str | None]) -> dict[str, str]:
    """Merge updates into meta.env (None removes a key) and write atomically."""
    meta_path = change_dir / META_FILE
    current = envparse.load_env(meta_path) if meta_path.exists() else {}
    merged = envparse.merge_env(current, updates)
    schema.validate_before_write(merged, "meta", meta_path)
    atomic_write(meta_path, envparse.format_env(merged))
    return merged


class DocumentStore:
    """Filesystem access for changes, canonical specs and the archive."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.changes_dir = self.root / CHANGES_DIR
        self.specs_dir = self.root / SPECS_DIR
        self.archive_dir = self.root / ARCHIVE_DIR
        self.locks_dir = self.root / LOCKS_DIR

    # Changes

    def change_dir(self, change_id: str) -> Path:
        return self.changes_dir / change_id

    def change_exists(self, change_id: str) -> bool:
        return self.change_dir(change_id).is_dir()

    def list_change_ids(self) -> list[str]:
        if not self.changes_dir.exists():
            return []
        return sorted(
            d.name for d in self.changes_dir.iterdir()
            if d.is_dir() and not d.name.startswith((".", "_"))
        )

    def find_archived(self, change_id: str) -> Path | None:
        """Return archive/<date>-<id> for an archived change, if any."""
        if not self.archive_dir.exists():
            return None
        for d in sorted(self.archive_dir.iterdir()):
            if not d.is_dir():
                continue
            # <YYYY-MM-DD>-<id>
            if len(d.name) > 11 and d.name[10] == "-" and d.name[11:] == change_id:
                return d
        return None

    def list_archived(self) -> list[Path]:
        if not self.archive_dir.exists():
            return []
        return sorted(d for d in self.archive_dir.iterdir() if d.is_dir())

    def delta_files(self, change_dir: Path) -> list[tuple[str, Path]]:
        """Return (capability, path) for each specs/<cap>/spec.md in a change."""
        specs = change_dir / SPECS_DIR
        if not specs.is_dir():
            return []
        return [
            (p.parent.name, p)
            for p in sorted(specs.glob(f"*/{SPEC_FILE}"))
            if p.is_file()
        ]

    def tracked_files(self, change_dir: Path) -> list[Path]:
        """Files whose content makes up a change's fingerprint."""
        files = [change_dir / PROPOSAL_FILE, change_dir / TASKS_FILE, change_dir / DESIGN_FILE]
        files.extend(path for _, path in self.delta_files(change_dir))
        return [f for f in files if f.is_file()]

    def fingerprint(self, change_dir: Path) -> str:
        """SHA-256 over tracked files.

        Checkbox state in tasks.md is normalised away; ticking tasks while
        implementing must not invalidate a validation.
        """
        digest = hashlib.sha256()
        for path in self.tracked_files(change_dir):
            content = path.read_text(encoding="utf-8")
            if path.name == TASKS_FILE and path.parent == change_dir:
                content = normalize_checkboxes(content)
            digest.update(path.relative_to(change_dir).as_posix().encode("utf-8"))
            digest.update(b"\0")
            digest.update(content.encode("utf-8"))
            digest.update(b"\0")
        return digest.hexdigest()

    def archive_target(self, change_id: str, when: datetime | None = None) -> Path:
        """Reserve archive/<date>-<id>/ for a change about to be archived.

        Creates archive/ but not the target itself.

        Raises:
            FileExistsError: if the target is already taken
        """
        when = when or datetime.now()
        target = self.archive_dir / f"{when.strftime(ARCHIVE_DATE_FORMAT)}-{change_id}"
        if target.exists():
            raise FileExistsError(f"Archive target already exists: {target}")
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        return target

    def move_to_archive(self, change_dir: Path, target: Path) -> Path:
        """Rename a change directory to its archive target."""
        if target.exists():
            raise FileExistsError(f"Archive target already exists: {target}")
        change_dir.rename(target)
        logger.info(f"Archived {change_dir} -> {target}")
        return target

    # Canonical specs

    def capability_path(self, capability: str) -> Path:
        return self.specs_dir / capability / SPEC_FILE

    def capability_exists(self, capability: str) -> bool:
        return self.capability_path(capability).is_file()

    def list_capabilities(self) -> list[str]:
        if not self.specs_dir.exists():
            return []
        return sorted(p.parent.name for p in self.specs_dir.glob(f"*/{SPEC_FILE}") if p.is_file())

    # Plain documents

    def read_text(self, path: Path) -> str:
        return Path(path).read_text(encoding="utf-8")

    def read_optional(self, path: Path) -> str | None:
        path = Path(path)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write_text(self, path: Path, content: str) -> None:
        atomic_write(path, content)
