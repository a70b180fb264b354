"""
Spec merger.

Applies the spec deltas of an archived change onto the canonical specs tree.
Merging is computed in memory for every capability first; only when all of
them succeed are the files written, as one all-or-nothing batch.
"""

import copy
import logging
import os
from pathlib import Path

from openspec.lib import deltaparse
from openspec.lib.errors import (
    MergeConflict,
    RequirementAlreadyExists,
    RequirementNotFound,
)
from openspec.lib.models import CapabilitySpec, SpecDelta
from openspec.lib.store import DocumentStore

logger = logging.getLogger(__name__)


def merge(capability: CapabilitySpec, delta: SpecDelta) -> CapabilitySpec:
    """Apply one delta to a capability spec, returning a new spec.

    Processing order is REMOVED -> MODIFIED -> ADDED, so removing and
    re-adding a title within one delta acts as a rename. The input spec is
    never mutated.

    Raises:
        RequirementNotFound: MODIFIED/REMOVED of a title that does not exist
        RequirementAlreadyExists: ADDED of a title that still exists
    """
    name = capability.name
    requirements = copy.deepcopy(capability.requirements)

    for title in delta.removed:
        if title not in requirements:
            raise RequirementNotFound(name, title, "REMOVED")
        del requirements[title]

    for title, requirement in delta.modified.items():
        if title not in requirements:
            raise RequirementNotFound(name, title, "MODIFIED")
        # Whole-requirement replacement, keeping its position
        requirements[title] = copy.deepcopy(requirement)

    for title, requirement in delta.added.items():
        if title in requirements:
            raise RequirementAlreadyExists(name, title)
        requirements[title] = copy.deepcopy(requirement)

    return CapabilitySpec(name=name, purpose=capability.purpose, requirements=requirements)


def check_conflicts(deltas: list[SpecDelta]) -> None:
    """Reject contradictory operations before anything is merged.

    Within one delta, MODIFIED may not share a title with REMOVED or ADDED
    (REMOVED + ADDED is a rename and allowed). Two deltas targeting the same
    capability may not touch the same title at all.

    Raises:
        MergeConflict
    """
    for delta in deltas:
        for other_op, other in (("REMOVED", delta.removed), ("ADDED", delta.added)):
            for title in delta.modified:
                if title in other:
                    raise MergeConflict(delta.capability, title, ["MODIFIED", other_op])

    # (capability, title) -> (index of first delta touching it, operation)
    touched: dict[tuple[str, str], tuple[int, str]] = {}
    for index, delta in enumerate(deltas):
        key_cap = delta.capability.lower()
        for op, titles in (("ADDED", delta.added), ("MODIFIED", delta.modified), ("REMOVED", delta.removed)):
            for title in titles:
                key = (key_cap, title)
                if key in touched and touched[key][0] != index:
                    raise MergeConflict(delta.capability, title, [touched[key][1], op])
                touched.setdefault(key, (index, op))


def commit_specs(writes: list[tuple[Path, str]]) -> dict[Path, bytes | None]:
    """Persist several files so that either all are replaced or none are.

    Each file is first staged as a `.tmp` sibling; then every stage is
    renamed into place. If a rename fails, files already replaced are
    restored from their previous bytes and newly created ones removed.

    Returns the previous bytes of every written path (None where the file
    did not exist), for restore_specs().
    """
    staged: list[tuple[Path, Path]] = []
    created_dirs: list[Path] = []

    try:
        for path, content in writes:
            missing = [p for p in [path.parent, *path.parent.parents] if not p.exists()]
            for directory in reversed(missing):
                directory.mkdir()
                created_dirs.append(directory)
            tmp = path.with_name(path.name + ".tmp")
            staged.append((path, tmp))
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
    except OSError:
        _discard(staged, created_dirs)
        raise

    backups = {path: (path.read_bytes() if path.exists() else None) for path, _ in staged}
    replaced: list[Path] = []
    try:
        for path, tmp in staged:
            os.replace(tmp, path)
            replaced.append(path)
    except OSError:
        logger.error(f"Spec commit failed after {len(replaced)} file(s); rolling back")
        restore_specs({path: backups[path] for path in replaced})
        _discard([(p, t) for p, t in staged if p not in replaced], created_dirs)
        raise
    return backups


def restore_specs(backups: dict[Path, bytes | None]) -> None:
    """Undo a commit_specs() using the backups it returned."""
    for path, previous in backups.items():
        if previous is None:
            if path.exists():
                path.unlink()
        else:
            path.write_bytes(previous)


def _discard(staged: list[tuple[Path, Path]], created_dirs: list[Path]) -> None:
    for _, tmp in staged:
        if tmp.exists():
            tmp.unlink()
    for directory in reversed(created_dirs):
        if directory.exists() and not any(directory.iterdir()):
            directory.rmdir()


class SpecMerger:
    """Merges a change's deltas into the canonical specs of a store."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def load(self, capability: str) -> CapabilitySpec:
        """Canonical spec for a capability; empty if it does not exist yet."""
        if not self.store.capability_exists(capability):
            return CapabilitySpec(name=capability)
        text = self.store.read_text(self.store.capability_path(capability))
        return deltaparse.parse_capability(text, capability)

    def plan(self, deltas: list[SpecDelta]) -> list[tuple[Path, CapabilitySpec]]:
        """Compute merged specs for every capability without writing anything."""
        check_conflicts(deltas)

        merged: dict[str, CapabilitySpec] = {}
        for delta in deltas:
            key = delta.capability.lower()
            current = merged.get(key) or self.load(delta.capability)
            merged[key] = merge(current, delta)

        return [(self.store.capability_path(spec.name), spec) for spec in merged.values()]

    def writes(self, deltas: list[SpecDelta]) -> list[tuple[Path, str]]:
        """Rendered (path, content) pairs for every merged capability."""
        planned = self.plan(deltas)
        for path, spec in planned:
            logger.debug(f"Planned {len(spec.requirements)} requirement(s) for {path}")
        return [(path, deltaparse.render_capability(spec)) for path, spec in planned]

    def apply(self, deltas: list[SpecDelta]) -> list[Path]:
        """Merge and durably persist every delta, all-or-nothing.

        Returns the canonical spec paths written.
        """
        writes = self.writes(deltas)
        commit_specs(writes)
        for path, _ in writes:
            logger.info(f"Merged into {path}")
        return [path for path, _ in writes]
