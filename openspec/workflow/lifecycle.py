"""
Proposal lifecycle: create, validate, apply and archive changes.

Coordinates the document store, the validator, the state machine and the
spec merger. validate/apply/archive hold the change's lock for their whole
duration; none of them ever retries.
"""

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from openspec.lib import deltaparse
from openspec.lib.config import ProjectConfig
from openspec.lib.constants import (
    CHANGE_ID_PATTERN,
    MAX_CHANGE_ID_LEN,
    META_FILE,
    PROPOSAL_FILE,
    SPECS_DIR,
    SPEC_FILE,
    TASKS_FILE,
)
from openspec.lib.errors import (
    ChangeNotFound,
    DuplicateId,
    IncompleteTasks,
    InvalidId,
    InvalidTransition,
    ParseError,
    SchemaError,
    StaleValidation,
    UnknownTask,
    ValidationFailed,
)
from openspec.lib.models import (
    CapabilitySpec,
    ChangeProposal,
    ChangeStatus,
    SpecDelta,
    TaskList,
)
from openspec.lib.proposal import (
    parse_sections,
    scaffold_delta,
    scaffold_proposal,
    scaffold_tasks,
)
from openspec.lib.store import DocumentStore, atomic_write, load_meta, update_meta
from openspec.lib.taskparse import mark_done, parse_tasks
from openspec.runner.locking import change_lock
from openspec.workflow.fsm import ChangeFSM
from openspec.workflow.merger import SpecMerger, commit_specs, restore_specs
from openspec.workflow.state_machine import at_least, parse_state, transition
from openspec.workflow.validator import ValidationReport, Validator

logger = logging.getLogger(__name__)


@dataclass
class ArchiveResult:
    path: Path
    merged_specs: list[Path] = field(default_factory=list)
    already_archived: bool = False


@dataclass
class ChangeSummary:
    id: str
    status: ChangeStatus
    tasks_done: int
    tasks_total: int


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


class ProposalLifecycle:
    """Drives changes through draft -> validated -> applied -> archived."""

    def __init__(self, config: ProjectConfig):
        self.config = config
        self.store = DocumentStore(config.root)
        self.validator = Validator(self.store, config.rules)
        self.merger = SpecMerger(self.store)

    # Ids

    def _check_format(self, change_id: str) -> None:
        """Raise InvalidId unless change_id is a well-formed kebab-case id.

        Runs before an id is used to build any path, lock files included.
        """
        if not change_id:
            raise InvalidId(change_id, "must not be empty")
        if len(change_id) > MAX_CHANGE_ID_LEN:
            raise InvalidId(change_id, f"longer than {MAX_CHANGE_ID_LEN} characters")
        if not CHANGE_ID_PATTERN.match(change_id):
            raise InvalidId(change_id, "must be kebab-case (lowercase words joined by '-')")

    def check_id(self, change_id: str) -> None:
        """Raise InvalidId unless change_id is kebab-case and verb-led."""
        self._check_format(change_id)
        verb = change_id.split("-", 1)[0]
        if verb not in self.config.rules.verbs:
            raise InvalidId(
                change_id,
                f"must start with a verb (e.g. add-, update-, remove-); '{verb}' is not a known verb",
            )

    def _check_unused(self, change_id: str) -> None:
        if self.store.change_exists(change_id):
            raise DuplicateId(change_id, str(self.store.change_dir(change_id)))
        archived = self.store.find_archived(change_id)
        if archived is not None:
            raise DuplicateId(change_id, str(archived))

    # Loading

    def _change_dir(self, change_id: str) -> Path:
        change_dir = self.store.change_dir(change_id)
        if not change_dir.is_dir():
            raise ChangeNotFound(change_id)
        return change_dir

    def load(self, change_id: str) -> ChangeProposal:
        """Load a change, active or archived."""
        change_dir = self.store.change_dir(change_id)
        if not change_dir.is_dir():
            change_dir = self.store.find_archived(change_id)
            if change_dir is None:
                raise ChangeNotFound(change_id)

        meta = load_meta(change_dir)
        proposal = self.store.read_optional(change_dir / PROPOSAL_FILE) or ""
        sections = {
            s.canonical: s.body for s in parse_sections(proposal) if s.canonical
        }
        return ChangeProposal(
            id=meta["ID"],
            status=parse_state(meta["STATUS"]),
            author=meta["AUTHOR"],
            created_at=meta["CREATED_AT"],
            dir=change_dir,
            sections=sections,
            validated_hash=meta.get("VALIDATED_HASH"),
        )

    def task_list(self, change_dir: Path) -> TaskList:
        text = self.store.read_optional(change_dir / TASKS_FILE)
        return parse_tasks(text) if text is not None else TaskList()

    def list_changes(self) -> list[ChangeSummary]:
        summaries = []
        for change_id in self.store.list_change_ids():
            change_dir = self.store.change_dir(change_id)
            if not (change_dir / META_FILE).exists():
                logger.warning(f"Skipping {change_dir}: no {META_FILE}")
                continue
            try:
                meta = load_meta(change_dir)
            except SchemaError as e:
                logger.warning(f"Skipping {change_dir}: {e}")
                continue
            tasks = self.task_list(change_dir)
            summaries.append(ChangeSummary(
                id=change_id,
                status=parse_state(meta["STATUS"]),
                tasks_done=tasks.completed,
                tasks_total=len(tasks.tasks),
            ))
        return summaries

    def load_capability(self, name: str) -> CapabilitySpec | None:
        """Canonical spec for a capability, or None if there is none."""
        if not self.store.capability_exists(name):
            return None
        return self.merger.load(name)

    def list_specs(self) -> list[tuple[str, int]]:
        return [
            (name, len(self.merger.load(name).requirements))
            for name in self.store.list_capabilities()
        ]

    # Operations

    def create(
        self,
        change_id: str,
        title: str | None = None,
        author: str | None = None,
        capabilities: list[str] | None = None,
        content: dict[str, str] | None = None,
    ) -> ChangeProposal:
        """Scaffold a new draft change.

        `content` maps paths relative to the change directory (e.g.
        "proposal.md", "specs/auth/spec.md") to authored text that replaces
        the scaffolded template.

        Raises:
            InvalidId, DuplicateId
        """
        self.check_id(change_id)
        self._check_unused(change_id)

        content = dict(content or {})
        title = title or change_id.replace("-", " ").capitalize()
        author = author or self.config.default_author
        created_at = _now()

        if not capabilities:
            authored = sorted({
                Path(p).parts[1] for p in content
                if Path(p).parts[:1] == (SPECS_DIR,) and len(Path(p).parts) == 3
            })
            # add-user-auth -> user-auth
            capabilities = authored or [change_id.split("-", 1)[1] if "-" in change_id else change_id]

        files = {
            PROPOSAL_FILE: scaffold_proposal(change_id, title, author, created_at, capabilities),
            TASKS_FILE: scaffold_tasks(title),
        }
        for capability in capabilities:
            files[f"{SPECS_DIR}/{capability}/{SPEC_FILE}"] = scaffold_delta(capability)
        files.update(content)

        # Build in a hidden sibling then rename, so a half-written change never appears
        change_dir = self.store.change_dir(change_id)
        staging = self.store.changes_dir / f".{change_id}.tmp"
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)
        try:
            for rel, text in files.items():
                atomic_write(staging / rel, text)
            update_meta(staging, {
                "ID": change_id,
                "STATUS": ChangeStatus.DRAFT.value,
                "AUTHOR": author,
                "TITLE": title,
                "CREATED_AT": created_at,
            })
            staging.rename(change_dir)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        logger.info(f"Created change {change_id} at {change_dir}")
        return self.load(change_id)

    def validate(self, change_id: str, strict: bool | None = None) -> ValidationReport:
        """Validate a change and move it to validated when the report passes.

        Raises:
            ValidationFailed: report failed (attached as .report)
            InvalidTransition: change is archived
            InvalidId, ChangeLocked
        """
        if strict is None:
            strict = self.config.strict_validation
        self._check_format(change_id)

        if not self.store.change_exists(change_id) and self.store.find_archived(change_id):
            raise InvalidTransition(ChangeStatus.ARCHIVED.value, ChangeStatus.VALIDATED.value, change_id)

        with change_lock(self.config.root, change_id):
            change_dir = self._change_dir(change_id)
            fsm = ChangeFSM(change_dir)
            report = self.validator.validate(change_dir)

            if not report.passed(strict):
                if fsm.state != ChangeStatus.DRAFT.value:
                    # Leave the state alone but make any later apply/archive stale
                    update_meta(change_dir, {"VALIDATED_HASH": None})
                raise ValidationFailed(report)

            update_meta(change_dir, {
                "VALIDATED_HASH": self.store.fingerprint(change_dir),
                "VALIDATED_AT": _now(),
            })
            if fsm.state == ChangeStatus.DRAFT.value:
                transition(change_dir, ChangeStatus.VALIDATED, reason="validation passed", fsm=fsm)
            return report

    def _ensure_fresh(self, change_dir: Path) -> None:
        meta = load_meta(change_dir)
        if meta.get("VALIDATED_HASH") != self.store.fingerprint(change_dir):
            raise StaleValidation(change_dir.name)

    def apply(self, change_id: str, done: list[str] | None = None, all_done: bool = False) -> TaskList:
        """Mark confirmed tasks done and move the change to applied.

        Never validates implicitly: a draft change always fails.

        Raises:
            InvalidId, InvalidTransition, StaleValidation, UnknownTask, IncompleteTasks,
            ChangeLocked
        """
        self._check_format(change_id)
        if not self.store.change_exists(change_id) and self.store.find_archived(change_id):
            raise InvalidTransition(ChangeStatus.ARCHIVED.value, ChangeStatus.APPLIED.value, change_id)

        with change_lock(self.config.root, change_id):
            change_dir = self._change_dir(change_id)
            fsm = ChangeFSM(change_dir)
            state = parse_state(fsm.state)

            if state == ChangeStatus.APPLIED:
                logger.info(f"{change_id} is already applied")
                return self.task_list(change_dir)
            if not at_least(state, ChangeStatus.VALIDATED):
                raise InvalidTransition(state.value, ChangeStatus.APPLIED.value, change_id)

            self._ensure_fresh(change_dir)

            tasks_path = change_dir / TASKS_FILE
            text = self.store.read_text(tasks_path)
            new_text, marked, unmatched = mark_done(text, done, mark_all=all_done)
            if unmatched:
                raise UnknownTask(unmatched)
            if marked:
                self.store.write_text(tasks_path, new_text)
                logger.info(f"{change_id}: marked {len(marked)} task(s) done")

            task_list = parse_tasks(new_text)
            if task_list.remaining:
                raise IncompleteTasks(task_list.remaining)

            transition(change_dir, ChangeStatus.APPLIED, reason="all tasks done", fsm=fsm)
            return task_list

    def _load_deltas(self, change_dir: Path) -> list[SpecDelta]:
        deltas = []
        for capability, path in self.store.delta_files(change_dir):
            try:
                deltas.append(deltaparse.parse(self.store.read_text(path), capability))
            except ParseError as e:
                e.path = path
                raise
        return deltas

    def archive(self, change_id: str, skip_specs: bool = False) -> ArchiveResult:
        """Merge a change's deltas into the specs tree and move it to the archive.

        Archiving an archived change is a no-op success. The archive target
        is checked and every merge computed before anything is written;
        meta.env is marked archived before the move so the archived directory
        is never touched afterwards. If a later step fails, the specs and
        meta.env written so far are restored.

        Raises:
            InvalidId, InvalidTransition, StaleValidation, ParseError, MergeError,
            ChangeLocked, FileExistsError
        """
        self._check_format(change_id)
        with change_lock(self.config.root, change_id):
            change_dir = self.store.change_dir(change_id)
            if not change_dir.is_dir():
                archived = self.store.find_archived(change_id)
                if archived is None:
                    raise ChangeNotFound(change_id)
                logger.info(f"{change_id} is already archived at {archived}")
                return ArchiveResult(path=archived, already_archived=True)

            fsm = ChangeFSM(change_dir)
            if fsm.state != ChangeStatus.APPLIED.value:
                raise InvalidTransition(fsm.state, ChangeStatus.ARCHIVED.value, change_id)

            self._ensure_fresh(change_dir)
            target = self.store.archive_target(change_id)

            writes = []
            if skip_specs:
                logger.info(f"{change_id}: skipping spec merge")
            else:
                writes = self.merger.writes(self._load_deltas(change_dir))

            meta_path = change_dir / META_FILE
            meta_before = meta_path.read_text(encoding="utf-8")
            backups = {}
            try:
                backups = commit_specs(writes)
                transition(change_dir, ChangeStatus.ARCHIVED, reason="archived", fsm=fsm)
                self.store.move_to_archive(change_dir, target)
            except BaseException:
                logger.error(f"Archiving {change_id} failed; restoring specs and meta.env")
                restore_specs(backups)
                atomic_write(meta_path, meta_before)
                raise

            for path, _ in writes:
                logger.info(f"Merged {change_id} into {path}")
            return ArchiveResult(path=target, merged_specs=[path for path, _ in writes])
