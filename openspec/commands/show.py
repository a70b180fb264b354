"""
openspec show - Show a change or a capability spec.
"""

import sys

from openspec.lib import deltaparse
from openspec.lib.config import ProjectConfig
from openspec.lib.constants import PROPOSAL_SECTIONS
from openspec.lib.errors import ChangeNotFound, ParseError
from openspec.lib.models import CapabilitySpec, ChangeProposal
from openspec.lib.store import load_meta
from openspec.workflow.lifecycle import ProposalLifecycle


def _preview(body: str, width: int = 60) -> str:
    first = next((line.strip() for line in body.splitlines() if line.strip()), "")
    return first[:width] + "..." if len(first) > width else first


def _show_change(lifecycle: ProposalLifecycle, change: ChangeProposal):
    meta = load_meta(change.dir)

    print(f"Change: {change.id}")
    print("=" * 60)
    print(f"Title:      {meta.get('TITLE', '')}")
    print(f"Status:     {change.status.value}")
    print(f"Author:     {change.author}")
    print(f"Created:    {change.created_at}")
    if meta.get("VALIDATED_AT"):
        fresh = meta.get("VALIDATED_HASH") == lifecycle.store.fingerprint(change.dir)
        print(f"Validated:  {meta['VALIDATED_AT']}" + ("" if fresh else " (stale)"))
    print(f"Path:       {change.dir}")
    print()

    print("Proposal")
    print("-" * 40)
    for canonical, _ in PROPOSAL_SECTIONS:
        body = change.sections.get(canonical)
        if body is None:
            print(f"  [ ] {canonical}: missing")
        else:
            print(f"  [+] {canonical}: {_preview(body) or '(empty)'}")
    print()

    tasks = lifecycle.task_list(change.dir)
    if tasks.tasks:
        print("Tasks")
        print("-" * 40)
        print(f"  Progress: {tasks.completed}/{len(tasks.tasks)}")
        for task in tasks.tasks:
            marker = "[x]" if task.done else "[ ]"
            number = f"{task.number} " if task.number else ""
            print(f"  {marker} {number}{task.text}")
        print()

    deltas = lifecycle.store.delta_files(change.dir)
    if deltas:
        print("Spec deltas")
        print("-" * 40)
        for capability, path in deltas:
            delta, issues = deltaparse.scan(lifecycle.store.read_text(path), capability)
            counts = f"+{len(delta.added)} ~{len(delta.modified)} -{len(delta.removed)}"
            problems = f" ({len(issues)} issue(s))" if issues else ""
            print(f"  {capability:<24} {counts}{problems}")
        print()


def _show_capability(spec: CapabilitySpec):
    print(f"Capability: {spec.name}")
    print("=" * 60)
    if spec.purpose:
        print(spec.purpose)
        print()
    print(f"Requirements ({len(spec.requirements)})")
    print("-" * 40)
    for title, requirement in spec.requirements.items():
        print(f"  {title} ({len(requirement.scenarios)} scenario(s))")


def cmd_show(args, config: ProjectConfig) -> int:
    """Show a change by id, falling back to a capability by name."""
    lifecycle = ProposalLifecycle(config)

    try:
        change = lifecycle.load(args.name)
    except ChangeNotFound:
        change = None

    if change is not None:
        _show_change(lifecycle, change)
        return 0

    try:
        spec = lifecycle.load_capability(args.name)
    except ParseError as e:
        print(f"ERROR: {lifecycle.store.capability_path(args.name)}: {e}", file=sys.stderr)
        return 1
    if spec is None:
        print(f"ERROR: No change or capability named '{args.name}'", file=sys.stderr)
        return 2

    _show_capability(spec)
    return 0
