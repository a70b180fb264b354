"""
openspec propose - Scaffold a new change proposal.

Creates changes/<id>/ with:
- proposal.md (every required section, in order)
- tasks.md
- specs/<capability>/spec.md delta stubs
- meta.env (STATUS="draft")
"""

import sys

from openspec.lib.config import ProjectConfig
from openspec.lib.errors import DuplicateId, InvalidId
from openspec.workflow.lifecycle import ProposalLifecycle


def cmd_propose(args, config: ProjectConfig) -> int:
    """Create a new draft change."""
    lifecycle = ProposalLifecycle(config)

    try:
        change = lifecycle.create(
            args.id,
            title=args.title,
            author=args.author,
            capabilities=args.capability or None,
        )
    except InvalidId as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print("  Must be kebab-case and start with a verb, e.g. add-user-auth", file=sys.stderr)
        return 2
    except DuplicateId as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        # Title or author that cannot be stored in meta.env
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    deltas = lifecycle.store.delta_files(change.dir)
    print(f"Change '{change.id}' created at {change.dir}")
    print(f"  Status:  {change.status.value}")
    print(f"  Author:  {change.author}")
    for capability, path in deltas:
        print(f"  Delta:   {path.relative_to(change.dir)} ({capability})")
    print()
    print("Next steps:")
    print(f"  1. Fill in {change.dir / 'proposal.md'}")
    print("  2. Describe requirements in the spec deltas")
    print(f"  3. openspec validate {change.id} --strict")
    return 0
