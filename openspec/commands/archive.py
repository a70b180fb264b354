"""
openspec archive - Merge a change into the specs tree and archive it.
"""

import sys

from openspec.lib.config import ProjectConfig
from openspec.lib.errors import ChangeNotFound, InvalidId, MergeError, ParseError, StateError
from openspec.workflow.lifecycle import ProposalLifecycle


def _confirm(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def cmd_archive(args, config: ProjectConfig) -> int:
    lifecycle = ProposalLifecycle(config)
    change_id = args.id

    if not args.yes and lifecycle.store.change_exists(change_id):
        action = "Archive" if args.skip_specs else "Merge spec deltas and archive"
        if not _confirm(f"{action} change '{change_id}'?"):
            print("Aborted.")
            return 1

    try:
        result = lifecycle.archive(change_id, skip_specs=args.skip_specs)
    except (ChangeNotFound, InvalidId) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except ParseError as e:
        where = f"{e.path}: " if e.path else ""
        print(f"ERROR: {where}{e}", file=sys.stderr)
        return 1
    except MergeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        print("  No specs were modified.", file=sys.stderr)
        return 1
    except StateError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if result.already_archived:
        print(f"Change '{change_id}' is already archived at {result.path}")
        return 0

    for path in result.merged_specs:
        print(f"Updated {path}")
    print(f"Change '{change_id}' archived to {result.path}")
    return 0
