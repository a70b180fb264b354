"""
openspec apply - Confirm completed tasks and mark a change applied.
"""

import sys

from openspec.lib.config import ProjectConfig
from openspec.lib.errors import (
    ChangeNotFound,
    IncompleteTasks,
    InvalidId,
    StaleValidation,
    StateError,
    UnknownTask,
)
from openspec.workflow.lifecycle import ProposalLifecycle


def cmd_apply(args, config: ProjectConfig) -> int:
    lifecycle = ProposalLifecycle(config)

    try:
        tasks = lifecycle.apply(args.id, done=args.done, all_done=args.all)
    except IncompleteTasks as e:
        print(f"ERROR: {e}", file=sys.stderr)
        change_dir = lifecycle.store.change_dir(args.id)
        for task in lifecycle.task_list(change_dir).tasks:
            if not task.done:
                number = f"{task.number} " if task.number else ""
                print(f"  [ ] {number}{task.text}", file=sys.stderr)
        print(f"  Mark tasks with: openspec apply {args.id} --done <number>", file=sys.stderr)
        return 1
    except StaleValidation as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except (ChangeNotFound, InvalidId, UnknownTask) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except StateError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if getattr(e, "from_state", None) == "draft":
            print(f"  Validate first: openspec validate {args.id}", file=sys.stderr)
        return 1

    print(f"Change '{args.id}' applied ({tasks.completed}/{len(tasks.tasks)} tasks done)")
    print(f"  Archive with: openspec archive {args.id}")
    return 0
