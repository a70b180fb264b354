"""
openspec list - List active changes or canonical specs.
"""

from openspec.lib.config import ProjectConfig
from openspec.workflow.lifecycle import ProposalLifecycle


def cmd_list(args, config: ProjectConfig) -> int:
    """List active changes (or capabilities with --specs)."""
    lifecycle = ProposalLifecycle(config)

    if args.specs:
        specs = lifecycle.list_specs()
        if not specs:
            print("Specs: none")
            return 0
        print("Specs")
        print("-" * 60)
        for name, count in specs:
            print(f"  {name:<32} {count} requirement(s)")
        print()
        print(f"{len(specs)} capability(s)")
        return 0

    changes = lifecycle.list_changes()
    if changes:
        print("Changes")
        print("-" * 60)
        for change in changes:
            progress = f"{change.tasks_done}/{change.tasks_total} tasks"
            print(f"  {change.id:<32} {change.status.value:<10} {progress}")
        print()
    else:
        print("Changes: none")
        print()

    archived = lifecycle.store.list_archived()
    print(f"{len(changes)} active change(s), {len(archived)} archived")

    if not changes and not archived:
        print()
        print("Get started:")
        print("  openspec propose add-<capability>")

    return 0
