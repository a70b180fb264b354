"""
openspec validate - Check a change and mark it validated.
"""

import sys

from openspec.lib.config import ProjectConfig
from openspec.lib.errors import ChangeNotFound, InvalidId, StateError, ValidationFailed
from openspec.workflow.lifecycle import ProposalLifecycle


def cmd_validate(args, config: ProjectConfig) -> int:
    """Print the validation report; exit 0 if it passes, 1 otherwise."""
    lifecycle = ProposalLifecycle(config)
    strict = args.strict or config.strict_validation

    try:
        report = lifecycle.validate(args.id, strict=strict)
    except ValidationFailed as e:
        print(e.report.format(strict))
        return 1
    except (ChangeNotFound, InvalidId) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except StateError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(report.format(strict))
    return 0
