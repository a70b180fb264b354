#!/usr/bin/env python3
"""openspec CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from openspec import __version__
from openspec.commands import apply as cmd_apply_module
from openspec.commands import archive as cmd_archive_module
from openspec.commands import list as cmd_list_module
from openspec.commands import propose as cmd_propose_module
from openspec.commands import show as cmd_show_module
from openspec.commands import validate as cmd_validate_module
from openspec.lib.config import ROOT_DIR_NAME, find_root, load_project_config
from openspec.lib.errors import OpenSpecError


def get_project_config(args, create: bool = False):
    """Resolve the openspec root from --root/$OPENSPEC_ROOT/cwd and load its config."""
    root = find_root(args.root)
    if root is None:
        if not create:
            print(
                f"ERROR: No {ROOT_DIR_NAME}/ directory found. "
                f"Use --root or run 'openspec propose' to start one.",
                file=sys.stderr,
            )
            sys.exit(2)
        root = Path.cwd() / ROOT_DIR_NAME
    if create:
        root.mkdir(parents=True, exist_ok=True)
    return load_project_config(root)


def setup_logging(args, config):
    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level)
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
    )


def cmd_propose(args):
    config = get_project_config(args, create=True)
    setup_logging(args, config)
    return cmd_propose_module.cmd_propose(args, config)


def cmd_validate(args):
    config = get_project_config(args)
    setup_logging(args, config)
    return cmd_validate_module.cmd_validate(args, config)


def cmd_apply(args):
    config = get_project_config(args)
    setup_logging(args, config)
    return cmd_apply_module.cmd_apply(args, config)


def cmd_archive(args):
    config = get_project_config(args)
    setup_logging(args, config)
    return cmd_archive_module.cmd_archive(args, config)


def cmd_list(args):
    config = get_project_config(args)
    setup_logging(args, config)
    return cmd_list_module.cmd_list(args, config)


def cmd_show(args):
    config = get_project_config(args)
    setup_logging(args, config)
    return cmd_show_module.cmd_show(args, config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='openspec', description='Spec-driven change proposals')
    parser.add_argument('--root', help='openspec directory (default: $OPENSPEC_ROOT or nearest openspec/)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # openspec propose
    p_propose = subparsers.add_parser('propose', help='Scaffold a new change')
    p_propose.add_argument('id', help='Change id, kebab-case and verb-led (e.g. add-user-auth)')
    p_propose.add_argument('--capability', '-c', action='append',
                           help='Capability the change touches (repeatable)')
    p_propose.add_argument('--author', '-a', help='Author (default: DEFAULT_AUTHOR or $USER)')
    p_propose.add_argument('--title', '-t', help='Human-readable title')
    p_propose.set_defaults(func=cmd_propose)

    # openspec validate
    p_validate = subparsers.add_parser('validate', help='Validate a change')
    p_validate.add_argument('id', help='Change id')
    p_validate.add_argument('--strict', action='store_true', help='Treat warnings as failures')
    p_validate.set_defaults(func=cmd_validate)

    # openspec apply
    p_apply = subparsers.add_parser('apply', help='Confirm tasks and mark a change applied')
    p_apply.add_argument('id', help='Change id')
    p_apply.add_argument('--done', '-d', action='append', metavar='TASK',
                         help='Task number or exact text to mark done (repeatable)')
    p_apply.add_argument('--all', action='store_true', help='Mark every task done')
    p_apply.set_defaults(func=cmd_apply)

    # openspec archive
    p_archive = subparsers.add_parser('archive', help='Merge spec deltas and archive a change')
    p_archive.add_argument('id', help='Change id')
    p_archive.add_argument('--yes', '-y', action='store_true', help='Skip confirmation')
    p_archive.add_argument('--skip-specs', action='store_true', help='Archive without merging spec deltas')
    p_archive.set_defaults(func=cmd_archive)

    # openspec list
    p_list = subparsers.add_parser('list', help='List active changes')
    p_list.add_argument('--specs', action='store_true', help='List capability specs instead')
    p_list.set_defaults(func=cmd_list)

    # openspec show
    p_show = subparsers.add_parser('show', help='Show a change or capability')
    p_show.add_argument('name', help='Change id or capability name')
    p_show.set_defaults(func=cmd_show)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.func(args)
    except OSError as e:
        # str(OSError) carries the offending path
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except (OpenSpecError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == '__main__':
    sys.exit(main())
