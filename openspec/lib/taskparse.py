"""
tasks.md parser for openspec.

Extracts checklist items, grouped under the nearest heading:

    ## 1. Implementation
    - [ ] 1.1 Add the parser
    - [x] 1.2 Wire up the CLI
"""

import re
from dataclasses import dataclass

from openspec.lib.models import Task, TaskList

HEADING_RE = re.compile(r'^(#{2,6})\s+(.+?)\s*#*\s*$')
TASK_RE = re.compile(r'^(\s*)- \[([ xX])\] (.*)$')
CHECKBOX_RE = re.compile(r'^(\s*- \[)[xX](\] )')
BULLET_RE = re.compile(r'^\s*[-*+]\s')
LOOSE_CHECKBOX_RE = re.compile(r'^\s*[-*+]\s*\[[^\]]*\]')
NUMBER_RE = re.compile(r'^(\d+(?:\.\d+)*)\.?\s+(.*)$')
FENCE_RE = re.compile(r'^\s*(```|~~~)')


@dataclass
class TaskIssue:
    line: int
    message: str


def _content_lines(lines: list[str]):
    """Yield (lineno, line) skipping HTML comments and fenced code blocks."""
    in_comment = False
    in_fence = False
    for lineno, line in enumerate(lines, 1):
        if FENCE_RE.match(line) and not in_comment:
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        if '<!--' in line:
            in_comment = True
        if in_comment:
            if '-->' in line:
                in_comment = False
            continue
        yield lineno, line


def scan_tasks(text: str) -> tuple[TaskList, list[TaskIssue]]:
    """Parse tasks.md and collect checklist syntax problems."""
    tasks = []
    issues = []
    phase = None

    for lineno, line in _content_lines(text.split("\n")):
        heading = HEADING_RE.match(line)
        if heading:
            phase = heading.group(2)
            continue

        task = TASK_RE.match(line)
        if task:
            body = task.group(3).strip()
            if not body:
                issues.append(TaskIssue(lineno, "Checklist item has no text"))
                continue
            number = None
            numbered = NUMBER_RE.match(body)
            if numbered:
                number, body = numbered.group(1), numbered.group(2).strip()
            tasks.append(Task(
                text=body,
                done=task.group(2).lower() == 'x',
                line_number=lineno,
                phase=phase,
                number=number,
            ))
            continue

        if LOOSE_CHECKBOX_RE.match(line):
            issues.append(TaskIssue(
                lineno, f"Malformed checkbox, expected '- [ ]' or '- [x]': {line.strip()}"
            ))
        elif BULLET_RE.match(line):
            issues.append(TaskIssue(
                lineno, f"Bullet without checkbox, expected '- [ ] ...': {line.strip()}"
            ))

    return TaskList(tasks=tasks), issues


def parse_tasks(text: str) -> TaskList:
    """Parse tasks.md, ignoring lines that are not well-formed checklist items."""
    task_list, _ = scan_tasks(text)
    return task_list


def normalize_checkboxes(text: str) -> str:
    """Return text with every checked box unchecked."""
    return "\n".join(CHECKBOX_RE.sub(r'\1 \2', line) for line in text.split("\n"))


def _matches(task: Task, selector: str) -> bool:
    selector = selector.strip()
    if task.number is not None and task.number == selector.rstrip('.'):
        return True
    return task.text.casefold() == selector.casefold()


def mark_done(text: str, selectors: list[str] | None = None, mark_all: bool = False) -> tuple[str, list[Task], list[str]]:
    """Tick checklist items in tasks.md text.

    Tasks are selected by number ("1.2") or exact text. Only the checkbox
    character changes; order and all other content is preserved.

    Returns (new_text, newly_marked_tasks, unmatched_selectors).
    """
    selectors = selectors or []
    task_list = parse_tasks(text)
    lines = text.split("\n")

    matched = set()
    marked = []
    for task in task_list.tasks:
        hit = mark_all
        for selector in selectors:
            if _matches(task, selector):
                matched.add(selector)
                hit = True
        if hit and not task.done:
            idx = task.line_number - 1
            lines[idx] = lines[idx].replace("- [ ] ", "- [x] ", 1)
            marked.append(task)

    unmatched = [s for s in selectors if s not in matched]
    return "\n".join(lines), marked, unmatched
