"""Tests for openspec.lib.taskparse module."""

from openspec.lib.taskparse import (
    mark_done,
    normalize_checkboxes,
    parse_tasks,
    scan_tasks,
)


TASKS = """# Tasks: Add user auth

## 1. Implementation
- [ ] 1.1 Add the login endpoint
- [x] 1.2 Add the session store
  - [ ] 1.2.1 Expire sessions

## 2. Validation
- [X] 2.1 Run the test suite
- [ ] Write release notes
"""


class TestParseTasks:
    """Tests for parse_tasks()."""

    def test_tasks_in_order(self):
        tasks = parse_tasks(TASKS).tasks
        assert [t.text for t in tasks] == [
            "Add the login endpoint",
            "Add the session store",
            "Expire sessions",
            "Run the test suite",
            "Write release notes",
        ]

    def test_done_flags(self):
        tasks = parse_tasks(TASKS).tasks
        assert [t.done for t in tasks] == [False, True, False, True, False]

    def test_numbers_and_phases(self):
        tasks = parse_tasks(TASKS).tasks
        assert tasks[0].number == "1.1"
        assert tasks[2].number == "1.2.1"
        assert tasks[4].number is None
        assert tasks[0].phase == "1. Implementation"
        assert tasks[3].phase == "2. Validation"

    def test_counts(self):
        task_list = parse_tasks(TASKS)
        assert task_list.remaining == 3
        assert task_list.completed == 2
        assert task_list.phases() == ["1. Implementation", "2. Validation"]

    def test_five_open_three_done(self):
        text = "\n".join(["- [ ] open"] * 5 + ["- [x] done"] * 3)
        assert parse_tasks(text).remaining == 5

    def test_line_numbers(self):
        tasks = parse_tasks(TASKS).tasks
        assert tasks[0].line_number == 4

    def test_comments_and_fences_skipped(self):
        text = """<!--
- [ ] not a task
-->
```
- [ ] also not a task
```
- [ ] real task
"""
        assert [t.text for t in parse_tasks(text).tasks] == ["real task"]


class TestScanTasks:
    """Tests for scan_tasks() issue reporting."""

    def test_clean_file_has_no_issues(self):
        _, issues = scan_tasks(TASKS)
        assert issues == []

    def test_malformed_checkbox(self):
        _, issues = scan_tasks("- [] missing space\n- [y] wrong mark\n")
        assert [i.line for i in issues] == [1, 2]
        assert all("Malformed checkbox" in i.message for i in issues)

    def test_bare_bullet(self):
        _, issues = scan_tasks("- [ ] fine\n- no checkbox\n")
        assert len(issues) == 1
        assert issues[0].line == 2
        assert "without checkbox" in issues[0].message

    def test_empty_item(self):
        task_list, issues = scan_tasks("- [ ] \n")
        assert task_list.tasks == []
        assert issues[0].message == "Checklist item has no text"


class TestMarkDone:
    """Tests for mark_done()."""

    def test_mark_by_number(self):
        text, marked, unmatched = mark_done(TASKS, ["1.1"])
        assert [t.text for t in marked] == ["Add the login endpoint"]
        assert unmatched == []
        assert "- [x] 1.1 Add the login endpoint" in text

    def test_mark_by_text_case_insensitive(self):
        text, marked, _ = mark_done(TASKS, ["write RELEASE notes"])
        assert len(marked) == 1
        assert "- [x] Write release notes" in text

    def test_mark_all(self):
        text, marked, _ = mark_done(TASKS, mark_all=True)
        assert len(marked) == 3
        assert parse_tasks(text).remaining == 0

    def test_unmatched_selector(self):
        text, marked, unmatched = mark_done(TASKS, ["9.9"])
        assert marked == []
        assert unmatched == ["9.9"]
        assert text == TASKS

    def test_already_done_is_not_remarked(self):
        _, marked, unmatched = mark_done(TASKS, ["1.2"])
        assert marked == []
        assert unmatched == []

    def test_only_checkbox_changes(self):
        text, _, _ = mark_done(TASKS, mark_all=True)
        assert text.replace("[x]", "[ ]").replace("[X]", "[ ]") == \
            TASKS.replace("[x]", "[ ]").replace("[X]", "[ ]")

    def test_nested_task_keeps_indent(self):
        text, _, _ = mark_done(TASKS, ["1.2.1"])
        assert "  - [x] 1.2.1 Expire sessions" in text


class TestNormalizeCheckboxes:
    """Tests for normalize_checkboxes()."""

    def test_unchecks_everything(self):
        normalized = normalize_checkboxes(TASKS)
        assert "[x]" not in normalized
        assert "[X]" not in normalized
        assert normalized == normalize_checkboxes(mark_done(TASKS, mark_all=True)[0])
