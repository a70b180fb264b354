"""Tests for openspec.workflow.validator module."""

import pytest

from openspec.lib.constants import PROPOSAL_SECTIONS
from openspec.lib.rules import ValidationRules
from openspec.workflow.validator import (
    Diagnostic,
    Severity,
    ValidationReport,
    Validator,
)

from conftest import delta_text, proposal_text


SIX_SECTIONS = """# Change: Add user auth

## Executive Summary
Users can log in.

## Background
Nobody can log in.

## Goals
Password login.

## Scope
No SSO.

## Approach
Session tokens.

## Risks

## Validation
Unit tests.

## Open Questions
"""

NO_SCENARIO_DELTA = """## ADDED Requirements

### Requirement: Password Login
The system SHALL let users log in.
"""


@pytest.fixture
def validator(lifecycle):
    return lifecycle.validator


def codes(report):
    return [d.code for d in report.diagnostics]


class TestValidationReport:
    """Tests for ValidationReport."""

    def test_errors_always_fail(self):
        report = ValidationReport("x")
        report.add(Severity.ERROR, "a.md", 1, "bad")
        assert not report.passed()
        assert not report.passed(strict=True)

    def test_warnings_fail_only_in_strict(self):
        report = ValidationReport("x")
        report.add(Severity.WARNING, "a.md", None, "meh")
        assert report.passed()
        assert not report.passed(strict=True)

    def test_format(self):
        report = ValidationReport("add-x")
        report.add(Severity.ERROR, "changes/add-x/proposal.md", 3, "Broken", "Code")
        text = report.format()
        assert "ERROR   changes/add-x/proposal.md:3: Broken [Code]" in text
        assert text.endswith("Change 'add-x' is INVALID: 1 error(s), 0 warning(s)")

    def test_location_without_line(self):
        assert Diagnostic(Severity.WARNING, "f.md", None, "m").location() == "f.md"


class TestValidateChange:
    """End-to-end checks over a change directory."""

    def test_clean_change_has_no_diagnostics(self, make_change, validator):
        change = make_change()
        report = validator.validate(change.dir)
        assert report.diagnostics == []
        assert report.passed(strict=True)

    def test_six_sections_and_scenarioless_requirement(self, lifecycle, validator):
        """Scaffold, fill 6 of 8 sections, leave one requirement without scenarios."""
        change = lifecycle.create("add-user-auth")
        (change.dir / "proposal.md").write_text(SIX_SECTIONS)
        (change.dir / "specs" / "user-auth" / "spec.md").write_text(NO_SCENARIO_DELTA)

        report = validator.validate(change.dir)

        assert len(report.diagnostics) == 2
        warning, = report.warnings
        error, = report.errors
        assert warning.code == "MissingSectionHeader"
        assert "Risks" in warning.message and "Open Questions" in warning.message
        assert error.code == "RequirementWithoutScenario"
        assert error.file == "changes/add-user-auth/specs/user-auth/spec.md"
        assert error.line == 3

    def test_scaffold_passes_lenient_but_not_strict(self, lifecycle, validator):
        change = lifecycle.create("add-user-auth")
        report = validator.validate(change.dir)
        assert report.passed()
        assert not report.passed(strict=True)
        assert codes(report) == ["MissingSectionHeader"]

    def test_missing_files(self, make_change, validator):
        change = make_change()
        (change.dir / "tasks.md").unlink()
        (change.dir / "specs" / "user-auth" / "spec.md").unlink()
        report = validator.validate(change.dir)
        assert "MissingFile" in codes(report)
        assert "MissingDelta" in codes(report)

    def test_scenario_missing_step(self, make_change, validator):
        delta = delta_text().replace("- **When** they submit the right password\n", "")
        change = make_change(delta=delta)
        report = validator.validate(change.dir)
        error, = report.errors
        assert error.code == "ScenarioMissingStep"
        assert "When" in error.message

    def test_sections_out_of_order(self, make_change, validator):
        change = make_change()
        text = proposal_text()
        goals = "## Goals\nPassword login with sessions.\n\n"
        text = text.replace(goals, "") + "\n" + goals
        (change.dir / "proposal.md").write_text(text)
        report = validator.validate(change.dir)
        assert codes(report) == ["SectionOutOfOrder"]

    def test_no_recognised_sections_is_error(self, make_change, validator):
        change = make_change()
        (change.dir / "proposal.md").write_text("# Change\n\nJust prose.\n")
        report = validator.validate(change.dir)
        assert report.errors[0].code == "MissingSectionHeader"

    def test_duplicate_section_warns(self, make_change, validator):
        change = make_change()
        (change.dir / "proposal.md").write_text(proposal_text() + "\n## Goals\nAgain.\n")
        report = validator.validate(change.dir)
        assert codes(report) == ["DuplicateSection"]

    def test_optional_sections_from_rules(self, lifecycle, validator):
        change = lifecycle.create("add-user-auth")
        (change.dir / "proposal.md").write_text(SIX_SECTIONS)
        rules = ValidationRules(optional_sections=frozenset({"Risks", "Open Questions"}))
        report = Validator(lifecycle.store, rules).validate(change.dir)
        assert codes(report) == []

    def test_unknown_related_capability(self, make_change, validator):
        change = make_change()
        text = proposal_text().replace("`user-auth`", "`user-auth`, `ghost`")
        (change.dir / "proposal.md").write_text(text)
        report = validator.validate(change.dir)
        error, = report.errors
        assert error.code == "UnknownCapability"
        assert "ghost" in error.message
        assert error.line == 3

    def test_related_existing_capability(self, make_change, validator, root):
        (root / "specs" / "billing").mkdir(parents=True)
        (root / "specs" / "billing" / "spec.md").write_text("# billing Specification\n\n## Requirements\n")
        change = make_change()
        text = proposal_text().replace("`user-auth`", "`user-auth`, `billing`")
        (change.dir / "proposal.md").write_text(text)
        assert validator.validate(change.dir).diagnostics == []

    def test_invalid_task_lines(self, make_change, validator):
        change = make_change(tasks="- [ ] fine\n- not a checkbox\n")
        report = validator.validate(change.dir)
        error, = report.errors
        assert error.code == "InvalidTaskLine"
        assert error.line == 2

    def test_empty_tasks_warns(self, make_change, validator):
        change = make_change(tasks="# Tasks\n")
        assert codes(validator.validate(change.dir)) == ["EmptyTasks"]

    def test_modified_unknown_requirement_warns(self, make_change, validator, root):
        spec_dir = root / "specs" / "user-auth"
        spec_dir.mkdir(parents=True)
        (spec_dir / "spec.md").write_text(
            "# user-auth Specification\n\n## Requirements\n\n### Requirement: Logout\nBye.\n"
        )
        delta = delta_text().replace("## ADDED Requirements", "## MODIFIED Requirements")
        change = make_change(delta=delta)
        report = validator.validate(change.dir)
        assert codes(report) == ["RequirementNotFound"]
        assert report.passed()

    def test_added_existing_requirement_warns(self, make_change, validator, root):
        spec_dir = root / "specs" / "user-auth"
        spec_dir.mkdir(parents=True)
        (spec_dir / "spec.md").write_text(
            "# user-auth Specification\n\n## Requirements\n\n" + delta_text().split("\n", 2)[2]
        )
        change = make_change()
        assert codes(validator.validate(change.dir)) == ["RequirementAlreadyExists"]

    def test_invalid_capability_name(self, make_change, validator):
        change = make_change(capability="User_Auth")
        assert "InvalidCapability" in codes(validator.validate(change.dir))

    def test_diagnostic_files_relative_to_root(self, make_change, validator):
        change = make_change(tasks="# Tasks\n")
        diagnostic, = validator.validate(change.dir).diagnostics
        assert diagnostic.file == "changes/add-user-auth/tasks.md"

    def test_all_sections_listed_in_missing_warning(self, lifecycle, validator):
        change = lifecycle.create("add-user-auth")
        warning, = validator.validate(change.dir).warnings
        for name, _ in PROPOSAL_SECTIONS:
            assert name in warning.message
