"""Tests for openspec.lib.deltaparse module."""

import pytest

from openspec.lib.deltaparse import (
    parse,
    parse_capability,
    render,
    render_capability,
    scan,
)
from openspec.lib.errors import ErrorKind, ParseError
from openspec.lib.models import CapabilitySpec, StepKind


FULL_DELTA = """## ADDED Requirements

### Requirement: Token Refresh
The system SHALL refresh access tokens
before they expire.

#### Scenario: Expiring token
- **Given** a token that expires in 30 seconds
- **And** the client is online
- **When** the client makes a request
- **Then** a new token is issued

#### Scenario: Expired token
- **Given** an expired token
- **When** the client makes a request
- **Then** the request is rejected

## MODIFIED Requirements

### Requirement: Login
The system SHALL lock accounts after 5 failures.

#### Scenario: Lockout
- **Given** 4 failed attempts
- **When** a fifth attempt fails
- **Then** the account is locked

## REMOVED Requirements

### Requirement: Remember Me
**Reason**: replaced by token refresh.

#### Scenario: Returning visitor
- **Given** a visitor who ticked "remember me"
- **When** they come back after a week
- **Then** they are asked to log in
"""


class TestParse:
    """Tests for parse()."""

    def test_sections_and_order(self):
        delta = parse(FULL_DELTA, "auth")
        assert delta.capability == "auth"
        assert list(delta.added) == ["Token Refresh"]
        assert list(delta.modified) == ["Login"]
        assert list(delta.removed) == ["Remember Me"]

    def test_requirement_body_and_scenarios(self):
        req = parse(FULL_DELTA).added["Token Refresh"]
        assert req.body == "The system SHALL refresh access tokens\nbefore they expire."
        assert [s.title for s in req.scenarios] == ["Expiring token", "Expired token"]

    def test_and_inherits_previous_kind(self):
        steps = parse(FULL_DELTA).added["Token Refresh"].scenarios[0].steps
        assert [s.kind for s in steps] == [StepKind.GIVEN, StepKind.GIVEN, StepKind.WHEN, StepKind.THEN]
        assert steps[1].conjunction is True
        assert steps[1].text == "the client is online"

    def test_removed_keeps_reason_and_scenario(self):
        req = parse(FULL_DELTA).removed["Remember Me"]
        assert req.body == "**Reason**: replaced by token refresh."
        assert [s.title for s in req.scenarios] == ["Returning visitor"]

    def test_removed_without_scenario_fails(self):
        text = "## REMOVED Requirements\n\n### Requirement: Login\nGone.\n"
        with pytest.raises(ParseError) as exc_info:
            parse(text)
        assert exc_info.value.kind == ErrorKind.REQUIREMENT_WITHOUT_SCENARIO
        assert exc_info.value.line == 3

    def test_step_markers_with_colon_and_star_bullets(self):
        text = """## ADDED Requirements

### Requirement: Search
Find things.

#### Scenario: Hit
* **Given**: an index
* **When**: a query runs
* **Then**: results come back
"""
        steps = parse(text).added["Search"].scenarios[0].steps
        assert [s.text for s in steps] == ["an index", "a query runs", "results come back"]

    def test_html_comments_ignored(self):
        text = """<!-- guidance
### Requirement: Not Real
-->
## ADDED Requirements

### Requirement: Real
Body.

#### Scenario: S
- **Given** a
- **When** b
- **Then** c
"""
        assert list(parse(text).added) == ["Real"]

    def test_fenced_code_kept_in_body(self):
        text = """## ADDED Requirements

### Requirement: Config
Example:
```
### Requirement: inside fence
```

#### Scenario: S
- **Given** a
- **When** b
- **Then** c
"""
        req = parse(text).added["Config"]
        assert "### Requirement: inside fence" in req.body

    def test_parse_is_deterministic(self):
        assert parse(FULL_DELTA) == parse(FULL_DELTA)


class TestStructuralErrors:
    """Tests for structural errors raised by parse()."""

    def test_missing_when_step(self):
        text = """## ADDED Requirements

### Requirement: Login
Users log in.

#### Scenario: Success
- **Given** a user
- **Then** they are logged in
"""
        with pytest.raises(ParseError) as exc_info:
            parse(text)
        assert exc_info.value.kind == ErrorKind.SCENARIO_MISSING_STEP
        assert exc_info.value.detail == "When"
        assert exc_info.value.line == 6

    def test_requirement_without_scenario(self):
        text = "## ADDED Requirements\n\n### Requirement: Login\nUsers log in.\n"
        with pytest.raises(ParseError) as exc_info:
            parse(text)
        assert exc_info.value.kind == ErrorKind.REQUIREMENT_WITHOUT_SCENARIO
        assert exc_info.value.line == 3

    def test_modified_requirement_without_scenario(self):
        text = "## MODIFIED Requirements\n\n### Requirement: Login\nNew text.\n"
        with pytest.raises(ParseError) as exc_info:
            parse(text)
        assert exc_info.value.kind == ErrorKind.REQUIREMENT_WITHOUT_SCENARIO

    def test_no_delta_section(self):
        with pytest.raises(ParseError) as exc_info:
            parse("# Notes\n\nNothing here.\n")
        assert exc_info.value.kind == ErrorKind.MISSING_SECTION_HEADER
        assert exc_info.value.line == 1

    def test_requirement_outside_section(self):
        text = "### Requirement: Orphan\n\n## ADDED Requirements\n"
        delta, issues = scan(text)
        assert issues[0].kind == ErrorKind.MISSING_SECTION_HEADER
        assert issues[0].line == 1
        assert delta.is_empty()

    def test_unknown_section_is_not_a_delta_section(self):
        text = """## Added Requirements

### Requirement: Login
"""
        _, issues = scan(text)
        kinds = [i.kind for i in issues]
        assert kinds.count(ErrorKind.MISSING_SECTION_HEADER) == 2

    def test_steps_out_of_order(self):
        text = """## ADDED Requirements

### Requirement: Login
Users log in.

#### Scenario: Backwards
- **Given** a user
- **Then** they are logged in
- **When** they submit the form
"""
        with pytest.raises(ParseError) as exc_info:
            parse(text)
        assert exc_info.value.kind == ErrorKind.STEPS_OUT_OF_ORDER
        assert exc_info.value.line == 9

    def test_leading_and_is_out_of_order(self):
        text = """## ADDED Requirements

### Requirement: Login
Users log in.

#### Scenario: S
- **And** something
- **Given** a
- **When** b
- **Then** c
"""
        _, issues = scan(text)
        assert [i.kind for i in issues] == [ErrorKind.STEPS_OUT_OF_ORDER]

    def test_duplicate_title_in_section(self):
        text = """## REMOVED Requirements

### Requirement: Login

#### Scenario: S
- **Given** a
- **When** b
- **Then** c

### Requirement: Login

#### Scenario: S
- **Given** a
- **When** b
- **Then** c
"""
        with pytest.raises(ParseError) as exc_info:
            parse(text)
        assert exc_info.value.kind == ErrorKind.DUPLICATE_REQUIREMENT_TITLE
        assert exc_info.value.line == 10

    def test_same_title_removed_and_added_is_allowed(self):
        text = """## ADDED Requirements

### Requirement: Login
Rewritten.

#### Scenario: S
- **Given** a
- **When** b
- **Then** c

## REMOVED Requirements

### Requirement: Login

#### Scenario: Old flow
- **Given** the old login page
- **When** it is requested
- **Then** it redirects to the new one
"""
        delta = parse(text)
        assert "Login" in delta.added
        assert "Login" in delta.removed

    def test_scan_collects_all_issues(self):
        text = """## ADDED Requirements

### Requirement: One
No scenario.

### Requirement: Two
Body.

#### Scenario: Thin
- **Given** only this
"""
        _, issues = scan(text)
        assert [i.kind for i in issues] == [
            ErrorKind.REQUIREMENT_WITHOUT_SCENARIO,
            ErrorKind.SCENARIO_MISSING_STEP,
            ErrorKind.SCENARIO_MISSING_STEP,
        ]
        assert {i.detail for i in issues[1:]} == {"When", "Then"}

    def test_every_parsed_requirement_has_a_scenario(self):
        delta = parse(FULL_DELTA)
        for section in (delta.added, delta.modified, delta.removed):
            for req in section.values():
                assert len(req.scenarios) >= 1

    def test_issues_reported_in_line_order(self):
        text = """## ADDED Requirements

### Requirement: R
Body.

#### Scenario: S
- **And** x
- **Given** a
- **When** b
"""
        _, issues = scan(text)
        assert [i.line for i in issues] == sorted(i.line for i in issues)
        with pytest.raises(ParseError) as exc_info:
            parse(text)
        assert exc_info.value.kind == ErrorKind.SCENARIO_MISSING_STEP
        assert exc_info.value.line == 6


RENAME_DELTA = """## ADDED Requirements

### Requirement: Login
Users log in with a passkey.

#### Scenario: Passkey
- **Given** a registered passkey
- **When** the user authenticates
- **Then** a session starts

## REMOVED Requirements

### Requirement: Login
**Reason**: passwords are retired.

#### Scenario: Password
- **Given** a password
- **When** the user submits it
- **Then** a session starts
"""

MODIFIED_ONLY_DELTA = """## MODIFIED Requirements

### Requirement: Session Timeout
Sessions SHALL expire after 15 minutes of inactivity.

#### Scenario: Idle
- **Given** an idle session
- **When** 15 minutes pass
- **Then** the session expires
- **And** the user is sent to the login page
"""

WRAPPED_STEP_DELTA = """## ADDED Requirements

### Requirement: Audit Log
Every login attempt is recorded.

#### Scenario: Failed attempt
- **Given** a user with a valid account
  and a wrong password
- **When** they try to log in
- **Then** the attempt is written to the audit log
  with the source address
"""

FENCED_BODY_DELTA = """## ADDED Requirements

### Requirement: Config Format
The config file SHALL look like:

```yaml
## not a section
### Requirement: not a requirement
timeout: 15
```

#### Scenario: Load
- **Given** the file above
- **When** the service starts
- **Then** the timeout is 15 minutes
"""


class TestRender:
    """Tests for render()."""

    @pytest.mark.parametrize("text", [
        FULL_DELTA,
        RENAME_DELTA,
        MODIFIED_ONLY_DELTA,
        WRAPPED_STEP_DELTA,
        FENCED_BODY_DELTA,
    ], ids=["full", "rename", "modified-only", "wrapped-step", "fenced-body"])
    def test_round_trip(self, text):
        first = parse(text, "auth")
        assert parse(render(first), "auth") == first

    def test_wrapped_step_joined(self):
        steps = parse(WRAPPED_STEP_DELTA).added["Audit Log"].scenarios[0].steps
        assert steps[0].text == "a user with a valid account and a wrong password"

    def test_fenced_block_kept_in_body(self):
        req = parse(FENCED_BODY_DELTA).added["Config Format"]
        assert "### Requirement: not a requirement" in req.body
        assert req.body.endswith("```")

    def test_render_is_stable(self):
        rendered = render(parse(FULL_DELTA))
        assert render(parse(rendered)) == rendered

    def test_render_skips_empty_sections(self):
        rendered = render(parse(MODIFIED_ONLY_DELTA))
        assert "## MODIFIED Requirements" in rendered
        assert "## ADDED Requirements" not in rendered
        assert "## REMOVED Requirements" not in rendered

    def test_conjunction_rendered_as_and(self):
        rendered = render(parse(FULL_DELTA))
        assert "- **And** the client is online" in rendered


class TestCapability:
    """Tests for canonical capability specs."""

    def test_render_then_parse(self):
        delta = parse(FULL_DELTA)
        spec = CapabilitySpec(name="auth", purpose="Authentication.", requirements=delta.added)
        text = render_capability(spec)
        assert text.startswith("# auth Specification\n")
        parsed = parse_capability(text, "auth")
        assert parsed.purpose == "Authentication."
        assert parsed.requirements == delta.added

    def test_default_purpose(self):
        text = render_capability(CapabilitySpec(name="api-gateway"))
        assert "TBD - created by archiving changes to api-gateway." in text

    def test_duplicate_requirement_is_fatal(self):
        text = """# auth Specification

## Requirements

### Requirement: Login

### Requirement: Login
"""
        with pytest.raises(ParseError) as exc_info:
            parse_capability(text, "auth")
        assert exc_info.value.kind == ErrorKind.DUPLICATE_REQUIREMENT_TITLE

    def test_requirement_without_scenario_tolerated(self):
        text = "# auth Specification\n\n## Requirements\n\n### Requirement: Legacy\nOld text.\n"
        spec = parse_capability(text, "auth")
        assert list(spec.requirements) == ["Legacy"]
