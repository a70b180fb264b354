"""Shared fixtures for openspec tests."""

import pytest

from openspec.lib.config import load_project_config
from openspec.workflow.lifecycle import ProposalLifecycle


FILLED_PROPOSAL = """# Change: Add user auth

- **Related:** `{capability}`

## Executive Summary
Users can log in with a password.

## Background
Nobody can log in today.

## Goals
Password login with sessions.

## Scope
Login and logout only. No SSO.

## Approach
Add an auth capability with session tokens.

## Risks
Credential stuffing; mitigated by rate limiting.

## Validation
Unit tests and a manual login check.

## Open Questions
None.
"""

GOOD_DELTA = """## ADDED Requirements

### Requirement: {title}
The system SHALL let users log in.

#### Scenario: Valid credentials
- **Given** a registered user
- **When** they submit the right password
- **Then** a session is created
"""

DONE_TASKS = """# Tasks

## 1. Implementation
- [x] 1.1 Add the login endpoint
- [x] 1.2 Add tests
"""


def proposal_text(capability: str = "user-auth") -> str:
    return FILLED_PROPOSAL.format(capability=capability)


def delta_text(title: str = "Password Login") -> str:
    return GOOD_DELTA.format(title=title)


@pytest.fixture
def root(tmp_path):
    """An empty openspec root."""
    root = tmp_path / "openspec"
    root.mkdir()
    return root


@pytest.fixture
def config(root):
    return load_project_config(root)


@pytest.fixture
def lifecycle(config):
    return ProposalLifecycle(config)


@pytest.fixture
def make_change(lifecycle):
    """Create a change with a complete proposal, a valid delta and done tasks."""

    def _make(change_id="add-user-auth", capability="user-auth", delta=None, tasks=DONE_TASKS):
        return lifecycle.create(change_id, content={
            "proposal.md": proposal_text(capability),
            "tasks.md": tasks,
            f"specs/{capability}/spec.md": delta if delta is not None else delta_text(),
        })

    return _make
