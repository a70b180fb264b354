"""
Error taxonomy for openspec.

Validation problems are never raised; they are collected into a
ValidationReport. Everything here is fatal to the single operation that
raised it and is turned into an exit code by the CLI.
"""

from enum import Enum


class OpenSpecError(Exception):
    """Base for all openspec errors."""


class ErrorKind(Enum):
    """Structural problems found while parsing a spec delta."""

    MISSING_SECTION_HEADER = "MissingSectionHeader"
    REQUIREMENT_WITHOUT_SCENARIO = "RequirementWithoutScenario"
    SCENARIO_MISSING_STEP = "ScenarioMissingStep"
    DUPLICATE_REQUIREMENT_TITLE = "DuplicateRequirementTitle"
    STEPS_OUT_OF_ORDER = "StepsOutOfOrder"


# Structural


class StructuralError(OpenSpecError):
    """Malformed markdown."""


class ParseError(StructuralError):
    """A spec delta does not follow the delta grammar.

    `detail` carries the missing step kind for SCENARIO_MISSING_STEP.
    """

    def __init__(self, kind: ErrorKind, line: int, message: str, detail: str | None = None):
        self.kind = kind
        self.line = line
        self.message = message
        self.detail = detail
        self.path = None  # Set by callers that know which file was parsed
        super().__init__(f"line {line}: {kind.value}: {message}")

    def __eq__(self, other):
        if not isinstance(other, ParseError):
            return NotImplemented
        return (self.kind, self.line, self.message, self.detail) == (
            other.kind, other.line, other.message, other.detail
        )

    def __hash__(self):
        return hash((self.kind, self.line, self.message, self.detail))


class SchemaError(OpenSpecError):
    """Change metadata does not match its JSON schema."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


# Lifecycle state


class StateError(OpenSpecError):
    """Illegal lifecycle operation for the change's current state."""


class InvalidTransition(StateError):
    """Raised when attempting a transition the state machine does not allow."""

    def __init__(self, from_state: str, to_state: str, change_id: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.change_id = change_id
        super().__init__(
            f"Invalid transition: {from_state} -> {to_state}"
            + (f" (change: {change_id})" if change_id else "")
        )


class StaleValidation(StateError):
    """Tracked files changed since the last successful validation."""

    def __init__(self, change_id: str):
        self.change_id = change_id
        super().__init__(
            f"Change '{change_id}' was modified after it was validated; "
            f"run 'openspec validate {change_id}' again"
        )


class IncompleteTasks(StateError):
    def __init__(self, remaining: int):
        self.remaining = remaining
        super().__init__(f"{remaining} task(s) still open")


class ChangeLocked(StateError):
    def __init__(self, change_id: str):
        self.change_id = change_id
        super().__init__(f"Change '{change_id}' is locked by another openspec process")


class ValidationFailed(StateError):
    """Validation produced failing diagnostics; the report is attached."""

    def __init__(self, report):
        self.report = report
        super().__init__(f"Validation failed with {len(report.errors)} error(s)")


# Merge


class MergeError(OpenSpecError):
    """A delta cannot be merged into its capability spec."""

    def __init__(self, message: str, capability: str = "", title: str = ""):
        self.capability = capability
        self.title = title
        super().__init__(message)


class RequirementNotFound(MergeError):
    def __init__(self, capability: str, title: str, operation: str):
        self.operation = operation
        super().__init__(
            f"{operation} requirement '{title}' does not exist in capability '{capability}'",
            capability, title,
        )


class RequirementAlreadyExists(MergeError):
    def __init__(self, capability: str, title: str):
        super().__init__(
            f"ADDED requirement '{title}' already exists in capability '{capability}'",
            capability, title,
        )


class MergeConflict(MergeError):
    def __init__(self, capability: str, title: str, operations: list[str]):
        self.operations = operations
        super().__init__(
            f"Conflicting operations {'/'.join(operations)} on requirement "
            f"'{title}' in capability '{capability}'",
            capability, title,
        )


# Input


class InputError(OpenSpecError):
    """Bad user input."""


class InvalidId(InputError):
    def __init__(self, change_id: str, reason: str):
        self.change_id = change_id
        self.reason = reason
        super().__init__(f"Invalid change id '{change_id}': {reason}")


class DuplicateId(InputError):
    def __init__(self, change_id: str, where: str):
        self.change_id = change_id
        self.where = where
        super().__init__(f"Change '{change_id}' already exists at {where}")


class ChangeNotFound(InputError):
    def __init__(self, change_id: str):
        self.change_id = change_id
        super().__init__(f"Change '{change_id}' not found")


class UnknownTask(InputError):
    def __init__(self, selectors: list[str]):
        self.selectors = selectors
        super().__init__(f"No task matches: {', '.join(selectors)}")
