"""Domain exceptions.

Two families matter to callers:

- **Validation** errors (``RequestBenchValidationError``) are raised to the
  caller and leave state untouched.
- ``PersistenceError`` is raised by backends only.  The collection store
  logs and swallows it so the in-memory change still stands.

Network failures never surface as exceptions; the execution pipeline turns
them into a ``status=0`` response record instead.
"""

from __future__ import annotations

from requestbench.models.enums import PersistenceErrorCode

# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class RequestBenchValidationError(ValueError):
    """Base class for rejected operations (no partial mutation happened)."""


class DefaultWorkspaceError(RequestBenchValidationError):
    """The default workspace cannot be deleted."""

    def __init__(self) -> None:
        super().__init__("Cannot delete default workspace")


class WorkspaceNotFoundError(RequestBenchValidationError, LookupError):
    """Referenced workspace does not exist."""

    def __init__(self, workspace_id: str) -> None:
        self.workspace_id = workspace_id
        super().__init__(f"Workspace '{workspace_id}' not found")


class InvalidParentError(RequestBenchValidationError):
    """Parent reference is unknown, not a folder, or would create a cycle."""

    def __init__(self, parent_id: str, reason: str = "not a loaded folder") -> None:
        self.parent_id = parent_id
        super().__init__(f"Invalid parent '{parent_id}': {reason}")


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class PersistenceError(RuntimeError):
    """A backend call failed.  ``code`` identifies the failing operation."""

    def __init__(self, message: str, code: PersistenceErrorCode) -> None:
        super().__init__(message)
        self.code = code


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class SendInProgressError(RuntimeError):
    """A send for this request is already in flight."""

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Request '{request_id}' is already being sent")
