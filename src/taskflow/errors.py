"""Summary: Error taxonomy for TaskFlow.

Importance: Lets the HTTP layer map failures to status codes without string matching.
Alternatives: Raise ValueError/RuntimeError everywhere and inspect messages.
"""

from __future__ import annotations


class TaskflowError(Exception):
    """Summary: Base class for all TaskFlow errors."""


class AuthFailure(TaskflowError):
    """Summary: Caller identity is missing or could not be resolved."""


class ValidationFailure(TaskflowError):
    """Summary: A request carried missing or malformed task fields."""


class TaskNotFound(TaskflowError):
    """Summary: The addressed task does not exist in the caller's collection."""


class StoreUnavailable(TaskflowError):
    """Summary: The persistence layer could not be reached or failed mid-operation.

    Importance: Surfaced as a 5xx and never retried automatically.
    Alternatives: Let sqlite3 errors bubble up unwrapped.
    """


class OAuthExchangeFailed(TaskflowError):
    """Summary: The provider rejected an authorization-code or refresh grant.

    Importance: The user must restart the consent flow.
    Alternatives: Return an empty token set and fail later.
    """


class CalendarProviderError(TaskflowError):
    """Summary: A calendar provider call failed.

    Importance: Keeps task state and calendar state from silently diverging on create/update.
    Alternatives: Log and ignore provider failures.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
