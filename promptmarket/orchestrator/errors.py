"""Typed failures raised by the order fulfilment workflow.

Every error reaches the immediate caller unchanged.  Only ``ConflictError``
is safe to retry, and only after re-reading the order.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for every workflow failure."""

    retryable: bool = False

    def __init__(self, message: str, *, order_id: str | None = None) -> None:
        super().__init__(message)
        self.order_id = order_id


class ValidationError(WorkflowError):
    """Required input is missing or malformed."""


class AuthorizationError(WorkflowError):
    """The caller does not hold the role the operation requires."""


class InvalidStateError(WorkflowError):
    """The operation is not legal in the order's or version's current status."""


class RevisionBudgetExhausted(WorkflowError):
    """The buyer has no revisions left."""


class EmptyHistoryError(WorkflowError):
    """The order has no delivered versions yet."""


class ConflictError(WorkflowError):
    """A concurrent write changed the order between read and write."""

    retryable = True


class NotFoundError(WorkflowError):
    """The referenced order, service or profile does not exist."""


_USER_MESSAGES: dict[type[WorkflowError], str] = {
    ValidationError: "Some required information is missing.",
    AuthorizationError: "You are not allowed to do that on this order.",
    InvalidStateError: "This order can no longer be changed that way.",
    RevisionBudgetExhausted: "No revisions remain on this order.",
    EmptyHistoryError: "Nothing has been delivered on this order yet.",
    ConflictError: "The order changed while you were working. Please try again.",
    NotFoundError: "That item could not be found.",
}


def describe_error(exc: WorkflowError) -> str:
    """Return the human-readable message shown for *exc* at the UI boundary."""
    for cls in type(exc).__mro__:
        if cls in _USER_MESSAGES:
            return f"{_USER_MESSAGES[cls]} ({exc})"
    return str(exc)
