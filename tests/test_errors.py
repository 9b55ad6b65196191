"""Tests for workflow errors and their user-facing descriptions."""

from __future__ import annotations

import pytest

from promptmarket.orchestrator.errors import (
    AuthorizationError,
    ConflictError,
    EmptyHistoryError,
    InvalidStateError,
    NotFoundError,
    RevisionBudgetExhausted,
    ValidationError,
    WorkflowError,
    describe_error,
)

ALL_ERRORS = [
    ValidationError,
    AuthorizationError,
    InvalidStateError,
    RevisionBudgetExhausted,
    EmptyHistoryError,
    ConflictError,
    NotFoundError,
]


class TestWorkflowErrors:
    @pytest.mark.parametrize("cls", ALL_ERRORS)
    def test_hierarchy(self, cls: type[WorkflowError]) -> None:
        assert issubclass(cls, WorkflowError)

    @pytest.mark.parametrize("cls", ALL_ERRORS)
    def test_only_conflicts_are_retryable(self, cls: type[WorkflowError]) -> None:
        assert cls("x").retryable is (cls is ConflictError)

    def test_carries_order_id(self) -> None:
        exc = InvalidStateError("Order is completed", order_id="o-9")
        assert exc.order_id == "o-9"
        assert str(exc) == "Order is completed"


class TestDescribeError:
    def test_includes_detail(self) -> None:
        text = describe_error(RevisionBudgetExhausted("used 3 of 3"))
        assert text == "No revisions remain on this order. (used 3 of 3)"

    def test_subclass_uses_parent_message(self) -> None:
        class StaleRead(ConflictError):
            pass

        assert describe_error(StaleRead("v2")).startswith("The order changed")

    def test_base_error_falls_back_to_detail(self) -> None:
        assert describe_error(WorkflowError("plain")) == "plain"
