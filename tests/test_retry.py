"""Tests for the retry decorator (``promptmarket.utils.retry``)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import BUYER, SELLER
from promptmarket.orchestrator.errors import ConflictError, InvalidStateError
from promptmarket.orchestrator.workflow import OrderWorkflow
from promptmarket.utils.retry import _compute_delay, retry


# =========================================================================
# Backoff
# =========================================================================


class TestComputeDelay:
    @patch("promptmarket.utils.retry.random.uniform", return_value=0.0)
    def test_grows_exponentially(self, _uniform: MagicMock) -> None:
        assert [_compute_delay(a, 0.5, 60.0) for a in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_capped(self) -> None:
        assert _compute_delay(20, 1.0, 5.0) == 5.0

    def test_max_attempts_less_than_one_raises(self) -> None:
        with pytest.raises(ValueError, match="max_attempts must be >= 1"):
            retry(max_attempts=0)


# =========================================================================
# Sync callables
# =========================================================================


class TestSyncRetry:
    @patch("promptmarket.utils.retry.time.sleep", return_value=None)
    def test_conflict_then_success(self, mock_sleep: MagicMock) -> None:
        outcomes = [ConflictError("lost race"), "ok"]

        @retry(max_attempts=3, base_delay=0.1, exceptions=(ConflictError,))
        def step():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert step() == "ok"
        assert mock_sleep.call_count == 1

    @patch("promptmarket.utils.retry.time.sleep", return_value=None)
    def test_other_errors_propagate_immediately(self, mock_sleep: MagicMock) -> None:
        calls = MagicMock(side_effect=InvalidStateError("already completed"))
        wrapped = retry(max_attempts=3, exceptions=(ConflictError,))(calls)

        with pytest.raises(InvalidStateError):
            wrapped()
        assert calls.call_count == 1
        mock_sleep.assert_not_called()

    @patch("promptmarket.utils.retry.time.sleep", return_value=None)
    def test_exhausted_reraises_last_error(self, mock_sleep: MagicMock) -> None:
        @retry(max_attempts=2, base_delay=0.1)
        def always_fails():
            raise ConflictError("still racing")

        with pytest.raises(ConflictError, match="still racing"):
            always_fails()
        assert mock_sleep.call_count == 1

    def test_preserves_function_name(self) -> None:
        @retry()
        def deliver_now():
            return True

        assert deliver_now.__name__ == "deliver_now"


# =========================================================================
# Async callables
# =========================================================================


class TestAsyncRetry:
    @patch("promptmarket.utils.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_first_attempt(self, mock_sleep: AsyncMock) -> None:
        @retry(max_attempts=3)
        async def succeed():
            return "async_ok"

        assert await succeed() == "async_ok"
        mock_sleep.assert_not_called()

    @patch("promptmarket.utils.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_backoff_between_attempts(self, mock_sleep: AsyncMock) -> None:
        call_count = 0

        @retry(max_attempts=4, base_delay=1.0, max_delay=100.0, exceptions=(ConflictError,))
        async def fails_three_times():
            nonlocal call_count
            call_count += 1
            if call_count < 4:
                raise ConflictError("retry me")
            return "done"

        assert await fails_three_times() == "done"
        delays = [c.args[0] for c in mock_sleep.call_args_list]
        assert len(delays) == 3
        assert delays[-1] > delays[0]

    @patch("promptmarket.utils.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_reevaluates_against_fresh_state(
        self, mock_sleep: AsyncMock, workflow: OrderWorkflow,
        delivered_order: str,
    ) -> None:
        """A retried approval re-reads the order and reports the real state."""
        await workflow.approve_current_version(delivered_order, BUYER)

        @retry(max_attempts=3, exceptions=(ConflictError,))
        async def approve_again():
            return await workflow.approve_current_version(delivered_order, BUYER)

        with pytest.raises(InvalidStateError):
            await approve_again()
        mock_sleep.assert_not_called()

    @patch("promptmarket.utils.retry.asyncio.sleep", new_callable=AsyncMock)
    async def test_wraps_workflow_operation(
        self, mock_sleep: AsyncMock, workflow: OrderWorkflow, pending_order: str
    ) -> None:
        @retry(max_attempts=2, exceptions=(ConflictError,))
        async def accept():
            return await workflow.accept_order(pending_order, SELLER)

        order = await accept()
        assert order.status == "processing"
        mock_sleep.assert_not_called()
