"""Tests for the change feed (``promptmarket.store.changes``)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from promptmarket.store.changes import ChangeEvent, ChangeFeed


def _event(table: str = "messages", **row) -> ChangeEvent:
    return ChangeEvent(table=table, event="INSERT", row={"order_id": "o-1", **row})


class TestChangeFeed:
    async def test_filters_by_table_and_row(self) -> None:
        feed = ChangeFeed()
        handler = MagicMock()
        feed.subscribe("messages", {"order_id": "o-1"}, handler)

        await feed.publish(
            [
                _event(),
                _event(order_id="o-2"),
                _event(table="order_versions"),
            ]
        )
        assert handler.call_count == 1
        assert handler.call_args.args[0].row["order_id"] == "o-1"

    async def test_async_handlers_are_awaited(self) -> None:
        feed = ChangeFeed()
        handler = AsyncMock()
        feed.subscribe("messages", None, handler)
        await feed.publish([_event()])
        handler.assert_awaited_once()

    async def test_failing_handler_does_not_stop_others(self) -> None:
        feed = ChangeFeed()
        broken = MagicMock(side_effect=RuntimeError("boom"))
        healthy = MagicMock()
        feed.subscribe("messages", None, broken)
        feed.subscribe("messages", None, healthy)

        await feed.publish([_event(), _event()])
        assert broken.call_count == 2
        assert healthy.call_count == 2

    async def test_unsubscribe(self) -> None:
        feed = ChangeFeed()
        handler = MagicMock()
        unsubscribe = feed.subscribe("messages", None, handler)
        assert feed.subscriber_count == 1

        unsubscribe()
        unsubscribe()  # second call is a no-op
        await feed.publish([_event()])

        assert feed.subscriber_count == 0
        handler.assert_not_called()
