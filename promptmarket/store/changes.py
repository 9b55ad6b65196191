"""In-process row-change notifications.

Screens subscribe to ``(table, filter)`` pairs and re-fetch when a matching
row changes.  Events are published only after the write has committed, so a
notification never describes state a reader cannot see.  Delivery is a
freshness hint; nothing in the workflow depends on it.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

from promptmarket.utils.logger import get_logger

log = get_logger(__name__, component="changes")


class ChangeEvent(BaseModel):
    """A committed row change."""

    table: str
    event: Literal["INSERT", "UPDATE", "DELETE"]
    row: dict[str, Any]
    committed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


ChangeHandler = Callable[[ChangeEvent], Awaitable[None] | None]


class _Subscription:
    __slots__ = ("id", "table", "filter", "handler")

    def __init__(self, table: str, filter: Mapping[str, Any], handler: ChangeHandler) -> None:
        self.id = uuid4().hex
        self.table = table
        self.filter = dict(filter)
        self.handler = handler

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        return all(event.row.get(k) == v for k, v in self.filter.items())


class ChangeFeed:
    """Fan committed row changes out to matching subscribers."""

    def __init__(self) -> None:
        self._subs: dict[str, _Subscription] = {}

    def subscribe(
        self,
        table: str,
        filter: Mapping[str, Any] | None,
        on_change: ChangeHandler,
    ) -> Callable[[], None]:
        """Register *on_change* for rows of *table* equal to *filter*.

        Returns a callable that removes the subscription.
        """
        sub = _Subscription(table, filter or {}, on_change)
        self._subs[sub.id] = sub
        log.debug("changes.subscribed", table=table, filter=sub.filter, sub_id=sub.id)

        def unsubscribe() -> None:
            if self._subs.pop(sub.id, None) is not None:
                log.debug("changes.unsubscribed", table=table, sub_id=sub.id)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    async def publish(self, events: list[ChangeEvent]) -> None:
        """Deliver *events* in order.  A failing handler is logged and skipped."""
        for event in events:
            for sub in list(self._subs.values()):
                if not sub.matches(event):
                    continue
                try:
                    result = sub.handler(event)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    log.exception(
                        "changes.handler_failed",
                        table=event.table,
                        event=event.event,
                        sub_id=sub.id,
                    )
