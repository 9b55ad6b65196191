"""Persistence adapter for the order workflow.

``OrderStore`` is the only code that turns workflow decisions into SQL.  It
offers the small contract the workflow relies on (read, conditional update,
insert, subscribe) and ``apply()``, which writes a planned ``Transition``
atomically and then announces the committed rows on the change feed.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import aiosqlite
from pydantic import BaseModel

from promptmarket.models.database import JSON_COLUMNS, Database
from promptmarket.models.schemas import Message, Order, OrderVersion
from promptmarket.orchestrator.errors import ConflictError, NotFoundError
from promptmarket.orchestrator.state_machine import Transition
from promptmarket.store.changes import ChangeEvent, ChangeFeed, ChangeHandler
from promptmarket.utils.logger import get_logger

log = get_logger(__name__, component="order_store")

_TABLES: frozenset[str] = frozenset(
    {"profiles", "services", "orders", "order_versions", "messages"}
)
# Tables whose rows carry an ``updated_at`` stamp.
_STAMPED: frozenset[str] = frozenset({"orders"})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_table(table: str) -> str:
    if table not in _TABLES:
        raise ValueError(f"Unknown table: {table}")
    return table


def _to_column(name: str, value: Any) -> Any:
    """Convert a Python value into something SQLite can bind."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if name in JSON_COLUMNS:
        return json.dumps(value)
    return value


def _plain_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Enum members and datetimes as the strings a reader of the row would see."""
    plain: dict[str, Any] = {}
    for name, value in fields.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        plain[name] = value
    return plain


def to_row(record: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
    """Return the persisted column mapping for a model or plain dict."""
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json", by_alias=True)
    return dict(record)


class OrderStore:
    """Read and write orders, versions and messages.

    Parameters
    ----------
    db:
        A connected ``Database``.
    feed:
        Change feed notified after every committed write.  A private feed is
        created when omitted.
    """

    def __init__(self, db: Database, feed: ChangeFeed | None = None) -> None:
        self._db = db
        self._feed = feed or ChangeFeed()

    @property
    def db(self) -> Database:
        return self._db

    @property
    def feed(self) -> ChangeFeed:
        return self._feed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_order(self, order_id: str) -> Order:
        row = await self._db.fetch_one("SELECT * FROM orders WHERE id = ?", (order_id,))
        if row is None:
            raise NotFoundError(f"Order not found: {order_id}", order_id=order_id)
        return Order.model_validate(row)

    async def read_versions(self, order_id: str) -> list[OrderVersion]:
        """Return the order's versions, oldest first."""
        rows = await self._db.fetch_all(
            "SELECT * FROM order_versions WHERE order_id = ? ORDER BY version_number ASC",
            (order_id,),
        )
        return [OrderVersion.model_validate(r) for r in rows]

    async def read_messages(self, order_id: str) -> list[Message]:
        rows = await self._db.fetch_all(
            "SELECT * FROM messages WHERE order_id = ? ORDER BY created_at ASC, rowid ASC",
            (order_id,),
        )
        return [Message.model_validate(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def conditional_update(
        self,
        table: str,
        row_id: str,
        expected: Enum | str,
        new_fields: Mapping[str, Any],
    ) -> bool:
        """Update *row_id* only if its ``status`` still equals *expected*.

        Returns ``False`` when the row is missing or its status moved on.
        """
        _check_table(table)
        fields = dict(new_fields)
        if table in _STAMPED:
            fields.setdefault("updated_at", _now())

        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [_to_column(name, value) for name, value in fields.items()]
        params.extend([row_id, _to_column("status", expected)])

        cursor = await self._db.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ? AND status = ?",
            tuple(params),
        )
        updated = cursor.rowcount == 1
        if not updated:
            log.warning(
                "store.conditional_update_conflict",
                table=table,
                row_id=row_id,
                expected=_to_column("status", expected),
            )
        elif not self._db.in_transaction:
            await self._feed.publish(
                [ChangeEvent(table=table, event="UPDATE", row={"id": row_id, **_plain_fields(fields)})]
            )
        return updated

    async def _require_latest_version(self, order_id: str, expected: int) -> None:
        row = await self._db.fetch_one(
            "SELECT COALESCE(MAX(version_number), 0) AS latest "
            "FROM order_versions WHERE order_id = ?",
            (order_id,),
        )
        latest = row["latest"] if row else 0
        if latest != expected:
            raise ConflictError(
                f"Order {order_id} now has V{latest}; the action was based on V{expected}",
                order_id=order_id,
            )

    async def _insert_row(self, table: str, record: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
        _check_table(table)
        row = to_row(record)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        await self._db.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            tuple(_to_column(name, value) for name, value in row.items()),
        )
        return row

    async def insert(self, table: str, record: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
        """Insert *record* into *table* and return the stored row.

        Outside a transaction the insert commits immediately and is announced
        on the change feed.
        """
        row = await self._insert_row(table, record)
        if not self._db.in_transaction:
            await self._feed.publish([ChangeEvent(table=table, event="INSERT", row=row)])
        return row

    async def update(self, table: str, row_id: str, new_fields: Mapping[str, Any]) -> None:
        """Unconditional update by primary key, announced on the change feed."""
        _check_table(table)
        fields = dict(new_fields)
        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = [_to_column(name, value) for name, value in fields.items()]
        cursor = await self._db.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ?", (*params, row_id)
        )
        if cursor.rowcount != 1:
            raise NotFoundError(f"{table} row not found: {row_id}")
        await self._feed.publish(
            [ChangeEvent(table=table, event="UPDATE", row={"id": row_id, **_plain_fields(fields)})]
        )

    async def delete(self, table: str, row_id: str) -> None:
        """Delete a row by primary key, announced on the change feed."""
        _check_table(table)
        cursor = await self._db.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
        if cursor.rowcount != 1:
            raise NotFoundError(f"{table} row not found: {row_id}")
        if not self._db.in_transaction:
            await self._feed.publish([ChangeEvent(table=table, event="DELETE", row={"id": row_id})])

    async def apply(self, transition: Transition) -> Order:
        """Write *transition* atomically and return the updated order.

        Order status, version update, new version and message are written in
        that order inside one transaction.  A guard that no longer holds, a
        version delivered since the plan was made or a duplicate version
        number rolls everything back.

        Raises
        ------
        ConflictError
            If another writer changed the order first.
        """
        events: list[ChangeEvent] = []
        order_id = transition.order_id
        try:
            async with self._db.transaction():
                order_fields = {"status": transition.new_order_status, "updated_at": _now()}
                if not await self.conditional_update(
                    "orders", order_id, transition.expected_order_status, order_fields
                ):
                    raise ConflictError(
                        f"Order {order_id} is no longer "
                        f"{transition.expected_order_status.value}",
                        order_id=order_id,
                    )
                events.append(
                    ChangeEvent(
                        table="orders",
                        event="UPDATE",
                        row={"id": order_id, **_plain_fields(order_fields)},
                    )
                )
                if transition.expected_current_version is not None:
                    await self._require_latest_version(
                        order_id, transition.expected_current_version
                    )

                update = transition.version_update
                if update is not None:
                    if not await self.conditional_update(
                        "order_versions", update.version_id, update.expected_status, update.fields
                    ):
                        raise ConflictError(
                            f"Version {update.version_id} is no longer "
                            f"{update.expected_status.value}",
                            order_id=order_id,
                        )
                    events.append(
                        ChangeEvent(
                            table="order_versions",
                            event="UPDATE",
                            row={
                                "id": update.version_id,
                                "order_id": order_id,
                                **_plain_fields(update.fields),
                            },
                        )
                    )

                if transition.new_version is not None:
                    row = await self._insert_row("order_versions", transition.new_version)
                    events.append(ChangeEvent(table="order_versions", event="INSERT", row=row))

                row = await self._insert_row("messages", transition.message)
                events.append(ChangeEvent(table="messages", event="INSERT", row=row))
        except aiosqlite.IntegrityError as exc:
            raise ConflictError(
                f"Concurrent write on order {order_id}: {exc}", order_id=order_id
            ) from exc

        log.info(
            "store.transition_applied",
            order_id=order_id,
            action=transition.action,
            from_status=transition.expected_order_status.value,
            to_status=transition.new_order_status.value,
            writes=len(events),
        )
        await self._feed.publish(events)
        return await self.read_order(order_id)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(
        self,
        table: str,
        filter: Mapping[str, Any] | None,
        on_change: ChangeHandler,
    ):
        """Subscribe to committed changes; returns an unsubscribe callable."""
        return self._feed.subscribe(_check_table(table), filter, on_change)
