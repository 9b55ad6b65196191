"""Persistence adapter and change notifications for the order workflow."""

from promptmarket.store.changes import ChangeEvent, ChangeFeed
from promptmarket.store.order_store import OrderStore

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "OrderStore",
]
