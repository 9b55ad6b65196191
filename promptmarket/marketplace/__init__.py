"""Marketplace layer -- listings, order placement, messages, and profiles."""

from promptmarket.marketplace.listings import ListingService
from promptmarket.marketplace.messages import MessageBoard
from promptmarket.marketplace.orders import OrderBook
from promptmarket.marketplace.profiles import ProfileDirectory

__all__ = [
    "ListingService",
    "MessageBoard",
    "OrderBook",
    "ProfileDirectory",
]
