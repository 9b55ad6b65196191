"""Per-order message thread between buyer and seller."""

from __future__ import annotations

from promptmarket.models.schemas import Message
from promptmarket.orchestrator.errors import AuthorizationError, ValidationError
from promptmarket.store.order_store import OrderStore
from promptmarket.utils.logger import get_logger

log = get_logger(__name__, component="messages")


class MessageBoard:
    """Append and read free-text messages on an order.

    Workflow transitions write their own system messages; this class only
    handles what the two parties type.
    """

    def __init__(self, store: OrderStore) -> None:
        self._store = store

    async def send_message(self, order_id: str, sender_id: str, text: str) -> Message:
        """Append *text* from *sender_id* to the order's thread.

        Raises
        ------
        AuthorizationError
            If the sender is neither the buyer nor the seller.
        ValidationError
            If the text is blank.
        """
        order = await self._store.read_order(order_id)
        if order.role_of(sender_id) is None:
            raise AuthorizationError(
                f"Caller is not a party to order {order_id}", order_id=order_id
            )
        content = (text or "").strip()
        if not content:
            raise ValidationError("Message text is required", order_id=order_id)

        message = Message(order_id=order_id, sender_id=sender_id, content=content)
        await self._store.insert("messages", message)
        log.debug("message.sent", order_id=order_id, length=len(content))
        return message

    async def list_messages(self, order_id: str) -> list[Message]:
        return await self._store.read_messages(order_id)
