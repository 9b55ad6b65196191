"""Order placement and the buyer/seller order lists.

Placing an order is the only write here; everything after that goes through
:class:`promptmarket.orchestrator.workflow.OrderWorkflow`.
"""

from __future__ import annotations

from promptmarket.marketplace.listings import ListingService
from promptmarket.models.schemas import Order, OrderStatus, ServiceSnapshot
from promptmarket.orchestrator.errors import ValidationError
from promptmarket.store.order_store import OrderStore
from promptmarket.utils.logger import get_logger

log = get_logger(__name__, component="orders")


class OrderBook:
    """Create orders from listings and list them per party."""

    def __init__(self, store: OrderStore, listings: ListingService) -> None:
        self._store = store
        self._db = store.db
        self._listings = listings

    async def place_order(
        self, buyer_id: str, service_id: str, package_key: str = "basic"
    ) -> Order:
        """Create a ``pending`` order for *package_key* of *service_id*.

        The listing's title and the package price are copied into the order
        so later edits to the listing do not rewrite history.

        Raises
        ------
        NotFoundError
            If the service does not exist.
        ValidationError
            If the package is unknown or the buyer owns the service.
        """
        service = await self._listings.get_service(service_id)
        if service.creator_id == buyer_id:
            raise ValidationError("Creators cannot order their own service")

        package = service.package(package_key)
        if package is None:
            raise ValidationError(f"Unknown package '{package_key}' for service {service_id}")

        order = Order(
            buyer_id=buyer_id,
            seller_id=service.creator_id,
            service_id=service.id,
            amount=package.price,
            status=OrderStatus.PENDING,
            service_snapshot=ServiceSnapshot(
                title=service.title,
                price=package.price,
                package_name=package.name,
            ),
        )
        await self._store.insert("orders", order)
        log.info(
            "order.placed",
            order_id=order.id,
            service_id=service.id,
            package=package.key,
            amount=order.amount,
        )
        return order

    async def list_for_buyer(self, buyer_id: str) -> list[Order]:
        """Return the buyer's orders, newest first."""
        rows = await self._db.fetch_all(
            "SELECT * FROM orders WHERE buyer_id = ? ORDER BY created_at DESC",
            (buyer_id,),
        )
        return [Order.model_validate(r) for r in rows]

    async def list_for_seller(self, seller_id: str) -> list[Order]:
        """Return orders placed on the seller's services, newest first."""
        rows = await self._db.fetch_all(
            "SELECT * FROM orders WHERE service_owner_id = ? ORDER BY created_at DESC",
            (seller_id,),
        )
        return [Order.model_validate(r) for r in rows]
