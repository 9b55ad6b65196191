"""Creator listings -- publishing and browsing services."""

from __future__ import annotations

from promptmarket.models.schemas import Service, ServiceCategory, ServicePackage
from promptmarket.orchestrator.errors import AuthorizationError, NotFoundError, ValidationError
from promptmarket.store.order_store import OrderStore
from promptmarket.utils.logger import get_logger

log = get_logger(__name__, component="listings")

_PRO_MULTIPLIER = 1.6


def default_packages(price: float) -> list[ServicePackage]:
    """Return the basic and pro tiers offered for a listing at *price*."""
    base = max(0, round(price))
    return [
        ServicePackage(key="basic", name="Basic", price=base, summary="Standard delivery"),
        ServicePackage(
            key="pro",
            name="Pro",
            price=round(base * _PRO_MULTIPLIER),
            summary="Deeper customisation and support",
        ),
    ]


def parse_tags(raw: str | list[str] | None) -> list[str]:
    """Split a comma-separated tag string, dropping blanks."""
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    return [t.strip() for t in items if t and t.strip()]


class ListingService:
    """Create and query service listings.

    Parameters
    ----------
    store:
        Shared store; inserts go through it so subscribers see new listings.
    """

    def __init__(self, store: OrderStore) -> None:
        self._store = store
        self._db = store.db

    async def create_service(
        self,
        creator_id: str,
        title: str,
        price: float,
        *,
        description: str = "",
        category: ServiceCategory | str = ServiceCategory.OTHER,
        tags: str | list[str] | None = None,
        cover_url: str = "",
    ) -> Service:
        """Publish a new listing owned by *creator_id*.

        Raises
        ------
        ValidationError
            If the title is blank or the price is negative.
        """
        clean_title = (title or "").strip()
        if not clean_title:
            raise ValidationError("Title is required")
        if price is None or price < 0:
            raise ValidationError("Price must be a non-negative number")

        service = Service(
            creator_id=creator_id,
            title=clean_title,
            description=(description or "").strip(),
            category=ServiceCategory(category),
            price=float(price),
            tags=parse_tags(tags),
            cover_url=(cover_url or "").strip(),
            packages=default_packages(price),
        )
        await self._store.insert("services", service)
        log.info(
            "listing.created",
            service_id=service.id,
            creator_id=creator_id,
            category=service.category.value,
            price=service.price,
        )
        return service

    async def delete_service(self, service_id: str, caller_id: str) -> None:
        """Delist a service.  Orders already placed keep their snapshot.

        Raises
        ------
        NotFoundError
            If the service does not exist.
        AuthorizationError
            If *caller_id* is not the creator of the listing.
        """
        service = await self.get_service(service_id)
        if service.creator_id != caller_id:
            raise AuthorizationError(f"Only the creator may delist service {service_id}")
        await self._store.delete("services", service_id)
        log.info("listing.deleted", service_id=service_id, creator_id=caller_id)

    async def get_service(self, service_id: str) -> Service:
        row = await self._db.fetch_one("SELECT * FROM services WHERE id = ?", (service_id,))
        if row is None:
            raise NotFoundError(f"Service not found: {service_id}")
        return Service.model_validate(row)

    async def list_services(self, category: ServiceCategory | str | None = None) -> list[Service]:
        """Return all listings ordered by title, optionally for one category."""
        if category is None:
            rows = await self._db.fetch_all("SELECT * FROM services ORDER BY title")
        else:
            rows = await self._db.fetch_all(
                "SELECT * FROM services WHERE category = ? ORDER BY title",
                (ServiceCategory(category).value,),
            )
        return [Service.model_validate(r) for r in rows]

    async def list_services_by_creator(self, creator_id: str) -> list[Service]:
        rows = await self._db.fetch_all(
            "SELECT * FROM services WHERE creator_id = ? ORDER BY created_at DESC",
            (creator_id,),
        )
        return [Service.model_validate(r) for r in rows]
