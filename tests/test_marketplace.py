"""Tests for listings, order placement, messages and profiles."""

from __future__ import annotations

import pytest

from promptmarket.marketplace import ListingService, MessageBoard, OrderBook, ProfileDirectory
from promptmarket.marketplace.listings import default_packages, parse_tags
from promptmarket.models.schemas import OrderStatus, ServiceCategory
from promptmarket.orchestrator.errors import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from promptmarket.orchestrator.workflow import OrderWorkflow
from promptmarket.store.order_store import OrderStore

CREATOR = "creator-aurora"
BUYER = "buyer-milo"


@pytest.fixture
def listings(store: OrderStore) -> ListingService:
    return ListingService(store)


@pytest.fixture
def order_book(store: OrderStore, listings: ListingService) -> OrderBook:
    return OrderBook(store, listings)


@pytest.fixture
def board(store: OrderStore) -> MessageBoard:
    return MessageBoard(store)


@pytest.fixture
async def service_id(listings: ListingService) -> str:
    service = await listings.create_service(
        CREATOR, "Cinematic AI portrait set", 100, category="image", tags="portrait, sd ,"
    )
    return service.id


# =========================================================================
# Listings
# =========================================================================


class TestListings:
    def test_default_packages(self) -> None:
        basic, pro = default_packages(99.6)
        assert (basic.key, basic.price) == ("basic", 100)
        assert (pro.key, pro.price) == ("pro", 160)

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, []),
            ("", []),
            ("a, b ,,c", ["a", "b", "c"]),
            (["x", " ", "y "], ["x", "y"]),
        ],
    )
    def test_parse_tags(self, raw, expected: list[str]) -> None:
        assert parse_tags(raw) == expected

    async def test_create_and_get(self, listings: ListingService, service_id: str) -> None:
        service = await listings.get_service(service_id)
        assert service.title == "Cinematic AI portrait set"
        assert service.category is ServiceCategory.IMAGE
        assert service.tags == ["portrait", "sd"]
        assert [p.key for p in service.packages] == ["basic", "pro"]

    @pytest.mark.parametrize("title, price", [("", 10), ("   ", 10), ("Logo", -1)])
    async def test_invalid_listing(self, listings: ListingService, title: str, price: float) -> None:
        with pytest.raises(ValidationError):
            await listings.create_service(CREATOR, title, price)

    async def test_list_ordered_and_filtered(self, listings: ListingService) -> None:
        await listings.create_service(CREATOR, "Zebra video", 50, category="video")
        await listings.create_service(CREATOR, "Avatar pack", 20, category="image")
        await listings.create_service("other", "Bot script", 70, category="code")

        assert [s.title for s in await listings.list_services()] == [
            "Avatar pack",
            "Bot script",
            "Zebra video",
        ]
        assert [s.title for s in await listings.list_services("video")] == ["Zebra video"]
        assert len(await listings.list_services_by_creator(CREATOR)) == 2

    async def test_missing_service(self, listings: ListingService) -> None:
        with pytest.raises(NotFoundError):
            await listings.get_service("nope")

    async def test_creator_delists(self, listings: ListingService, service_id: str) -> None:
        await listings.delete_service(service_id, CREATOR)
        with pytest.raises(NotFoundError):
            await listings.get_service(service_id)
        assert await listings.list_services_by_creator(CREATOR) == []

    async def test_only_creator_may_delist(self, listings: ListingService, service_id: str) -> None:
        with pytest.raises(AuthorizationError):
            await listings.delete_service(service_id, BUYER)
        assert (await listings.get_service(service_id)).creator_id == CREATOR

    async def test_delist_missing(self, listings: ListingService) -> None:
        with pytest.raises(NotFoundError):
            await listings.delete_service("nope", CREATOR)


# =========================================================================
# Orders
# =========================================================================


class TestOrderBook:
    async def test_place_order_snapshots_listing(
        self, order_book: OrderBook, service_id: str
    ) -> None:
        order = await order_book.place_order(BUYER, service_id, "pro")
        assert order.status is OrderStatus.PENDING
        assert order.seller_id == CREATOR
        assert order.amount == 160
        assert order.service_snapshot.title == "Cinematic AI portrait set"
        assert order.service_snapshot.package_name == "Pro"

    async def test_snapshot_survives_listing_edit(
        self, store: OrderStore, order_book: OrderBook, service_id: str
    ) -> None:
        order = await order_book.place_order(BUYER, service_id)
        await store.update("services", service_id, {"title": "Renamed", "price": 999})
        reloaded = await store.read_order(order.id)
        assert reloaded.service_snapshot.title == "Cinematic AI portrait set"
        assert reloaded.amount == 100

    async def test_orders_survive_delisting(
        self, store: OrderStore, listings: ListingService, order_book: OrderBook,
        workflow: OrderWorkflow, service_id: str,
    ) -> None:
        order = await order_book.place_order(BUYER, service_id, "pro")
        await listings.delete_service(service_id, CREATOR)

        kept = await store.read_order(order.id)
        assert kept.service_id is None
        assert kept.service_snapshot.title == "Cinematic AI portrait set"
        assert kept.amount == 160
        assert (await workflow.accept_order(order.id, CREATOR)).status is OrderStatus.PROCESSING

    async def test_cannot_buy_own_service(self, order_book: OrderBook, service_id: str) -> None:
        with pytest.raises(ValidationError):
            await order_book.place_order(CREATOR, service_id)

    async def test_unknown_package(self, order_book: OrderBook, service_id: str) -> None:
        with pytest.raises(ValidationError):
            await order_book.place_order(BUYER, service_id, "platinum")

    async def test_lists_per_party(self, order_book: OrderBook, service_id: str) -> None:
        first = await order_book.place_order(BUYER, service_id)
        second = await order_book.place_order(BUYER, service_id, "pro")
        await order_book.place_order("buyer-other", service_id)

        mine = await order_book.list_for_buyer(BUYER)
        assert {o.id for o in mine} == {first.id, second.id}
        assert len(await order_book.list_for_seller(CREATOR)) == 3
        assert await order_book.list_for_seller(BUYER) == []

    async def test_placed_order_enters_workflow(
        self, order_book: OrderBook, workflow: OrderWorkflow, service_id: str
    ) -> None:
        order = await order_book.place_order(BUYER, service_id)
        accepted = await workflow.accept_order(order.id, CREATOR)
        assert accepted.status is OrderStatus.PROCESSING


# =========================================================================
# Messages
# =========================================================================


class TestMessageBoard:
    async def test_parties_can_talk(
        self, order_book: OrderBook, board: MessageBoard, service_id: str
    ) -> None:
        order = await order_book.place_order(BUYER, service_id)
        await board.send_message(order.id, BUYER, "Hi! Warm tones please.")
        await board.send_message(order.id, CREATOR, "  On it.  ")

        messages = await board.list_messages(order.id)
        assert [(m.sender_id, m.content, m.kind) for m in messages] == [
            (BUYER, "Hi! Warm tones please.", "user"),
            (CREATOR, "On it.", "user"),
        ]

    async def test_stranger_cannot_post(
        self, order_book: OrderBook, board: MessageBoard, service_id: str
    ) -> None:
        order = await order_book.place_order(BUYER, service_id)
        with pytest.raises(AuthorizationError):
            await board.send_message(order.id, "lurker", "hello")

    async def test_blank_message(
        self, order_book: OrderBook, board: MessageBoard, service_id: str
    ) -> None:
        order = await order_book.place_order(BUYER, service_id)
        with pytest.raises(ValidationError):
            await board.send_message(order.id, BUYER, "   ")


# =========================================================================
# Profiles
# =========================================================================


class TestProfiles:
    async def test_create_then_update(self, store: OrderStore) -> None:
        profiles = ProfileDirectory(store)
        created = await profiles.upsert_profile(CREATOR, "Aurora", is_creator=True)
        assert created.is_creator is True

        updated = await profiles.upsert_profile(CREATOR, "Aurora Studio", bio="AI portraits")
        assert updated.display_name == "Aurora Studio"
        assert updated.bio == "AI portraits"
        assert updated.is_creator is False

    async def test_blank_name(self, store: OrderStore) -> None:
        with pytest.raises(ValidationError):
            await ProfileDirectory(store).upsert_profile("u-1", " ")

    async def test_missing_profile(self, store: OrderStore) -> None:
        with pytest.raises(NotFoundError):
            await ProfileDirectory(store).get_profile("ghost")
