"""Shared pytest fixtures for the PromptMarket test suite.

Provides an in-memory database, the store and workflow built on it, seeded
orders at the interesting points of their lifecycle, and application
settings.  Every fixture runs without network access or external services.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import AsyncGenerator

import pytest

# ---------------------------------------------------------------------------
# Ensure the project root is on sys.path so that ``import promptmarket.*``
# resolves correctly regardless of how pytest is invoked.
# ---------------------------------------------------------------------------
_PROJECT_ROOT = str(Path(__file__).resolve().parents[1])
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from promptmarket.models.database import Database
from promptmarket.models.schemas import (
    Order,
    OrderStatus,
    OrderVersion,
    ServiceSnapshot,
    VersionStatus,
)
from promptmarket.orchestrator.workflow import OrderWorkflow
from promptmarket.store.order_store import OrderStore

BUYER = "buyer-001"
SELLER = "seller-001"
STRANGER = "someone-else"


def make_order(
    order_id: str = "order-001",
    status: OrderStatus = OrderStatus.PENDING,
    buyer: str = BUYER,
    seller: str = SELLER,
) -> Order:
    return Order(
        id=order_id,
        buyer_id=buyer,
        seller_id=seller,
        amount=120.0,
        status=status,
        service_snapshot=ServiceSnapshot(
            title="Cinematic AI portrait set", price=120.0, package_name="Basic"
        ),
    )


def make_version(
    number: int,
    status: VersionStatus = VersionStatus.PENDING_REVIEW,
    order_id: str = "order-001",
    feedback: str | None = None,
) -> OrderVersion:
    return OrderVersion(
        id=f"{order_id}-v{number}",
        order_id=order_id,
        version_number=number,
        content_url=f"https://cdn.example.com/{order_id}/v{number}.png",
        asset_urls=[f"https://cdn.example.com/{order_id}/v{number}.png"],
        prompt_data={"raw": "portrait, golden hour"},
        creator_notes=f"Delivery {number}",
        status=status,
        buyer_feedback=feedback,
    )


# ---------------------------------------------------------------------------
# Database, store, workflow
# ---------------------------------------------------------------------------

@pytest.fixture
async def db() -> AsyncGenerator[Database, None]:
    """Yield a connected, migrated in-memory Database and close it after use."""
    database = Database(db_path=":memory:")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def store(db: Database) -> OrderStore:
    return OrderStore(db)


@pytest.fixture
def workflow(store: OrderStore) -> OrderWorkflow:
    return OrderWorkflow(store, max_revisions=3)


async def seed_order(
    store: OrderStore,
    status: OrderStatus = OrderStatus.PENDING,
    versions: list[OrderVersion] | None = None,
    order_id: str = "order-001",
) -> str:
    """Insert an order (and optional versions) directly and return its id."""
    await store.insert("orders", make_order(order_id=order_id, status=status))
    for v in versions or []:
        await store.insert("order_versions", v)
    return order_id


@pytest.fixture
async def pending_order(store: OrderStore) -> str:
    return await seed_order(store)


@pytest.fixture
async def delivered_order(store: OrderStore) -> str:
    """An order with V1 awaiting the buyer's review."""
    return await seed_order(store, OrderStatus.DELIVERED, [make_version(1)])


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Return a Settings instance backed by test-only environment variables.

    Uses monkeypatch so the real environment is never modified.
    """
    monkeypatch.setenv("MAX_REVISIONS", "2")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))

    from config.settings import Settings

    return Settings()
