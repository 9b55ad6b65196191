"""Seed a database with demo creators, listings and one order in review.

Usage::

    python -m scripts.seed_demo
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Ensure the project root is on ``sys.path`` so that ``promptmarket.*``
# imports work when the script is executed directly.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from config.settings import settings  # noqa: E402
from promptmarket.marketplace import ListingService, OrderBook, ProfileDirectory  # noqa: E402
from promptmarket.models.database import Database  # noqa: E402
from promptmarket.orchestrator.workflow import OrderWorkflow  # noqa: E402
from promptmarket.store.order_store import OrderStore  # noqa: E402
from promptmarket.utils.logger import get_logger, setup_logging  # noqa: E402

log = get_logger(__name__, component="seed_demo")

DEMO_CREATOR = "creator-aurora"
DEMO_BUYER = "buyer-milo"

DEMO_SERVICES = [
    ("Cinematic AI portrait set", "image", 120.0, "portrait, midjourney, retouch"),
    ("Product teaser video (15s)", "video", 260.0, "runway, motion, ads"),
    ("Custom Stable Diffusion pipeline", "code", 480.0, "python, comfyui"),
]


async def main() -> None:
    setup_logging(settings.log_level)

    print("=" * 60)
    print("  PromptMarket - Demo Seed")
    print("=" * 60)
    print(f"  Database : {settings.abs_db_path}")
    print()

    async with Database(db_path=str(settings.abs_db_path)) as db:
        store = OrderStore(db)
        profiles = ProfileDirectory(store)
        listings = ListingService(store)
        orders = OrderBook(store, listings)
        workflow = OrderWorkflow(store, max_revisions=settings.max_revisions)

        await profiles.upsert_profile(DEMO_CREATOR, "Aurora Studio", is_creator=True)
        await profiles.upsert_profile(DEMO_BUYER, "Milo")

        services = []
        for title, category, price, tags in DEMO_SERVICES:
            service = await listings.create_service(
                DEMO_CREATOR, title, price, category=category, tags=tags
            )
            services.append(service)
            print(f"  [OK] Listed {service.title} ({service.id})")

        order = await orders.place_order(DEMO_BUYER, services[0].id, "pro")
        await workflow.accept_order(order.id, DEMO_CREATOR)
        version = await workflow.submit_delivery(
            order.id,
            DEMO_CREATOR,
            ["https://cdn.example.com/demo/portrait-v1.png"],
            "cinematic portrait, golden hour, 85mm, film grain",
            "First pass with warm grading, tell me what you think.",
        )
        print(f"  [OK] Order {order.id} delivered V{version.version_number}")

    log.info("seed_demo.done", order_id=order.id)
    print()
    print(f"  Try: python main.py --as {DEMO_BUYER} order-show {order.id}")


if __name__ == "__main__":
    asyncio.run(main())
