"""Print an order's version history and revision budget as a table.

Reads the database directly, so it can inspect any order without acting as
one of its parties.

Usage::

    python -m scripts.order_status ORDER_ID
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure the project root is on ``sys.path`` so that ``promptmarket.*``
# imports work when the script is executed directly.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from rich.console import Console  # noqa: E402
from rich.table import Table  # noqa: E402

from config.settings import settings  # noqa: E402
from promptmarket.models.database import Database  # noqa: E402
from promptmarket.models.schemas import Order, OrderVersion, VersionStatus  # noqa: E402
from promptmarket.orchestrator.errors import NotFoundError  # noqa: E402
from promptmarket.orchestrator.state_machine import revision_budget  # noqa: E402
from promptmarket.store.order_store import OrderStore  # noqa: E402
from promptmarket.utils.logger import setup_logging  # noqa: E402

_STATUS_STYLE = {
    VersionStatus.PENDING_REVIEW: "yellow",
    VersionStatus.REJECTED: "red",
    VersionStatus.APPROVED: "green",
}


def render(order: Order, versions: list[OrderVersion], max_revisions: int) -> Table:
    budget = revision_budget(versions, max_revisions)
    table = Table(
        title=f"{order.service_snapshot.title} ({order.status.value})",
        caption=f"Revisions left: {budget.remaining}/{budget.max_revisions}",
    )
    table.add_column("Version", justify="right")
    table.add_column("Status")
    table.add_column("Artifact")
    table.add_column("Notes / feedback")
    for v in versions:
        style = _STATUS_STYLE[v.status]
        table.add_row(
            f"V{v.version_number}",
            f"[{style}]{v.status.value}[/{style}]",
            v.content_url,
            v.buyer_feedback or v.creator_notes,
        )
    return table


async def main(order_id: str) -> int:
    setup_logging(settings.log_level)
    console = Console()

    async with Database(db_path=str(settings.abs_db_path)) as db:
        store = OrderStore(db)
        try:
            order = await store.read_order(order_id)
        except NotFoundError as exc:
            console.print(f"[red]{exc}[/red]")
            return 1
        versions = await store.read_versions(order_id)

    console.print(render(order, versions, settings.max_revisions))
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Show an order's version history")
    parser.add_argument("order_id")
    sys.exit(asyncio.run(main(parser.parse_args().order_id)))
