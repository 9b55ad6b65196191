"""PromptMarket -- marketplace for AI creative services.

Command-line front end over the order workflow.  Every command opens the
database, performs one action as the user given by ``--as`` and prints the
result.

Usage::

    python main.py init-db
    python main.py services [--category image]
    python main.py --as seller-1 service-delete SERVICE_ID
    python main.py --as buyer-1 order-place SERVICE_ID --package pro
    python main.py --as seller-1 accept ORDER_ID
    python main.py --as seller-1 deliver ORDER_ID --file URL --prompt TEXT --notes TEXT
    python main.py --as buyer-1 revise ORDER_ID --feedback "needs warmer tones"
    python main.py --as buyer-1 approve ORDER_ID
    python main.py --as buyer-1 order-show ORDER_ID
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

# Ensure project root is on sys.path so that ``promptmarket.*`` imports resolve.
_PROJECT_ROOT = Path(__file__).resolve().parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from config.settings import Settings
from promptmarket.marketplace import ListingService, MessageBoard, OrderBook, ProfileDirectory
from promptmarket.models.database import Database
from promptmarket.orchestrator.errors import ConflictError, WorkflowError, describe_error
from promptmarket.orchestrator.workflow import OrderWorkflow
from promptmarket.store.order_store import OrderStore
from promptmarket.utils.logger import get_logger, setup_logging
from promptmarket.utils.retry import retry

log = get_logger(__name__, component="main")


@dataclass
class App:
    """All services wired to one open database."""

    db: Database
    store: OrderStore
    workflow: OrderWorkflow
    listings: ListingService
    orders: OrderBook
    messages: MessageBoard
    profiles: ProfileDirectory


def build_app(db: Database, settings: Settings) -> App:
    store = OrderStore(db)
    listings = ListingService(store)
    return App(
        db=db,
        store=store,
        workflow=OrderWorkflow(store, max_revisions=settings.max_revisions),
        listings=listings,
        orders=OrderBook(store, listings),
        messages=MessageBoard(store),
        profiles=ProfileDirectory(store),
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _require_caller(args: argparse.Namespace) -> str:
    if not args.caller:
        raise SystemExit("This command needs --as USER_ID")
    return args.caller


async def _cmd_init_db(app: App, args: argparse.Namespace) -> None:
    print(f"  Database ready at {args.db_path}")


async def _cmd_services(app: App, args: argparse.Namespace) -> None:
    services = await app.listings.list_services(args.category)
    if not services:
        print("  No services listed.")
        return
    for s in services:
        tiers = ", ".join(f"{p.key}={p.price:g}" for p in s.packages)
        print(f"  {s.id}  [{s.category.value}] {s.title}  ({tiers})")


async def _cmd_service_delete(app: App, args: argparse.Namespace) -> None:
    await app.listings.delete_service(args.service_id, _require_caller(args))
    print(f"  Service {args.service_id} delisted")


async def _cmd_order_place(app: App, args: argparse.Namespace) -> None:
    order = await app.orders.place_order(_require_caller(args), args.service_id, args.package)
    print(f"  Order {order.id} placed ({order.service_snapshot.package_name}, {order.amount:g})")


async def _cmd_order_show(app: App, args: argparse.Namespace) -> None:
    thread = await app.workflow.get_thread(args.order_id, _require_caller(args))
    order = thread.order
    print(f"  Order {order.id}: {order.service_snapshot.title}")
    print(f"    Status    : {order.status.value}")
    print(f"    You are   : {thread.role.value}")
    print(f"    Revisions : {thread.budget.remaining}/{thread.budget.max_revisions} left")
    if thread.current_version is None:
        print("    Nothing delivered yet.")
    for v in thread.versions:
        marker = "*" if thread.current_version and v.id == thread.current_version.id else " "
        feedback = f"  feedback: {v.buyer_feedback}" if v.buyer_feedback else ""
        print(f"   {marker}V{v.version_number} {v.status.value:<15} {v.content_url}{feedback}")
    print()
    for m in thread.messages:
        print(f"    [{m.created_at:%Y-%m-%d %H:%M}] {m.sender_id}: {m.content}")


async def _cmd_accept(app: App, args: argparse.Namespace) -> None:
    order = await app.workflow.accept_order(args.order_id, _require_caller(args))
    print(f"  Order {order.id} is now {order.status.value}")


async def _cmd_deliver(app: App, args: argparse.Namespace) -> None:
    version = await app.workflow.submit_delivery(
        args.order_id, _require_caller(args), args.file or [], args.prompt, args.notes
    )
    print(f"  Delivered V{version.version_number} on order {version.order_id}")


async def _cmd_approve(app: App, args: argparse.Namespace) -> None:
    version = await app.workflow.approve_current_version(args.order_id, _require_caller(args))
    print(f"  Approved V{version.version_number}; order completed")


async def _cmd_revise(app: App, args: argparse.Namespace) -> None:
    version = await app.workflow.request_revision(
        args.order_id, _require_caller(args), args.feedback
    )
    print(f"  Revision requested on V{version.version_number}")


async def _cmd_cancel(app: App, args: argparse.Namespace) -> None:
    order = await app.workflow.cancel_order(args.order_id, _require_caller(args), args.reason)
    print(f"  Order {order.id} cancelled")


async def _cmd_message(app: App, args: argparse.Namespace) -> None:
    await app.messages.send_message(args.order_id, _require_caller(args), args.text)
    print("  Message sent")


Command = Callable[[App, argparse.Namespace], Awaitable[None]]

# Commands that move an order forward may lose a write race; those are
# re-run from a fresh read.
_RETRY_ON_CONFLICT: frozenset[str] = frozenset(
    {"accept", "deliver", "approve", "revise", "cancel"}
)


async def run_command(command: Command, app: App, args: argparse.Namespace, attempts: int) -> None:
    if args.command not in _RETRY_ON_CONFLICT:
        await command(app, args)
        return

    @retry(max_attempts=attempts, base_delay=0.2, max_delay=2.0, exceptions=(ConflictError,))
    async def attempt() -> None:
        await command(app, args)

    await attempt()


async def main(args: argparse.Namespace) -> int:
    """Open the database, run one command and return the exit code."""
    settings = Settings()
    setup_logging(settings.log_level, settings.abs_log_dir)
    db_path = args.db_path or str(settings.abs_db_path)
    args.db_path = db_path

    async with Database(db_path) as db:
        app = build_app(db, settings)
        try:
            await run_command(args.handler, app, args, settings.conflict_retry_attempts)
        except WorkflowError as exc:
            log.warning("cli.command_failed", command=args.command, error_type=type(exc).__name__)
            print(f"  [ERROR] {describe_error(exc)}")
            return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="PromptMarket - marketplace for AI creative services",
    )
    parser.add_argument("--as", dest="caller", help="Identity of the acting user")
    parser.add_argument("--db-path", help="Override the configured database path")
    sub = parser.add_subparsers(dest="command", required=True)

    def add(name: str, handler: Command, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.set_defaults(handler=handler)
        return p

    add("init-db", _cmd_init_db, "Create the database and tables")

    p = add("services", _cmd_services, "List services")
    p.add_argument("--category", choices=["image", "video", "code", "other"])

    p = add("service-delete", _cmd_service_delete, "Creator delists one of their services")
    p.add_argument("service_id")

    p = add("order-place", _cmd_order_place, "Order a service")
    p.add_argument("service_id")
    p.add_argument("--package", default="basic", choices=["basic", "pro"])

    p = add("order-show", _cmd_order_show, "Show an order thread")
    p.add_argument("order_id")

    p = add("accept", _cmd_accept, "Seller accepts a pending order")
    p.add_argument("order_id")

    p = add("deliver", _cmd_deliver, "Seller submits a new version")
    p.add_argument("order_id")
    p.add_argument("--file", action="append", help="Artifact reference (repeatable)")
    p.add_argument("--prompt", default="", help="How the artifact was produced")
    p.add_argument("--notes", default="", help="Notes for the buyer")

    p = add("approve", _cmd_approve, "Buyer approves the current version")
    p.add_argument("order_id")

    p = add("revise", _cmd_revise, "Buyer requests a revision")
    p.add_argument("order_id")
    p.add_argument("--feedback", default="")

    p = add("cancel", _cmd_cancel, "Cancel an open order")
    p.add_argument("order_id")
    p.add_argument("--reason", default="")

    p = add("message", _cmd_message, "Send a message on an order")
    p.add_argument("order_id")
    p.add_argument("text")

    return parser


def cli(argv: list[str] | None = None) -> Any:
    """Parse CLI arguments and run the event loop."""
    args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(main(args)))


if __name__ == "__main__":
    cli()
