"""Order fulfilment workflow.

``OrderWorkflow`` is the single entry point every screen uses to move an
order forward.  Each operation re-reads the order and its versions, asks the
pure planner in :mod:`promptmarket.orchestrator.state_machine` whether the
step is legal, and hands the resulting transition to the store, which writes
it atomically.  Nothing here caches state between calls or retries.
"""

from __future__ import annotations

from collections.abc import Sequence

from promptmarket.models.schemas import Order, OrderThread, OrderVersion
from promptmarket.orchestrator import state_machine as sm
from promptmarket.orchestrator.errors import AuthorizationError, WorkflowError
from promptmarket.orchestrator.state_machine import Transition
from promptmarket.store.order_store import OrderStore
from promptmarket.utils.logger import get_logger

log = get_logger(__name__, component="workflow")


class OrderWorkflow:
    """Role-gated lifecycle operations on a single order.

    Parameters
    ----------
    store:
        Persistence adapter providing reads and atomic ``apply()``.
    max_revisions:
        How many deliveries the buyer may reject per order.
    """

    def __init__(self, store: OrderStore, max_revisions: int = sm.DEFAULT_MAX_REVISIONS) -> None:
        if max_revisions < 0:
            raise ValueError("max_revisions must be >= 0")
        self._store = store
        self._max_revisions = max_revisions

    @property
    def max_revisions(self) -> int:
        return self._max_revisions

    # ------------------------------------------------------------------
    # Seller operations
    # ------------------------------------------------------------------

    async def accept_order(self, order_id: str, caller_id: str) -> Order:
        """Move a pending order into ``processing``."""
        order = await self._store.read_order(order_id)
        versions = await self._store.read_versions(order_id)
        transition = self._plan(
            order, caller_id, sm.plan_accept, order, caller_id, versions=versions
        )
        return await self._commit(transition)

    async def submit_delivery(
        self,
        order_id: str,
        caller_id: str,
        files: Sequence[str],
        prompt_text: str,
        notes: str,
    ) -> OrderVersion:
        """Deliver a new version and return it.

        The version number is always the current maximum plus one.
        """
        order = await self._store.read_order(order_id)
        versions = await self._store.read_versions(order_id)
        transition = self._plan(
            order,
            caller_id,
            sm.plan_delivery,
            order,
            versions,
            caller_id,
            files,
            prompt_text,
            notes,
        )
        await self._commit(transition)
        if transition.new_version is None:
            raise RuntimeError(f"Delivery plan for order {order_id} carries no version")
        return transition.new_version

    # ------------------------------------------------------------------
    # Buyer operations
    # ------------------------------------------------------------------

    async def approve_current_version(self, order_id: str, caller_id: str) -> OrderVersion:
        """Approve the current version and complete the order."""
        order = await self._store.read_order(order_id)
        versions = await self._store.read_versions(order_id)
        transition = self._plan(
            order, caller_id, sm.plan_approval, order, versions, caller_id
        )
        await self._commit(transition)
        return await self._reload_version(order_id, transition)

    async def request_revision(
        self, order_id: str, caller_id: str, feedback_text: str
    ) -> OrderVersion:
        """Reject the current version with feedback and reopen the order."""
        order = await self._store.read_order(order_id)
        versions = await self._store.read_versions(order_id)
        transition = self._plan(
            order,
            caller_id,
            sm.plan_revision,
            order,
            versions,
            caller_id,
            feedback_text,
            self._max_revisions,
        )
        await self._commit(transition)
        return await self._reload_version(order_id, transition)

    # ------------------------------------------------------------------
    # Either party
    # ------------------------------------------------------------------

    async def cancel_order(self, order_id: str, caller_id: str, reason: str = "") -> Order:
        order = await self._store.read_order(order_id)
        versions = await self._store.read_versions(order_id)
        transition = self._plan(
            order, caller_id, sm.plan_cancellation, order, caller_id, reason, versions=versions
        )
        return await self._commit(transition)

    async def get_thread(self, order_id: str, caller_id: str) -> OrderThread:
        """Return the order-detail view for one of the two parties.

        ``current_version`` is ``None`` until the first delivery.
        """
        order = await self._store.read_order(order_id)
        role = order.role_of(caller_id)
        if role is None:
            raise AuthorizationError(
                f"Caller is not a party to order {order_id}", order_id=order_id
            )
        versions = await self._store.read_versions(order_id)
        messages = await self._store.read_messages(order_id)
        return OrderThread(
            order=order,
            role=role,
            versions=versions,
            current_version=sm.compute_current_version(versions) if versions else None,
            budget=sm.revision_budget(versions, self._max_revisions),
            messages=messages,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _plan(self, order: Order, caller_id: str, planner, *args, **kwargs) -> Transition:
        try:
            return planner(*args, **kwargs)
        except WorkflowError as exc:
            log.warning(
                "workflow.rejected",
                order_id=order.id,
                planner=planner.__name__,
                caller_role=getattr(order.role_of(caller_id), "value", None),
                status=order.status.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise

    async def _commit(self, transition: Transition) -> Order:
        order = await self._store.apply(transition)
        log.info(
            f"workflow.{transition.action}",
            order_id=transition.order_id,
            caller_role=transition.actor_role.value,
            from_status=transition.expected_order_status.value,
            to_status=transition.new_order_status.value,
            **transition.metadata,
        )
        return order

    async def _reload_version(self, order_id: str, transition: Transition) -> OrderVersion:
        update = transition.version_update
        if update is None:
            raise RuntimeError(f"{transition.action} plan for order {order_id} updates no version")
        versions = await self._store.read_versions(order_id)
        return next(v for v in versions if v.id == update.version_id)
