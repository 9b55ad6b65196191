"""Order fulfilment state machine.

Everything in this module is pure: the ``plan_*`` functions take an order,
its version history and the caller, check every precondition, and return a
``Transition`` that describes exactly which rows must change.  Applying a
transition is the job of :class:`promptmarket.store.order_store.OrderStore`.

Checks always run in the same order: caller role, terminal state, input
validation, then version and revision-budget preconditions.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field

from promptmarket.models.schemas import (
    Message,
    Order,
    OrderStatus,
    OrderVersion,
    RevisionBudget,
    Role,
    VersionStatus,
)
from promptmarket.orchestrator.errors import (
    AuthorizationError,
    EmptyHistoryError,
    InvalidStateError,
    RevisionBudgetExhausted,
    ValidationError,
)

DEFAULT_MAX_REVISIONS = 3

# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.PROCESSING,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.DELIVERED: {
        OrderStatus.COMPLETED,
        OrderStatus.PROCESSING,
        OrderStatus.DELIVERED,  # seller replaces an unreviewed delivery
        OrderStatus.CANCELLED,
    },
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Return ``True`` if *current* -> *target* is a valid transition."""
    return target in _TRANSITIONS.get(current, set())


# ---------------------------------------------------------------------------
# Transition description
# ---------------------------------------------------------------------------

class VersionUpdate(BaseModel):
    """A guarded status change on an existing version."""

    version_id: str
    expected_status: VersionStatus
    fields: dict[str, Any]


class Transition(BaseModel):
    """The complete write set for one workflow step.

    Writes are applied in this order: order status, version update, new
    version, then ``message``.  ``expected_current_version`` is the highest
    version number the plan was made against (0 for an empty history); the
    store refuses the write if another version has landed since.  ``None``
    skips that check.
    """

    action: str
    order_id: str
    actor_id: str
    actor_role: Role
    expected_order_status: OrderStatus
    new_order_status: OrderStatus
    expected_current_version: int | None = None
    version_update: VersionUpdate | None = None
    new_version: OrderVersion | None = None
    message: Message
    metadata: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------

def compute_current_version(versions: Sequence[OrderVersion]) -> OrderVersion:
    """Return the version with the highest ``version_number``.

    Raises
    ------
    EmptyHistoryError
        If *versions* is empty.
    """
    if not versions:
        raise EmptyHistoryError("Order has no delivered versions")
    return max(versions, key=lambda v: v.version_number)


def compute_remaining_revisions(
    versions: Sequence[OrderVersion], max_revisions: int = DEFAULT_MAX_REVISIONS
) -> int:
    """Return ``max_revisions`` minus the rejected versions, never below zero."""
    rejected = sum(1 for v in versions if v.status == VersionStatus.REJECTED)
    return max(max_revisions - rejected, 0)


def revision_budget(
    versions: Sequence[OrderVersion], max_revisions: int = DEFAULT_MAX_REVISIONS
) -> RevisionBudget:
    remaining = compute_remaining_revisions(versions, max_revisions)
    used = sum(1 for v in versions if v.status == VersionStatus.REJECTED)
    return RevisionBudget(max_revisions=max_revisions, used=used, remaining=remaining)


def next_version_number(versions: Sequence[OrderVersion]) -> int:
    """Return ``max(version_number) + 1``, or 1 for an empty history."""
    if not versions:
        return 1
    return compute_current_version(versions).version_number + 1


# ---------------------------------------------------------------------------
# Precondition helpers
# ---------------------------------------------------------------------------

def _require_role(order: Order, caller_id: str, role: Role, action: str) -> None:
    if order.role_of(caller_id) is not role:
        raise AuthorizationError(
            f"Only the {role.value} may {action} on order {order.id}",
            order_id=order.id,
        )


def _require_party(order: Order, caller_id: str, action: str) -> Role:
    role = order.role_of(caller_id)
    if role is None:
        raise AuthorizationError(
            f"Caller is not a party to order {order.id} and may not {action}",
            order_id=order.id,
        )
    return role


def _require_open(order: Order) -> None:
    if order.is_terminal:
        raise InvalidStateError(
            f"Order {order.id} is {order.status.value} and can no longer change",
            order_id=order.id,
        )


def _require_transition(order: Order, target: OrderStatus) -> None:
    if not can_transition(order.status, target):
        raise InvalidStateError(
            f"Cannot transition order {order.id} from "
            f"{order.status.value} -> {target.value}",
            order_id=order.id,
        )


def _require_text(value: str | None, field: str, order_id: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", order_id=order_id)
    return text


def _current_under_review(order: Order, versions: Sequence[OrderVersion]) -> OrderVersion:
    try:
        current = compute_current_version(versions)
    except EmptyHistoryError as exc:
        exc.order_id = order.id
        raise
    if current.status is not VersionStatus.PENDING_REVIEW:
        raise InvalidStateError(
            f"V{current.version_number} of order {order.id} is "
            f"{current.status.value}, not pending_review",
            order_id=order.id,
        )
    return current


def _latest_number(versions: Sequence[OrderVersion] | None) -> int | None:
    if versions is None:
        return None
    return next_version_number(versions) - 1


def _system_message(order: Order, caller_id: str, content: str) -> Message:
    return Message(order_id=order.id, sender_id=caller_id, content=content, kind="system")


# ---------------------------------------------------------------------------
# Planners
# ---------------------------------------------------------------------------

def plan_accept(
    order: Order,
    caller_id: str,
    *,
    versions: Sequence[OrderVersion] | None = None,
) -> Transition:
    """Seller takes a pending order into ``processing``."""
    _require_role(order, caller_id, Role.SELLER, "accept the order")
    _require_open(order)
    if order.status is not OrderStatus.PENDING:
        raise InvalidStateError(
            f"Order {order.id} is {order.status.value}; only pending orders can be accepted",
            order_id=order.id,
        )
    return Transition(
        action="accept",
        order_id=order.id,
        actor_id=caller_id,
        actor_role=Role.SELLER,
        expected_order_status=order.status,
        new_order_status=OrderStatus.PROCESSING,
        expected_current_version=_latest_number(versions),
        message=_system_message(order, caller_id, "Order accepted. Work is under way."),
    )


def plan_delivery(
    order: Order,
    versions: Sequence[OrderVersion],
    caller_id: str,
    files: Sequence[str],
    prompt_text: str,
    notes: str,
) -> Transition:
    """Seller delivers a new version; the order moves to ``delivered``."""
    _require_role(order, caller_id, Role.SELLER, "submit a delivery")
    _require_open(order)

    assets = [f.strip() for f in files if f and f.strip()]
    if not assets:
        raise ValidationError("At least one file is required", order_id=order.id)
    prompt = _require_text(prompt_text, "Prompt", order.id)
    creator_notes = _require_text(notes, "Notes", order.id)
    _require_transition(order, OrderStatus.DELIVERED)

    number = next_version_number(versions)
    version = OrderVersion(
        order_id=order.id,
        version_number=number,
        content_url=assets[0],
        asset_urls=assets,
        prompt_data={"raw": prompt},
        creator_notes=creator_notes,
        status=VersionStatus.PENDING_REVIEW,
    )
    return Transition(
        action="deliver",
        order_id=order.id,
        actor_id=caller_id,
        actor_role=Role.SELLER,
        expected_order_status=order.status,
        new_order_status=OrderStatus.DELIVERED,
        expected_current_version=number - 1,
        new_version=version,
        message=_system_message(
            order,
            caller_id,
            f"I've submitted version V{number}. Please review it.",
        ),
        metadata={"version_number": number},
    )


def plan_approval(
    order: Order, versions: Sequence[OrderVersion], caller_id: str
) -> Transition:
    """Buyer approves the current version; the order completes."""
    _require_role(order, caller_id, Role.BUYER, "approve a delivery")
    _require_open(order)
    current = _current_under_review(order, versions)
    _require_transition(order, OrderStatus.COMPLETED)

    return Transition(
        action="approve",
        order_id=order.id,
        actor_id=caller_id,
        actor_role=Role.BUYER,
        expected_order_status=order.status,
        new_order_status=OrderStatus.COMPLETED,
        expected_current_version=current.version_number,
        version_update=VersionUpdate(
            version_id=current.id,
            expected_status=VersionStatus.PENDING_REVIEW,
            fields={"status": VersionStatus.APPROVED},
        ),
        message=_system_message(
            order,
            caller_id,
            f"I've approved V{current.version_number}. Thank you!",
        ),
        metadata={"version_number": current.version_number},
    )


def plan_revision(
    order: Order,
    versions: Sequence[OrderVersion],
    caller_id: str,
    feedback_text: str,
    max_revisions: int = DEFAULT_MAX_REVISIONS,
) -> Transition:
    """Buyer rejects the current version; the order goes back to ``processing``."""
    _require_role(order, caller_id, Role.BUYER, "request a revision")
    _require_open(order)
    feedback = _require_text(feedback_text, "Feedback", order.id)
    current = _current_under_review(order, versions)

    remaining = compute_remaining_revisions(versions, max_revisions)
    if remaining == 0:
        raise RevisionBudgetExhausted(
            f"Order {order.id} has used all {max_revisions} revisions",
            order_id=order.id,
        )
    _require_transition(order, OrderStatus.PROCESSING)

    return Transition(
        action="request_revision",
        order_id=order.id,
        actor_id=caller_id,
        actor_role=Role.BUYER,
        expected_order_status=order.status,
        new_order_status=OrderStatus.PROCESSING,
        expected_current_version=current.version_number,
        version_update=VersionUpdate(
            version_id=current.id,
            expected_status=VersionStatus.PENDING_REVIEW,
            fields={"status": VersionStatus.REJECTED, "buyer_feedback": feedback},
        ),
        message=_system_message(
            order,
            caller_id,
            f"I'd like some changes to V{current.version_number}: {feedback}",
        ),
        metadata={
            "version_number": current.version_number,
            "remaining_revisions": remaining - 1,
        },
    )


def plan_cancellation(
    order: Order,
    caller_id: str,
    reason: str = "",
    *,
    versions: Sequence[OrderVersion] | None = None,
) -> Transition:
    """Either party cancels an open order.

    Passing *versions* pins the plan to the deliveries the caller has seen.
    """
    role = _require_party(order, caller_id, "cancel it")
    _require_open(order)
    _require_transition(order, OrderStatus.CANCELLED)

    content = f"Order cancelled by the {role.value}."
    if reason.strip():
        content = f"{content} Reason: {reason.strip()}"
    return Transition(
        action="cancel",
        order_id=order.id,
        actor_id=caller_id,
        actor_role=role,
        expected_order_status=order.status,
        new_order_status=OrderStatus.CANCELLED,
        expected_current_version=_latest_number(versions),
        message=_system_message(order, caller_id, content),
    )
