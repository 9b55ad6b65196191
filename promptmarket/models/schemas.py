"""Pydantic models and enums for the PromptMarket domain.

These schemas are the single source of truth for data shapes used across the
application, from database rows to workflow transitions.  Field names match
the persisted column names so rows can be validated directly.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OrderStatus(str, Enum):
    """Lifecycle stages of a marketplace order."""

    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


class VersionStatus(str, Enum):
    """Review outcome of a single delivered version."""

    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"
    APPROVED = "approved"


class Role(str, Enum):
    """The two parties that may act on an order."""

    BUYER = "buyer"
    SELLER = "seller"


class ServiceCategory(str, Enum):
    """Listing verticals."""

    IMAGE = "image"
    VIDEO = "video"
    CODE = "code"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    """Return the current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


class ServiceSnapshot(BaseModel):
    """Copy of the purchased listing taken when the order was placed."""

    model_config = ConfigDict(frozen=True)

    title: str
    price: float
    package_name: str


class Order(BaseModel):
    """A single purchase between a buyer and the owner of a service."""

    id: str = Field(default_factory=_new_id)
    buyer_id: str
    seller_id: str = Field(alias="service_owner_id")
    service_id: str | None = None
    amount: float = 0.0
    status: OrderStatus = OrderStatus.PENDING
    service_snapshot: ServiceSnapshot
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(populate_by_name=True)

    def role_of(self, identity: str | None) -> Role | None:
        """Return the role *identity* plays in this order, or ``None``."""
        if identity is None:
            return None
        if identity == self.seller_id:
            return Role.SELLER
        if identity == self.buyer_id:
            return Role.BUYER
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class OrderVersion(BaseModel):
    """One delivery attempt for an order and its review outcome."""

    id: str = Field(default_factory=_new_id)
    order_id: str
    version_number: int = Field(ge=1)
    content_url: str
    asset_urls: list[str] = Field(default_factory=list)
    prompt_data: dict[str, Any] = Field(default_factory=dict)
    creator_notes: str = ""
    status: VersionStatus = VersionStatus.PENDING_REVIEW
    buyer_feedback: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class Message(BaseModel):
    """A single entry in an order's communication thread."""

    id: str = Field(default_factory=_new_id)
    order_id: str
    sender_id: str
    content: str
    kind: Literal["user", "system"] = "user"
    created_at: datetime = Field(default_factory=_utcnow)


class RevisionBudget(BaseModel):
    """Derived view of how many revisions the buyer has left."""

    max_revisions: int
    used: int
    remaining: int

    @property
    def exhausted(self) -> bool:
        return self.remaining == 0


# ---------------------------------------------------------------------------
# Marketplace listings and people
# ---------------------------------------------------------------------------

class ServicePackage(BaseModel):
    """A purchasable tier of a service listing."""

    key: Literal["basic", "pro"]
    name: str
    price: float = Field(ge=0)
    summary: str = ""


class Service(BaseModel):
    """A creator's listing."""

    id: str = Field(default_factory=_new_id)
    creator_id: str
    title: str
    description: str = ""
    category: ServiceCategory = ServiceCategory.OTHER
    price: float = Field(ge=0)
    tags: list[str] = Field(default_factory=list)
    cover_url: str = ""
    packages: list[ServicePackage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    def package(self, key: str) -> ServicePackage | None:
        return next((p for p in self.packages if p.key == key), None)


class Profile(BaseModel):
    """Public profile of a marketplace member."""

    id: str
    display_name: str
    avatar_url: str = ""
    bio: str = ""
    is_creator: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Read views
# ---------------------------------------------------------------------------

class OrderThread(BaseModel):
    """Everything the order-detail screen needs for one caller."""

    order: Order
    role: Role
    versions: list[OrderVersion] = Field(default_factory=list)
    current_version: OrderVersion | None = None
    budget: RevisionBudget
    messages: list[Message] = Field(default_factory=list)
