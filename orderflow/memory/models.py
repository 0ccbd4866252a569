"""Dataclasses representing conversation turns, carts and persisted state."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ConversationState(str, Enum):
    """Lifecycle position of a conversation."""

    GREETING = "greeting"
    DISCOVERY = "discovery"
    BROWSING_MENU = "browsing_menu"
    SELECTING_PRODUCTS = "selecting_products"
    BUILDING_ORDER = "building_order"
    READY_TO_CHECKOUT = "ready_to_checkout"
    COLLECTING_ADDRESS = "collecting_address"
    COLLECTING_PAYMENT = "collecting_payment"
    CONFIRMING_ORDER = "confirming_order"
    ORDER_PLACED = "order_placed"
    ABANDONED = "abandoned"
    ASKING_SUPPORT = "asking_support"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({ConversationState.ORDER_PLACED, ConversationState.ABANDONED})


class CartOperation(str, Enum):
    """Cart mutations supported by the store."""

    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"
    CLEAR = "clear"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def product_key(name: str) -> str:
    """Identity key used to deduplicate cart lines."""

    return re.sub(r"\s+", " ", name).strip().lower()


@dataclass(slots=True)
class MessageTurn:
    """Single conversational turn stored in memory."""

    conversation_id: str
    role: str
    content: str
    created_at: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CartItem:
    """One line of a conversation's cart."""

    product_name: str
    quantity: int
    unit_price: float
    notes: str | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("quantity must be positive")
        if self.unit_price < 0:
            raise ValueError("unit_price cannot be negative")

    @property
    def key(self) -> str:
        return product_key(self.product_name)

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_price

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "notes": self.notes,
            "line_total": self.line_total,
        }


@dataclass(slots=True)
class CartTotals:
    """Result of an atomic cart mutation."""

    new_total: float
    new_count: int
    changed: bool = True


@dataclass(slots=True)
class ConversationRecord:
    """Persisted view of a conversation: state, metadata and cart."""

    conversation_id: str
    state: ConversationState = ConversationState.GREETING
    metadata: dict[str, Any] = field(default_factory=dict)
    cart: list[CartItem] = field(default_factory=list)
    updated_at: datetime | None = None

    @property
    def cart_item_count(self) -> int:
        return sum(item.quantity for item in self.cart)

    @property
    def cart_total(self) -> float:
        return sum(item.line_total for item in self.cart)
