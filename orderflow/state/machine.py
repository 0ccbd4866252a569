"""Conversation state machine.

``evaluate_state_transition`` is a pure function of a :class:`ConversationContext`.
Rules are tried highest priority first and the first match wins. When no rule applies,
an ordered list of tool-based heuristics is consulted; when neither matches, the state
stays where it is. Terminal states never change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from orderflow.memory.models import ConversationState, TERMINAL_STATES
from orderflow.planner.types import Capability
from orderflow.tools.base import ToolResult

logger = logging.getLogger("orderflow.state")

S = ConversationState

CHECKOUT_STATES = frozenset(
    {S.READY_TO_CHECKOUT, S.COLLECTING_ADDRESS, S.COLLECTING_PAYMENT, S.CONFIRMING_ORDER}
)
CART_EMPTYING_TOOLS = frozenset({"remove_item_from_order", "update_item_quantity", "clear_cart"})


@dataclass(slots=True)
class ConversationContext:
    """Snapshot of everything a transition decision may look at."""

    current_state: ConversationState
    cart_item_count: int = 0
    cart_total: float = 0.0
    has_address: bool = False
    has_payment_method: bool = False
    last_capability_called: Capability | None = None
    tools_executed: list[str] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_items(self) -> bool:
        return self.cart_item_count > 0

    @property
    def delivery_type(self) -> str | None:
        return self.metadata.get("delivery_type")

    @property
    def address_satisfied(self) -> bool:
        return self.delivery_type == "pickup" or (self.delivery_type == "delivery" and self.has_address)

    def succeeded(self, tool_name: str) -> bool:
        return any(r.tool_name == tool_name and r.success for r in self.tool_results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_state": self.current_state.value,
            "cart_item_count": self.cart_item_count,
            "cart_total": self.cart_total,
            "has_address": self.has_address,
            "has_payment_method": self.has_payment_method,
            "last_capability_called": self.last_capability_called.value if self.last_capability_called else None,
            "tools_executed": list(self.tools_executed),
            "tool_results": [result.to_dict() for result in self.tool_results],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ConversationContext":
        last = payload.get("last_capability_called")
        return cls(
            current_state=ConversationState(payload["current_state"]),
            cart_item_count=int(payload.get("cart_item_count", 0)),
            cart_total=float(payload.get("cart_total", 0.0)),
            has_address=bool(payload.get("has_address", False)),
            has_payment_method=bool(payload.get("has_payment_method", False)),
            last_capability_called=Capability(last) if last else None,
            tools_executed=list(payload.get("tools_executed", [])),
            tool_results=[ToolResult.from_dict(item) for item in payload.get("tool_results", [])],
            metadata=dict(payload.get("metadata", {})),
        )


def build_context(
    state: ConversationState,
    metadata: Mapping[str, Any],
    *,
    cart_item_count: int,
    cart_total: float,
    last_capability: Capability | None,
    tool_results: Sequence[ToolResult],
) -> ConversationContext:
    return ConversationContext(
        current_state=state,
        cart_item_count=cart_item_count,
        cart_total=cart_total,
        has_address=bool(metadata.get("validated_address") or metadata.get("delivery_address")),
        has_payment_method=bool(metadata.get("payment_method")),
        last_capability_called=last_capability,
        tools_executed=[result.tool_name for result in tool_results],
        tool_results=list(tool_results),
        metadata=dict(metadata),
    )


@dataclass(slots=True, frozen=True)
class StateTransitionRule:
    name: str
    from_states: frozenset[ConversationState]
    to_state: ConversationState
    priority: int
    condition: Callable[[ConversationContext], bool]

    def matches(self, ctx: ConversationContext) -> bool:
        return ctx.current_state in self.from_states and self.condition(ctx)


def _order_ready(ctx: ConversationContext) -> bool:
    return ctx.has_items and ctx.address_satisfied and ctx.has_payment_method


def _needs_address(ctx: ConversationContext) -> bool:
    return (
        ctx.has_items
        and ctx.delivery_type == "delivery"
        and not ctx.has_address
        and ctx.last_capability_called in (Capability.CHECKOUT, Capability.LOGISTICS)
    )


def _needs_payment(ctx: ConversationContext) -> bool:
    return (
        ctx.has_items
        and ctx.address_satisfied
        and not ctx.has_payment_method
        and ctx.last_capability_called in (Capability.CHECKOUT, Capability.LOGISTICS)
    )


NON_TERMINAL = frozenset(S) - TERMINAL_STATES
PRE_ORDER_STATES = frozenset(
    {S.GREETING, S.DISCOVERY, S.BROWSING_MENU, S.SELECTING_PRODUCTS, S.ASKING_SUPPORT}
)

TRANSITION_RULES: tuple[StateTransitionRule, ...] = (
    StateTransitionRule(
        "order_created",
        NON_TERMINAL,
        S.ORDER_PLACED,
        100,
        lambda ctx: ctx.succeeded("create_order"),
    ),
    StateTransitionRule(
        "customer_abandoned",
        NON_TERMINAL,
        S.ABANDONED,
        90,
        lambda ctx: ctx.metadata.get("abandoned") is True,
    ),
    StateTransitionRule(
        "cart_emptied",
        frozenset({S.BUILDING_ORDER}) | CHECKOUT_STATES,
        S.BROWSING_MENU,
        85,
        lambda ctx: not ctx.has_items and any(t in CART_EMPTYING_TOOLS for t in ctx.tools_executed),
    ),
    StateTransitionRule(
        "all_details_collected",
        CHECKOUT_STATES - {S.CONFIRMING_ORDER},
        S.CONFIRMING_ORDER,
        80,
        _order_ready,
    ),
    StateTransitionRule(
        "checkout_with_details_known",
        frozenset({S.BUILDING_ORDER, S.SELECTING_PRODUCTS}),
        S.CONFIRMING_ORDER,
        75,
        lambda ctx: _order_ready(ctx) and ctx.last_capability_called is Capability.CHECKOUT,
    ),
    StateTransitionRule(
        "address_needed",
        frozenset({S.READY_TO_CHECKOUT, S.COLLECTING_PAYMENT}),
        S.COLLECTING_ADDRESS,
        70,
        _needs_address,
    ),
    StateTransitionRule(
        "payment_needed",
        frozenset({S.READY_TO_CHECKOUT, S.COLLECTING_ADDRESS}),
        S.COLLECTING_PAYMENT,
        65,
        _needs_payment,
    ),
    StateTransitionRule(
        "checkout_started",
        frozenset({S.BUILDING_ORDER, S.SELECTING_PRODUCTS}),
        S.READY_TO_CHECKOUT,
        60,
        lambda ctx: ctx.has_items and ctx.last_capability_called is Capability.CHECKOUT,
    ),
    StateTransitionRule(
        "first_item_added",
        PRE_ORDER_STATES,
        S.BUILDING_ORDER,
        50,
        lambda ctx: ctx.has_items,
    ),
    StateTransitionRule(
        "menu_shown",
        frozenset({S.GREETING, S.DISCOVERY, S.ASKING_SUPPORT}),
        S.BROWSING_MENU,
        40,
        lambda ctx: ctx.last_capability_called is Capability.MENU and not ctx.has_items,
    ),
    StateTransitionRule(
        "product_inspected",
        frozenset({S.BROWSING_MENU, S.DISCOVERY}),
        S.SELECTING_PRODUCTS,
        30,
        lambda ctx: not ctx.has_items and ctx.succeeded("check_product_availability"),
    ),
    StateTransitionRule(
        "small_talk",
        frozenset({S.GREETING}),
        S.DISCOVERY,
        25,
        lambda ctx: ctx.last_capability_called is Capability.GREETING,
    ),
    StateTransitionRule(
        "support_question",
        frozenset({S.GREETING, S.DISCOVERY, S.BROWSING_MENU, S.SELECTING_PRODUCTS}),
        S.ASKING_SUPPORT,
        20,
        lambda ctx: ctx.last_capability_called is Capability.SUPPORT and not ctx.has_items,
    ),
)


def _address_marked_valid(ctx: ConversationContext) -> bool:
    return any(
        r.tool_name == "validate_delivery_address" and r.success and r.data.get("valid")
        for r in ctx.tool_results
    )


def _availability_state(ctx: ConversationContext) -> ConversationState:
    return S.BUILDING_ORDER if ctx.has_items else S.BROWSING_MENU


# Ordered (name, predicate, result) triples. add_item_to_order deliberately stays
# ahead of create_order.
HEURISTIC_RULES: tuple[
    tuple[str, Callable[[ConversationContext], bool], Callable[[ConversationContext], ConversationState]],
    ...,
] = (
    ("add_item_to_order", lambda ctx: ctx.succeeded("add_item_to_order"), lambda ctx: S.BUILDING_ORDER),
    ("create_order", lambda ctx: ctx.succeeded("create_order"), lambda ctx: S.ORDER_PLACED),
    ("validate_delivery_address", _address_marked_valid, lambda ctx: S.COLLECTING_PAYMENT),
    (
        "check_product_availability",
        lambda ctx: "check_product_availability" in ctx.tools_executed,
        _availability_state,
    ),
    ("send_menu_link", lambda ctx: "send_menu_link" in ctx.tools_executed, lambda ctx: S.BROWSING_MENU),
)


def sorted_rules(rules: Sequence[StateTransitionRule] = TRANSITION_RULES) -> list[StateTransitionRule]:
    return sorted(rules, key=lambda rule: rule.priority, reverse=True)


_SORTED_RULES = sorted_rules()


def evaluate_state_transition(
    ctx: ConversationContext,
    rules: Sequence[StateTransitionRule] | None = None,
) -> ConversationState:
    """Return the next state for ``ctx``."""

    if ctx.current_state in TERMINAL_STATES:
        return ctx.current_state

    for rule in _SORTED_RULES if rules is None else sorted_rules(rules):
        if rule.matches(ctx):
            logger.debug("Rule %s: %s -> %s", rule.name, ctx.current_state.value, rule.to_state.value)
            return rule.to_state

    for name, predicate, result in HEURISTIC_RULES:
        if predicate(ctx):
            next_state = result(ctx)
            logger.debug("Heuristic %s: %s -> %s", name, ctx.current_state.value, next_state.value)
            return next_state

    return ctx.current_state
