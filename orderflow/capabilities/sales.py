"""SALES capability: builds the cart."""

from __future__ import annotations

from typing import Any, Mapping

from orderflow.llm.client import ToolCall
from orderflow.planner.types import Capability

from . import prompts
from .base import CapabilityOutput, CapabilityRequest, LLMCapabilityModule


class SalesCapability(LLMCapabilityModule):
    """Takes orders: adds, changes and reads back cart items."""

    name = Capability.SALES

    def system_prompt(self, request: CapabilityRequest) -> str:
        return prompts.sales_prompt(
            request.restaurant, request.cart, request.metadata, request.action, request.parameters
        )

    def fallback(self, request: CapabilityRequest) -> CapabilityOutput:
        if request.action == "handle_empty_cart":
            return CapabilityOutput(
                content="Your cart is empty right now. What would you like to order? I can share the menu if you like."
            )
        if request.action == "clarify":
            return CapabilityOutput(content=self._clarify_text(request))

        products = request.parameters.get("products") or []
        if not products:
            if request.cart:
                return CapabilityOutput(content=self._clarify_text(request))
            return CapabilityOutput(content="What would you like to order?")
        return self._order_from_products(request, products)

    def _order_from_products(self, request: CapabilityRequest, products: list[Mapping[str, Any]]) -> CapabilityOutput:
        calls: list[ToolCall] = []
        problems: list[str] = []
        for entry in products:
            raw_name = str(entry.get("name") or "").strip()
            if not raw_name:
                continue
            match = request.restaurant.find_product(raw_name)
            if match.product is None:
                if match.ambiguous:
                    options = " or ".join(p.name for p in match.candidates)
                    problems.append(f"Which {raw_name} would you like: {options}?")
                else:
                    problems.append(f"Sorry, we don't have {raw_name}.")
                continue
            arguments: dict[str, Any] = {
                "product_name": match.product.name,
                "quantity": _quantity(entry.get("quantity")),
            }
            if entry.get("notes"):
                arguments["notes"] = str(entry["notes"])
            if entry.get("modifiers"):
                arguments["modifiers"] = [str(name) for name in entry["modifiers"]]
            calls.append(ToolCall(name="add_item_to_order", arguments=arguments))

        return CapabilityOutput(content=" ".join(problems), tool_calls=calls)

    @staticmethod
    def _clarify_text(request: CapabilityRequest) -> str:
        if not request.cart:
            return "Could you tell me a bit more about what you'd like?"
        lines = ", ".join(f"{item.quantity}x {item.product_name}" for item in request.cart)
        return (
            f"So far you have {lines}. Would you like to add something else, change an item, or check out?"
        )


def _quantity(value: Any) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return 1
    return quantity if quantity > 0 else 1
