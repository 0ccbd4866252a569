"""MENU capability: greeting with the menu and menu exploration."""

from __future__ import annotations

from orderflow.llm.client import ToolCall
from orderflow.planner.types import Capability

from . import prompts
from .base import CapabilityOutput, CapabilityRequest, LLMCapabilityModule


class MenuCapability(LLMCapabilityModule):
    """Shows the menu and answers product questions."""

    name = Capability.MENU

    def system_prompt(self, request: CapabilityRequest) -> str:
        return prompts.menu_prompt(request.restaurant, request.action, bool(request.metadata.get("has_greeted")))

    def fallback(self, request: CapabilityRequest) -> CapabilityOutput:
        restaurant = request.restaurant
        categories = ", ".join(category.lower() for category in restaurant.categories)

        if request.action == "greet_and_show_menu":
            return CapabilityOutput(
                content=f"Hi! Welcome to {restaurant.name}. We have {categories}. What can I get you today?",
                tool_calls=[ToolCall(name="send_menu_link")],
            )

        query = str(request.parameters.get("query") or "").strip()
        if query:
            return CapabilityOutput(
                tool_calls=[ToolCall(name="check_product_availability", arguments={"product_name": query})]
            )

        category = str(request.parameters.get("category") or "").strip()
        products = restaurant.products_in(category) if category else []
        if products:
            names = ", ".join(p.name for p in products if p.available)
            return CapabilityOutput(content=f"Our {category.lower()}: {names}. Anything catch your eye?")

        return CapabilityOutput(
            content=f"We have {categories}. What are you in the mood for?",
            tool_calls=[ToolCall(name="send_menu_link")],
        )
