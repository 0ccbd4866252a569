"""CHECKOUT capability: collects the last details and places the order."""

from __future__ import annotations

from orderflow.llm.client import ToolCall
from orderflow.memory.models import ConversationState
from orderflow.planner.simple import is_confirmation
from orderflow.planner.types import Capability
from orderflow.tools.checkout import missing_requirements

from . import prompts
from .base import CapabilityOutput, CapabilityRequest, LLMCapabilityModule

QUESTIONS = {
    "delivery_type": "Would you like delivery or pickup?",
    "delivery_address": "What's the delivery address?",
    "payment_method": "How would you like to pay?",
}


class CheckoutCapability(LLMCapabilityModule):
    """Validates the address, checks prerequisites and creates the order on confirmation."""

    name = Capability.CHECKOUT

    def system_prompt(self, request: CapabilityRequest) -> str:
        return prompts.checkout_prompt(request.restaurant, request.cart, request.metadata)

    def handoff_for(self, request: CapabilityRequest) -> Capability | None:
        return Capability.SALES if not request.cart else None

    def fallback(self, request: CapabilityRequest) -> CapabilityOutput:
        if not request.cart:
            return CapabilityOutput(
                content="Your cart is empty, so there's nothing to check out yet. What would you like to order?",
                handoff=Capability.SALES,
            )

        metadata = request.metadata
        missing = missing_requirements(metadata, request.cart)
        calls: list[ToolCall] = []

        if "delivery_address" in missing and metadata.get("delivery_address"):
            calls.append(
                ToolCall(name="validate_delivery_address", arguments={"address": metadata["delivery_address"]})
            )
            calls.append(ToolCall(name="check_order_prerequisites"))
            return CapabilityOutput(tool_calls=calls)

        if missing:
            first = missing[0]
            if first == "payment_method":
                calls.append(ToolCall(name="list_payment_methods"))
            return CapabilityOutput(content=QUESTIONS.get(first, ""), tool_calls=calls)

        if is_confirmation(request.user_message) and request.state is ConversationState.CONFIRMING_ORDER:
            arguments = {"confirmed_by_customer": True}
            if metadata.get("customer_name"):
                arguments["customer_name"] = metadata["customer_name"]
            return CapabilityOutput(tool_calls=[ToolCall(name="create_order", arguments=arguments)])

        lines = ", ".join(f"{item.quantity}x {item.product_name}" for item in request.cart)
        if metadata.get("delivery_type") == "delivery":
            where = f"delivered to {metadata.get('validated_address')}"
        else:
            where = "for pickup"
        return CapabilityOutput(
            content=(
                f"Your order: {lines}, {where}, paying by {str(metadata.get('payment_method')).lower()}. "
                "Shall I place it? Please confirm."
            ),
            tool_calls=[ToolCall(name="check_order_prerequisites")],
        )
