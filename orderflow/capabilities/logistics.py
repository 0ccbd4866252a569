"""LOGISTICS capability: turns extracted logistics data into tool calls without the model."""

from __future__ import annotations

from orderflow.llm.client import ToolCall
from orderflow.planner.types import Capability

from .base import CapabilityModule, CapabilityOutput, CapabilityRequest

PARAMETER_FOR_ACTION = {
    "set_delivery_type": "delivery_type",
    "set_address": "address",
    "set_payment_method": "payment_method",
}

MISSING_PROMPTS = {
    "set_delivery_type": "Would you like delivery or pickup?",
    "set_address": "What's the delivery address?",
}


class LogisticsCapability(CapabilityModule):
    """Records delivery type, address and payment method."""

    name = Capability.LOGISTICS
    tools = ("set_delivery_type", "set_address", "set_payment_method")

    async def handle(self, request: CapabilityRequest) -> CapabilityOutput:
        parameter = PARAMETER_FOR_ACTION.get(request.action)
        if parameter is None:
            return CapabilityOutput()

        value = str(request.parameters.get(parameter) or "").strip()
        if not value:
            if request.action == "set_payment_method":
                methods = ", ".join(request.restaurant.payment_methods)
                return CapabilityOutput(content=f"How would you like to pay? We accept {methods}.")
            return CapabilityOutput(content=MISSING_PROMPTS[request.action])

        return CapabilityOutput(tool_calls=[ToolCall(name=request.action, arguments={parameter: value})])
