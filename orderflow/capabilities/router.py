"""Capability router mapping capability names to module implementations."""

from __future__ import annotations

import logging
from typing import Mapping

from orderflow.llm.client import LLMClient
from orderflow.planner.types import Capability
from orderflow.tools.executor import ToolExecutor

from .base import CapabilityModule, CapabilityOutput, CapabilityRequest
from .checkout import CheckoutCapability
from .greeting import GreetingCapability
from .logistics import LogisticsCapability
from .menu import MenuCapability
from .sales import SalesCapability
from .support import SupportCapability

logger = logging.getLogger("orderflow.capabilities")


class CapabilityRouter:
    """Dispatch plan steps to concrete capability modules."""

    def __init__(self, modules: Mapping[Capability, CapabilityModule]) -> None:
        self._modules = dict(modules)

    def supports(self, capability: Capability) -> bool:
        return capability in self._modules

    def module(self, capability: Capability) -> CapabilityModule | None:
        return self._modules.get(capability)

    async def dispatch(self, capability: Capability, request: CapabilityRequest) -> CapabilityOutput:
        module = self._modules.get(capability)
        if not module:
            logger.warning("No module registered for capability %s", capability.value)
            return CapabilityOutput(content="I can't help with that just yet, but I'm happy to take your order.")
        return await module.handle(request)


def build_capability_router(llm: LLMClient, tools: ToolExecutor) -> CapabilityRouter:
    """Wire every capability with its own tool schemas."""

    return CapabilityRouter(
        {
            Capability.SALES: SalesCapability(llm, tools.schemas_for(Capability.SALES)),
            Capability.CHECKOUT: CheckoutCapability(llm, tools.schemas_for(Capability.CHECKOUT)),
            Capability.MENU: MenuCapability(llm, tools.schemas_for(Capability.MENU)),
            Capability.SUPPORT: SupportCapability(llm, tools.schemas_for(Capability.SUPPORT)),
            Capability.GREETING: GreetingCapability(llm),
            Capability.LOGISTICS: LogisticsCapability(),
        }
    )
