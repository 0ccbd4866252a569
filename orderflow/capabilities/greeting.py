"""GREETING capability: conversation only, no tools."""

from __future__ import annotations

from orderflow.planner.types import Capability

from . import prompts
from .base import CapabilityOutput, CapabilityRequest, LLMCapabilityModule


class GreetingCapability(LLMCapabilityModule):
    """Small talk and welcomes."""

    name = Capability.GREETING
    history_limit = 3

    def system_prompt(self, request: CapabilityRequest) -> str:
        return prompts.greeting_prompt(request.restaurant)

    def fallback(self, request: CapabilityRequest) -> CapabilityOutput:
        if request.metadata.get("has_greeted"):
            return CapabilityOutput(content="Happy to help! Would you like to see the menu or start an order?")
        return CapabilityOutput(
            content=f"Hi! Welcome to {request.restaurant.name}. How can I help you today?"
        )
