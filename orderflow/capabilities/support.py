"""SUPPORT capability: restaurant information questions."""

from __future__ import annotations

import re

from orderflow.llm.client import ToolCall
from orderflow.planner.types import Capability

from . import prompts
from .base import CapabilityOutput, CapabilityRequest, LLMCapabilityModule

INFO_KEYWORDS = (
    ("hours", re.compile(r"\b(hours?|open|opening|close|closing|closed|today|tonight)\b")),
    ("address", re.compile(r"\b(where|address|located|location|directions)\b")),
    ("phone", re.compile(r"\b(phone|call|number|contact|whatsapp)\b")),
    ("instagram", re.compile(r"\b(instagram|insta|social)\b")),
)


class SupportCapability(LLMCapabilityModule):
    """Answers questions about location, contact details and opening hours."""

    name = Capability.SUPPORT

    def system_prompt(self, request: CapabilityRequest) -> str:
        return prompts.support_prompt(request.restaurant)

    def fallback(self, request: CapabilityRequest) -> CapabilityOutput:
        question = str(request.parameters.get("question") or request.user_message).lower()
        info_type = next((kind for kind, pattern in INFO_KEYWORDS if pattern.search(question)), "all")
        return CapabilityOutput(
            tool_calls=[ToolCall(name="get_restaurant_info", arguments={"info_type": info_type})]
        )
