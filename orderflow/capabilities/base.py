"""Base classes and types for capability modules."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from orderflow.catalog import RestaurantProfile
from orderflow.core.errors import LLMError
from orderflow.llm.client import LLMClient, ToolCall
from orderflow.memory.models import CartItem, ConversationState, MessageTurn
from orderflow.planner.types import Capability

logger = logging.getLogger("orderflow.capabilities")


@dataclass(slots=True)
class CapabilityRequest:
    """Everything a capability module sees for one step."""

    conversation_id: str
    user_message: str
    history: Sequence[MessageTurn]
    action: str
    parameters: Mapping[str, Any]
    state: ConversationState
    metadata: Mapping[str, Any]
    cart: Sequence[CartItem]
    restaurant: RestaurantProfile

    @property
    def cart_total(self) -> float:
        return sum(item.line_total for item in self.cart)


@dataclass(slots=True)
class CapabilityOutput:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    handoff: Capability | None = None
    used_llm: bool = False


class CapabilityModule(ABC):
    """Handler for one category of customer intent."""

    name: Capability
    tools: tuple[str, ...] = ()

    @abstractmethod
    async def handle(self, request: CapabilityRequest) -> CapabilityOutput:
        """Produce reply content and proposed tool calls for the request."""

    def describe(self) -> str:
        """Return a human-readable description for observability dashboards."""

        return self.__doc__ or self.name.value


class LLMCapabilityModule(CapabilityModule):
    """Capability that asks the language model first and degrades to deterministic rules."""

    history_limit: int | None = None

    def __init__(self, llm: LLMClient, tool_schemas: Sequence[Mapping[str, Any]] = ()) -> None:
        self._llm = llm
        self._tool_schemas = list(tool_schemas)
        self.tools = tuple(schema["function"]["name"] for schema in self._tool_schemas)

    @abstractmethod
    def system_prompt(self, request: CapabilityRequest) -> str:
        """System prompt for this capability."""

    @abstractmethod
    def fallback(self, request: CapabilityRequest) -> CapabilityOutput:
        """Deterministic output used when the language model is unavailable."""

    def handoff_for(self, request: CapabilityRequest) -> Capability | None:
        return None

    async def handle(self, request: CapabilityRequest) -> CapabilityOutput:
        if not self._llm.available:
            return self.fallback(request)

        try:
            response = await self._llm.complete(
                self.system_prompt(request),
                conversation_messages(request, limit=self.history_limit),
                self._tool_schemas or None,
            )
        except LLMError as exc:
            logger.info("%s falling back to rules: %s", self.name.value, exc)
            return self.fallback(request)

        if not response.text and not response.tool_calls:
            logger.info("%s got an empty completion, using rules", self.name.value)
            return self.fallback(request)

        return CapabilityOutput(
            content=response.text,
            tool_calls=list(response.tool_calls),
            handoff=self.handoff_for(request),
            used_llm=True,
        )


def conversation_messages(request: CapabilityRequest, limit: int | None = None) -> list[dict[str, str]]:
    """Chat-completions message list ending with the current customer message."""

    history = list(request.history)
    if limit is not None:
        history = history[-limit:]
    messages = [
        {"role": "assistant" if turn.role == "assistant" else "user", "content": turn.content}
        for turn in history
        if turn.content
    ]
    if not messages or messages[-1]["role"] != "user" or messages[-1]["content"] != request.user_message:
        messages.append({"role": "user", "content": request.user_message})
    return messages
