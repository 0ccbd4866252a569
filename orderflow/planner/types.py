"""Planner-related enums and data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from orderflow.memory.models import CartItem, ConversationState, MessageTurn


class IntentType(str, Enum):
    """Categories of customer intent."""

    GREETING = "GREETING"
    MENU = "MENU"
    ORDER = "ORDER"
    LOGISTICS = "LOGISTICS"
    PAYMENT = "PAYMENT"
    CHECKOUT = "CHECKOUT"
    SUPPORT = "SUPPORT"
    UNCLEAR = "UNCLEAR"


class Capability(str, Enum):
    """Capability modules a plan step can be dispatched to."""

    SALES = "SALES"
    CHECKOUT = "CHECKOUT"
    MENU = "MENU"
    SUPPORT = "SUPPORT"
    LOGISTICS = "LOGISTICS"
    GREETING = "GREETING"


READ_ONLY_CAPABILITIES = frozenset({Capability.MENU, Capability.SUPPORT})


@dataclass(slots=True)
class Intent:
    type: IntentType
    confidence: float
    extracted_data: dict[str, Any] = field(default_factory=dict)
    priority: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": self.confidence,
            "extracted_data": self.extracted_data,
            "priority": self.priority,
        }


def unclear_intent() -> Intent:
    return Intent(type=IntentType.UNCLEAR, confidence=0.5, extracted_data={}, priority=1)


@dataclass(slots=True)
class ExecutionStep:
    """One node of a turn's execution plan."""

    step_id: str
    capability: Capability
    action: str
    parameters: dict[str, Any] = field(default_factory=dict)
    dependencies: frozenset[str] = frozenset()
    can_run_in_parallel: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "capability": self.capability.value,
            "action": self.action,
            "parameters": self.parameters,
            "dependencies": sorted(self.dependencies),
            "can_run_in_parallel": self.can_run_in_parallel,
        }


@dataclass(slots=True)
class TurnContext:
    """Per-turn inputs shared by the plan executor and the agent loop."""

    conversation_id: str
    user_message: str
    history: Sequence[MessageTurn]
    state: ConversationState
    metadata: Mapping[str, Any]
    cart: Sequence[CartItem]
