"""Language-model backed multi-intent classifier."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from orderflow.capabilities.prompts import describe_order_details
from orderflow.llm.client import LLMClient
from orderflow.memory.models import ConversationState, MessageTurn
from orderflow.planner.base import IntentClassifier
from orderflow.planner.types import Intent, IntentType, unclear_intent

logger = logging.getLogger("orderflow.planner")

DETECT_INTENTS_TOOL = {
    "type": "function",
    "function": {
        "name": "detect_intents",
        "description": "Report every intent present in the customer's latest message.",
        "parameters": {
            "type": "object",
            "properties": {
                "intents": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string", "enum": [t.value for t in IntentType]},
                            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                            "extractedData": {
                                "type": "object",
                                "description": (
                                    "ORDER: products [{name, quantity, notes, modifiers}]; LOGISTICS: delivery_type "
                                    "(delivery|pickup), address; PAYMENT: payment_method; MENU: query or "
                                    "category; SUPPORT: question."
                                ),
                            },
                            "priority": {"type": "integer", "minimum": 1},
                        },
                        "required": ["type", "confidence", "priority"],
                    },
                }
            },
            "required": ["intents"],
        },
    },
}

SYSTEM_PROMPT = """You classify messages sent to a restaurant's ordering assistant.
A message can carry several intents, e.g. "two burgers and I'll pick up" is ORDER plus LOGISTICS.
Intent types:
- GREETING: hello, small talk
- MENU: wants the menu or asks about a product
- ORDER: wants to add, change or remove items
- LOGISTICS: delivery or pickup, delivery address
- PAYMENT: how they will pay
- CHECKOUT: wants to finish, or confirms the order summary
- SUPPORT: opening hours, location, phone and similar questions
- UNCLEAR: none of the above
Priority 1 is the most urgent. Always call detect_intents.
Conversation state: {state}
{details}"""


class LLMIntentClassifier(IntentClassifier):
    """Detect intents with a forced function call; any failure yields UNCLEAR."""

    def __init__(self, llm: LLMClient, *, history_window: int = 10) -> None:
        self._llm = llm
        self._history_window = history_window

    def describe(self) -> str:
        return "Language-model multi-intent classifier"

    async def classify(
        self,
        message: str,
        history: Sequence[MessageTurn],
        state: ConversationState,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[Intent]:
        window = list(history)[-self._history_window :]
        messages = [
            {"role": "assistant" if turn.role == "assistant" else "user", "content": turn.content}
            for turn in window
            if turn.content
        ]
        if not messages or messages[-1]["content"] != message:
            messages.append({"role": "user", "content": message})

        prompt = SYSTEM_PROMPT.format(state=state.value, details=describe_order_details(metadata or {}))
        try:
            response = await self._llm.complete(
                prompt, messages, [DETECT_INTENTS_TOOL], tool_choice="detect_intents"
            )
            intents = parse_intents(
                next(call.arguments for call in response.tool_calls if call.name == "detect_intents")
            )
        except StopIteration:
            logger.warning("Classifier returned no detect_intents call")
            return [unclear_intent()]
        except Exception:  # noqa: BLE001
            logger.exception("Intent classification failed")
            return [unclear_intent()]

        if not intents:
            logger.info("Classifier returned an empty intent list")
            return [unclear_intent()]

        logger.info("Intents: %s", ", ".join(f"{i.type.value}({i.priority})" for i in intents))
        return intents


def parse_intents(arguments: Mapping[str, Any]) -> list[Intent]:
    """Validate raw ``detect_intents`` arguments into sorted :class:`Intent` objects."""

    raw_items = arguments.get("intents")
    if not isinstance(raw_items, list):
        raise ValueError("detect_intents arguments have no intents list")

    intents: list[Intent] = []
    for position, raw in enumerate(raw_items, start=1):
        if not isinstance(raw, Mapping):
            continue
        try:
            kind = IntentType(str(raw.get("type", "")).upper())
        except ValueError:
            logger.debug("Dropping unknown intent type %r", raw.get("type"))
            continue
        try:
            confidence = min(1.0, max(0.0, float(raw.get("confidence", 0.5))))
        except (TypeError, ValueError):
            confidence = 0.5
        try:
            priority = int(raw.get("priority", position))
        except (TypeError, ValueError):
            priority = position
        extracted = raw.get("extractedData") or raw.get("extracted_data") or {}
        intents.append(
            Intent(
                type=kind,
                confidence=confidence,
                extracted_data=dict(extracted) if isinstance(extracted, Mapping) else {},
                priority=max(1, priority),
            )
        )

    return sorted(intents, key=lambda intent: intent.priority)
