"""Baseline keyword intent classifier used when no language model is configured."""

from __future__ import annotations

import re
from typing import Any, Mapping, Sequence

from orderflow.catalog import RestaurantProfile
from orderflow.memory.models import ConversationState, MessageTurn
from orderflow.planner.base import IntentClassifier
from orderflow.planner.types import Intent, IntentType, unclear_intent

NUMBER_WORDS = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "couple": 2,
    "dozen": 12,
}

# Urgency order used to number priorities.
URGENCY = (
    IntentType.GREETING,
    IntentType.ORDER,
    IntentType.LOGISTICS,
    IntentType.PAYMENT,
    IntentType.MENU,
    IntentType.SUPPORT,
    IntentType.CHECKOUT,
)

GREETING_RE = re.compile(r"^\s*(hi|hello|hey|hiya|howdy|yo|good (morning|afternoon|evening))\b")
MENU_RE = re.compile(
    r"\b(menu|what do you (have|serve|sell)|what have you got|options|recommend|what's good|whats good)\b"
)
PRODUCT_QUESTION_RE = re.compile(
    r"\b(?:do you (?:have|sell|serve)|is there|how much (?:is|are|for)|is the)\s+(?:any\s+|a\s+|an\s+|the\s+)?([a-z][a-z\s]*?)(?:\s+available)?\s*\??$"
)
ORDER_VERB_RE = re.compile(
    r"\b(i'?d like|i would like|i want|i'?ll have|i will have|i'?ll take|can i (get|have)|could i (get|have)|give me|add|order|get me)\b"
)
PICKUP_RE = re.compile(r"\b(pick\s?-?\s?(it\s)?up|takeaway|take away|collect)\b")
DELIVERY_RE = re.compile(r"\b(deliver|delivery|delivered)\b")
ADDRESS_RE = re.compile(
    r"\b(?:deliver(?:ed)?\s+(?:it\s+)?to|my address is|the address is|address is|address:)\s+(.+?)(?:\s+and\s+(?:i'?ll\s+)?pay\b.*)?[.!]?$"
)
PAYMENT_RE = re.compile(r"\b(cash|credit card|debit card|card|credit|debit|pix|apple pay|google pay)\b")
CHECKOUT_RE = re.compile(
    r"\b(check\s?out|place (the|my) order|that'?s all|that is all|that'?s it|finali[sz]e|complete (the|my) order|close the order)\b"
)
SUPPORT_RE = re.compile(
    r"\b(opening hours|hours|are you open|when do you (open|close)|closing time|where are you|your address|located|location|phone|contact|instagram)\b"
)
CONFIRMATION_RE = re.compile(
    r"^\s*(yes|yeah|yep|yup|sure|ok|okay|correct|confirm(ed)?|go ahead|please do|sounds good|perfect|that'?s right)\b"
    r"|\b(i confirm|place it|go ahead)\b"
)


def is_confirmation(message: str) -> bool:
    return bool(CONFIRMATION_RE.search(message.lower()))


class KeywordIntentClassifier(IntentClassifier):
    """Lightweight multi-intent classifier built on keywords and the menu catalog."""

    def __init__(self, restaurant: RestaurantProfile) -> None:
        self._restaurant = restaurant
        self._phrases = self._build_phrases(restaurant)

    def describe(self) -> str:
        return "Rule-based keyword classifier"

    async def classify(
        self,
        message: str,
        history: Sequence[MessageTurn],
        state: ConversationState,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[Intent]:
        return self.classify_text(message, state)

    def classify_text(self, message: str, state: ConversationState) -> list[Intent]:
        text = " ".join(message.lower().split())
        found: dict[IntentType, Intent] = {}

        if GREETING_RE.search(text):
            found[IntentType.GREETING] = Intent(IntentType.GREETING, 0.95)

        question = PRODUCT_QUESTION_RE.search(text)
        products = self._extract_products(text)
        if question:
            found[IntentType.MENU] = Intent(IntentType.MENU, 0.85, {"query": question.group(1).strip()})
        elif products and (ORDER_VERB_RE.search(text) or any(p["explicit_quantity"] for p in products)):
            found[IntentType.ORDER] = Intent(
                IntentType.ORDER,
                0.9,
                {"products": [{k: v for k, v in p.items() if k != "explicit_quantity"} for p in products]},
            )
        elif ORDER_VERB_RE.search(text) and re.search(r"\border\b", text) and not CHECKOUT_RE.search(text):
            found[IntentType.ORDER] = Intent(IntentType.ORDER, 0.6, {"products": []})

        logistics = self._extract_logistics(text)
        if logistics:
            found[IntentType.LOGISTICS] = Intent(IntentType.LOGISTICS, 0.9, logistics)

        payment = PAYMENT_RE.search(text)
        if payment:
            found[IntentType.PAYMENT] = Intent(IntentType.PAYMENT, 0.9, {"payment_method": payment.group(1)})

        if IntentType.MENU not in found and MENU_RE.search(text):
            found[IntentType.MENU] = Intent(IntentType.MENU, 0.85, self._menu_filters(text))

        if SUPPORT_RE.search(text) and IntentType.LOGISTICS not in found:
            found[IntentType.SUPPORT] = Intent(IntentType.SUPPORT, 0.8, {"question": message.strip()})

        if CHECKOUT_RE.search(text) or (
            state is ConversationState.CONFIRMING_ORDER and is_confirmation(text)
        ):
            found[IntentType.CHECKOUT] = Intent(IntentType.CHECKOUT, 0.85)

        if not found:
            return [unclear_intent()]

        ordered = [found[kind] for kind in URGENCY if kind in found]
        for priority, intent in enumerate(ordered, start=1):
            intent.priority = priority
        return ordered

    def _extract_products(self, text: str) -> list[dict[str, Any]]:
        tokens = re.findall(r"[a-z0-9']+", text)
        singular = [_singular(token) for token in tokens]
        used: set[int] = set()
        results: list[dict[str, Any]] = []

        # Longest phrases first so "pepperoni pizza" wins over "pizza".
        for phrase in self._phrases:
            size = len(phrase)
            for start in range(len(singular) - size + 1):
                span = range(start, start + size)
                if any(index in used for index in span):
                    continue
                if tuple(singular[start : start + size]) != phrase:
                    continue
                used.update(span)
                quantity, explicit = _quantity_before(tokens, start)
                results.append(
                    {
                        "name": " ".join(phrase),
                        "quantity": quantity,
                        "explicit_quantity": explicit,
                        "_position": start,
                    }
                )

        results.sort(key=lambda item: item.pop("_position"))
        return results

    @staticmethod
    def _extract_logistics(text: str) -> dict[str, Any]:
        data: dict[str, Any] = {}
        address = ADDRESS_RE.search(text)
        if PICKUP_RE.search(text):
            data["delivery_type"] = "pickup"
        elif DELIVERY_RE.search(text):
            data["delivery_type"] = "delivery"
        if address and data.get("delivery_type") != "pickup":
            data["address"] = address.group(1).strip(" .,!")
            data["delivery_type"] = "delivery"
        return data

    def _menu_filters(self, text: str) -> dict[str, Any]:
        for category in self._restaurant.categories:
            if _singular(category.lower()) in {_singular(token) for token in text.split()}:
                return {"category": category}
        return {}

    @staticmethod
    def _build_phrases(restaurant: RestaurantProfile) -> list[tuple[str, ...]]:
        phrases: set[tuple[str, ...]] = set()
        for product in restaurant.products:
            for name in (product.name, *product.aliases):
                words = tuple(_singular(token) for token in re.findall(r"[a-z0-9']+", name.lower()))
                if words:
                    phrases.add(words)
        return sorted(phrases, key=lambda words: (-len(words), words))


def _singular(token: str) -> str:
    if len(token) > 3 and token.endswith("es") and token[:-2].endswith(("ch", "sh", "x")):
        return token[:-2]
    if len(token) > 2 and token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def _quantity_before(tokens: Sequence[str], start: int) -> tuple[int, bool]:
    # Quantity sits just before the product ("two classic burgers", "2 x burger").
    for offset in (1, 2, 3):
        index = start - offset
        if index < 0:
            break
        token = tokens[index].rstrip("x")
        if token.isdigit() and int(token) > 0:
            return int(token), True
        if token in NUMBER_WORDS:
            return NUMBER_WORDS[token], token not in ("a", "an")
    return 1, False
