"""Rule checks applied to every outgoing reply."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from orderflow.memory.models import ConversationState
from orderflow.tools.base import ToolResult

logger = logging.getLogger("orderflow.validator")

ROLE_CONFUSION_RE = re.compile(
    r"\b(i'?ll have|i will have|send me|i'?ll take|i want the|i'?d like to order|give me)\b",
    re.IGNORECASE,
)
UPSELL_RE = re.compile(
    r"\b(would you like to add|want to add|how about (a|an|some)|can i tempt you|care for (a|an|some)|"
    r"would you also like)\b",
    re.IGNORECASE,
)
PRICE_RE = re.compile(r"(?:[$€£]\s?\d+(?:[.,]\d{1,2})?|\b\d+(?:[.,]\d{1,2})?\s?(?:dollars|usd|eur|reais)\b)", re.IGNORECASE)
CONFIRMATION_REQUEST_RE = re.compile(r"\b(confirm|shall i place|place (it|the order)|is that (right|correct)|go ahead)\b", re.IGNORECASE)
ADDRESS_REQUEST_RE = re.compile(r"\baddress\b", re.IGNORECASE)
PAYMENT_MENTION_RE = re.compile(r"\b(pay|payment|cash|card|pix)\b", re.IGNORECASE)
NAME_REQUEST_RE = re.compile(r"\b(your name|name (for|on) the order|who is the order for)\b", re.IGNORECASE)

SAFE_REPLIES: dict[ConversationState, str] = {
    ConversationState.COLLECTING_ADDRESS: "What's the delivery address for this order?",
    ConversationState.COLLECTING_PAYMENT: "How would you like to pay?",
    ConversationState.CONFIRMING_ORDER: "Your order is ready. Would you like me to confirm it?",
    ConversationState.READY_TO_CHECKOUT: "Great! Will that be delivery or pickup?",
    ConversationState.BUILDING_ORDER: "Got it! Would you like anything else, or shall we check out?",
    ConversationState.ORDER_PLACED: "Your order has been placed. Thank you!",
    ConversationState.ABANDONED: "No problem. Message us any time you'd like to order.",
}
DEFAULT_SAFE_REPLY = "How can I help you with your order?"


@dataclass(slots=True)
class ValidationIssue:
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass(slots=True)
class ValidationReport:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
        }


class ResponseValidator:
    """Flag replies that break the assistant's conversational rules.

    Errors must be fixed before sending; warnings are only logged.
    """

    def __init__(self, max_length: int = 500, max_upsell_attempts: int = 2) -> None:
        self.max_length = max_length
        self.max_upsell_attempts = max_upsell_attempts

    def validate(
        self,
        text: str,
        state: ConversationState,
        tool_results: Sequence[ToolResult],
        metadata: Mapping[str, Any],
    ) -> ValidationReport:
        report = ValidationReport()

        confusion = ROLE_CONFUSION_RE.search(text)
        if confusion:
            report.errors.append(
                ValidationIssue("role_confusion", f"reply speaks as the customer ({confusion.group(0)!r})")
            )

        attempts = int(metadata.get("upsell_attempts") or 0)
        if attempts > self.max_upsell_attempts and UPSELL_RE.search(text):
            report.errors.append(
                ValidationIssue("upsell_limit", f"upsell offered after {attempts} attempts")
            )

        if PRICE_RE.search(text) and not any(result.has_pricing for result in tool_results):
            report.warnings.append(
                ValidationIssue("unverified_price", "price mentioned without pricing data from a tool")
            )

        expectation = self._state_expectation(text, state, tool_results)
        if expectation:
            report.warnings.append(ValidationIssue("state_expectation", expectation))

        if metadata.get("customer_name") and NAME_REQUEST_RE.search(text):
            report.warnings.append(ValidationIssue("repeated_request", "asks for a name already given"))
        if metadata.get("validated_address") and re.search(
            r"\b(what|send|share|need|give)\b[^.?!]*\baddress\b", text, re.IGNORECASE
        ):
            report.warnings.append(ValidationIssue("repeated_request", "asks for an address already validated"))

        if len(text) > self.max_length:
            report.warnings.append(
                ValidationIssue("too_long", f"{len(text)} characters exceeds {self.max_length}")
            )

        for issue in report.errors:
            logger.warning("Validation error %s: %s", issue.code, issue.message)
        for issue in report.warnings:
            logger.info("Validation warning %s: %s", issue.code, issue.message)
        return report

    @staticmethod
    def _state_expectation(
        text: str, state: ConversationState, tool_results: Sequence[ToolResult]
    ) -> str | None:
        if state is ConversationState.CONFIRMING_ORDER:
            placed = any(r.tool_name == "create_order" and r.success for r in tool_results)
            if not placed and not CONFIRMATION_REQUEST_RE.search(text):
                return "confirming order without asking for confirmation"
        elif state is ConversationState.COLLECTING_ADDRESS and not ADDRESS_REQUEST_RE.search(text):
            return "collecting address without asking for it"
        elif state is ConversationState.COLLECTING_PAYMENT and not PAYMENT_MENTION_RE.search(text):
            return "collecting payment without mentioning payment"
        return None


def safe_reply(state: ConversationState) -> str:
    """Deterministic reply used when a generated one cannot be repaired."""

    return SAFE_REPLIES.get(state, DEFAULT_SAFE_REPLY)
