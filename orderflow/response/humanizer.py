"""Final rewrite pass turning drafts and tool outcomes into one natural reply."""

from __future__ import annotations

import logging
import re
from typing import Sequence

from orderflow.capabilities.prompts import HUMANIZER_PROMPT
from orderflow.core.errors import LLMError
from orderflow.llm.client import LLMClient
from orderflow.memory.models import ConversationState, MessageTurn
from orderflow.planner.types import Capability
from orderflow.tools.base import ToolResult

logger = logging.getLogger("orderflow.agent")

EMPTY_REPLY = "How can I help you with your order?"

_LABELS = "|".join(
    [c.value for c in Capability]
    + [s.name for s in ConversationState]
    + [s.value for s in ConversationState if "_" in s.value]
)
# Labels only count in label position: bracketed, "LABEL:" opening a line, or alone on a line.
_BRACKETED_RE = re.compile(r"[\[(<]\s*(?:%s)\s*[\])>]" % _LABELS)
_PREFIX_RE = re.compile(r"^([ \t]*)(?:%s)[ \t]*:[ \t]*" % _LABELS, re.MULTILINE)
_BARE_LINE_RE = re.compile(r"^[ \t]*(?:%s)[ \t]*$" % _LABELS, re.MULTILINE)
# Snake-case state identifiers never appear in customer prose.
_STATE_ID_RE = re.compile(
    r"\b(?:%s)\b" % "|".join(s.value for s in ConversationState if "_" in s.value),
    re.IGNORECASE,
)


def scrub_internal_labels(text: str) -> str:
    """Strip capability and state labels in label position; never returns an empty string."""

    cleaned = _BRACKETED_RE.sub("", text)
    cleaned = _PREFIX_RE.sub(r"\1", cleaned)
    cleaned = _BARE_LINE_RE.sub("", cleaned)
    cleaned = _STATE_ID_RE.sub("", cleaned)
    cleaned = re.sub(r"[ \t]+([,.!?])", r"\1", cleaned)
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.splitlines()).strip()
    return cleaned or EMPTY_REPLY


def fallback_text(draft: str, tool_results: Sequence[ToolResult]) -> str:
    if draft and draft.strip():
        return draft.strip()
    messages = [result.message for result in tool_results if result.message]
    return " ".join(messages)


class Humanizer:
    """Merge draft content with tool results through the language model."""

    def __init__(self, llm: LLMClient, *, history_limit: int = 4) -> None:
        self._llm = llm
        self._history_limit = history_limit

    @property
    def available(self) -> bool:
        return self._llm.available

    async def humanize(
        self,
        draft: str,
        tool_results: Sequence[ToolResult],
        history: Sequence[MessageTurn] = (),
    ) -> str:
        """Return the rewritten reply, or the scrubbed raw draft when the model is unavailable."""

        rewritten = await self._complete(draft, tool_results, history)
        return scrub_internal_labels(rewritten or fallback_text(draft, tool_results))

    async def rewrite(
        self,
        draft: str,
        tool_results: Sequence[ToolResult],
        history: Sequence[MessageTurn],
        problems: Sequence[str],
    ) -> str | None:
        """Ask the model to fix ``problems`` in ``draft``; ``None`` when it cannot."""

        rewritten = await self._complete(draft, tool_results, history, problems)
        return scrub_internal_labels(rewritten) if rewritten else None

    async def _complete(
        self,
        draft: str,
        tool_results: Sequence[ToolResult],
        history: Sequence[MessageTurn],
        problems: Sequence[str] = (),
    ) -> str | None:
        if not self._llm.available:
            return None

        prompt = HUMANIZER_PROMPT
        if problems:
            prompt += "\nThe previous draft was rejected. Fix these problems:\n" + "\n".join(
                f"- {problem}" for problem in problems
            )

        facts = "\n".join(
            f"- {result.tool_name}: {'ok' if result.success else 'failed'}. {result.message}"
            for result in tool_results
            if result.message
        )
        messages = [
            {"role": "assistant" if turn.role == "assistant" else "user", "content": turn.content}
            for turn in list(history)[-self._history_limit :]
            if turn.content
        ]
        messages.append(
            {"role": "user", "content": f"Draft reply:\n{draft or '(none)'}\n\nFacts:\n{facts or '(none)'}"}
        )

        try:
            response = await self._llm.complete(prompt, messages, max_tokens=300)
        except LLMError as exc:
            logger.info("Humanizer unavailable, using raw content: %s", exc)
            return None
        return response.text.strip() or None
