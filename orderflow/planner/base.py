"""Intent classifier abstract base class."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence

from orderflow.memory.models import ConversationState, MessageTurn

from .types import Intent


class IntentClassifier(ABC):
    """Turns the latest message plus recent history into priority-ordered intents."""

    @abstractmethod
    async def classify(
        self,
        message: str,
        history: Sequence[MessageTurn],
        state: ConversationState,
        metadata: Mapping[str, Any] | None = None,
    ) -> list[Intent]:
        """Return at least one intent sorted ascending by priority. Never raises."""

    @abstractmethod
    def describe(self) -> str:
        """Human-readable summary of classifier strategy."""
