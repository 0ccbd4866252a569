"""Lightweight in-memory metrics collector."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable


@dataclass
class MetricSnapshot:
    total_turns: int
    intents: Dict[str, int]
    capabilities: Dict[str, int]
    tool_calls: Dict[str, int]
    tool_failures: Dict[str, int]
    validation_errors: Dict[str, int]
    exit_reasons: Dict[str, int]


class MetricsCollector:
    """Thread-safe counter storage for orchestration metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total_turns = 0
        self._intents: Counter[str] = Counter()
        self._capabilities: Counter[str] = Counter()
        self._tool_calls: Counter[str] = Counter()
        self._tool_failures: Counter[str] = Counter()
        self._validation_errors: Counter[str] = Counter()
        self._exit_reasons: Counter[str] = Counter()

    def record_turn(
        self,
        *,
        intents: Iterable[str],
        capabilities: Iterable[str],
        tools: Iterable[tuple[str, bool]],
        validation_errors: Iterable[str] = (),
        exit_reason: str | None = None,
    ) -> None:
        with self._lock:
            self._total_turns += 1
            self._intents.update(intents)
            self._capabilities.update(capabilities)
            for name, success in tools:
                self._tool_calls[name] += 1
                if not success:
                    self._tool_failures[name] += 1
            self._validation_errors.update(validation_errors)
            if exit_reason:
                self._exit_reasons[exit_reason] += 1

    def snapshot(self) -> MetricSnapshot:
        with self._lock:
            return MetricSnapshot(
                total_turns=self._total_turns,
                intents=dict(self._intents),
                capabilities=dict(self._capabilities),
                tool_calls=dict(self._tool_calls),
                tool_failures=dict(self._tool_failures),
                validation_errors=dict(self._validation_errors),
                exit_reasons=dict(self._exit_reasons),
            )
