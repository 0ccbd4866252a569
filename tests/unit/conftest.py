"""Pytest unit test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from orderflow.capabilities.router import build_capability_router
from orderflow.catalog import load_restaurant_profile
from orderflow.core.errors import LLMError
from orderflow.llm.client import LLMClient, LLMResponse, UnavailableLLMClient
from orderflow.memory.store import SQLiteConversationStore
from orderflow.planner.executor import PlanExecutor
from orderflow.tools.address import ZoneAddressValidator
from orderflow.tools.executor import ToolExecutor
from orderflow.tools.registry import build_tool_registry


class FakeLLM(LLMClient):
    """Scripted client: returns (or raises) the queued responses in order."""

    def __init__(self, *responses: LLMResponse | Exception) -> None:
        self._responses = list(responses)
        self.calls: list[dict] = []

    async def complete(self, system_prompt, messages, tools=None, *, tool_choice=None, max_tokens=None):
        self.calls.append(
            {"system_prompt": system_prompt, "messages": list(messages), "tools": tools, "tool_choice": tool_choice}
        )
        if not self._responses:
            raise LLMError("script exhausted")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def memory_store(tmp_path):
    db_path = tmp_path / "memory.db"
    return SQLiteConversationStore(db_path)


@pytest.fixture(scope="session")
def restaurant(fixtures_dir: Path):
    return load_restaurant_profile(fixtures_dir / "restaurant.json")


@pytest.fixture()
def tool_executor(restaurant):
    return ToolExecutor(build_tool_registry(ZoneAddressValidator(restaurant)))


@pytest.fixture()
def plan_executor(memory_store, restaurant, tool_executor):
    router = build_capability_router(UnavailableLLMClient(), tool_executor)
    return PlanExecutor(router, tool_executor, memory_store, restaurant)


@pytest.fixture()
def fake_llm():
    """Factory for scripted language-model clients."""

    return FakeLLM
