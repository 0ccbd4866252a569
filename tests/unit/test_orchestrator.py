import asyncio

import pytest

from orderflow.agent.loop import AgentLoop
from orderflow.capabilities.router import build_capability_router
from orderflow.core.concurrency import ConversationLocks
from orderflow.core.metrics import MetricsCollector
from orderflow.llm.client import LLMResponse, UnavailableLLMClient
from orderflow.memory.models import ConversationState
from orderflow.orchestrator import APOLOGY, InboundTurn, TurnOrchestrator
from orderflow.planner.execution import ExecutionPlanner
from orderflow.planner.executor import PlanExecutor
from orderflow.planner.simple import KeywordIntentClassifier
from orderflow.response.humanizer import Humanizer
from orderflow.response.validator import DEFAULT_SAFE_REPLY, ResponseValidator


class BrokenPlanner(ExecutionPlanner):
    def create_plan(self, *args, **kwargs):
        raise RuntimeError("planner exploded")


@pytest.fixture()
def build_orchestrator(memory_store, restaurant, tool_executor):
    def build(llm, *, mode="plan", planner=None):
        router = build_capability_router(llm, tool_executor)
        humanizer = Humanizer(llm)
        return TurnOrchestrator(
            store=memory_store,
            classifier=KeywordIntentClassifier(restaurant),
            planner=planner or ExecutionPlanner(),
            executor=PlanExecutor(router, tool_executor, memory_store, restaurant),
            agent_loop=AgentLoop(router, tool_executor, humanizer, memory_store, restaurant),
            validator=ResponseValidator(),
            humanizer=humanizer,
            locks=ConversationLocks(1.0),
            metrics=MetricsCollector(),
            mode=mode,
        )

    return build


def turn(orchestrator, conversation_id, message):
    return asyncio.run(orchestrator.handle_turn(InboundTurn(conversation_id, message)))


def test_blocked_reply_is_rewritten(build_orchestrator, fake_llm):
    llm = fake_llm(
        LLMResponse(text="I'll have the kitchen open from 11:00 on weekdays."),
        LLMResponse(text="We're open from 11:00 on weekdays."),
    )
    orchestrator = build_orchestrator(llm)

    result = turn(orchestrator, "conv-rw", "what are your opening hours?")

    assert result.message == "We're open from 11:00 on weekdays."
    assert result.validation["action"] == "rewritten"
    assert [issue["code"] for issue in result.validation["errors"]] == ["role_confusion"]
    assert "speaks as the customer" in llm.calls[1]["system_prompt"]


def test_blocked_reply_is_substituted_when_rewrite_fails(build_orchestrator, fake_llm, memory_store):
    orchestrator = build_orchestrator(fake_llm(LLMResponse(text="Send me the details and I'll take it.")))

    result = turn(orchestrator, "conv-sub", "what are your opening hours?")

    assert result.message == DEFAULT_SAFE_REPLY
    assert result.validation["action"] == "substituted"
    assert orchestrator._metrics.snapshot().validation_errors == {"role_confusion": 1}
    history = memory_store.get_recent_history("conv-sub", 10)
    assert history[-1].content == DEFAULT_SAFE_REPLY


def test_unexpected_failure_returns_apology_and_keeps_state(build_orchestrator, memory_store):
    orchestrator = build_orchestrator(UnavailableLLMClient(), planner=BrokenPlanner())

    result = turn(orchestrator, "conv-err", "two burgers please")

    assert result.message == APOLOGY
    assert result.summary == "error"
    assert result.state is ConversationState.GREETING
    record = memory_store.get_conversation("conv-err")
    assert record.state is ConversationState.GREETING
    assert record.cart == []


def test_loop_mode_turn(build_orchestrator, memory_store):
    orchestrator = build_orchestrator(UnavailableLLMClient(), mode="loop")

    result = turn(orchestrator, "conv-loop", "hi")

    assert result.exit_reason == "no_more_agents"
    assert result.state is ConversationState.BROWSING_MENU
    assert result.capabilities == ["MENU"]
    assert "Welcome to Corner Grill" in result.message
    record = memory_store.get_conversation("conv-loop")
    assert record.state is ConversationState.BROWSING_MENU
    assert record.metadata["has_greeted"] is True
    assert record.metadata["last_capability"] == "MENU"
    assert record.metadata["state_history"][-1]["to"] == "browsing_menu"
