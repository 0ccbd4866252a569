import asyncio

from orderflow.agent.loop import AgentLoop
from orderflow.capabilities.base import CapabilityModule, CapabilityOutput
from orderflow.capabilities.router import CapabilityRouter, build_capability_router
from orderflow.llm.client import UnavailableLLMClient
from orderflow.memory.models import ConversationState
from orderflow.planner.types import Capability, ExecutionStep, TurnContext
from orderflow.response.humanizer import EMPTY_REPLY, Humanizer


class PingPong(CapabilityModule):
    """Always hands the turn to ``target`` without saying anything."""

    def __init__(self, name, target):
        self.name = name
        self._target = target

    async def handle(self, request):
        return CapabilityOutput(handoff=self._target)


def turn(conversation_id, message, state=ConversationState.GREETING):
    return TurnContext(
        conversation_id=conversation_id,
        user_message=message,
        history=[],
        state=state,
        metadata={},
        cart=[],
    )


def test_loop_stops_when_no_capability_is_suggested(memory_store, restaurant, tool_executor):
    llm = UnavailableLLMClient()
    loop = AgentLoop(
        build_capability_router(llm, tool_executor), tool_executor, Humanizer(llm), memory_store, restaurant
    )

    result = asyncio.run(
        loop.run(turn("conv-1", "hi"), ExecutionStep("iteration_1", Capability.MENU, "greet_and_show_menu"))
    )

    assert result.exit_reason == "no_more_agents"
    assert result.iterations == 1
    assert result.final_state is ConversationState.BROWSING_MENU
    assert "Welcome to Corner Grill" in result.response


def test_loop_is_capped(memory_store, restaurant, tool_executor):
    router = CapabilityRouter(
        {
            Capability.SALES: PingPong(Capability.SALES, Capability.CHECKOUT),
            Capability.CHECKOUT: PingPong(Capability.CHECKOUT, Capability.SALES),
        }
    )
    loop = AgentLoop(
        router, tool_executor, Humanizer(UnavailableLLMClient()), memory_store, restaurant, max_iterations=3
    )

    result = asyncio.run(loop.run(turn("conv-2", "hmm"), ExecutionStep("iteration_1", Capability.SALES, "clarify")))

    assert result.exit_reason == "max_iterations"
    assert result.iterations == 3
    assert result.capabilities_called == ["SALES", "CHECKOUT", "SALES"]
    assert result.response == EMPTY_REPLY


def test_loop_exits_on_terminal_state(memory_store, restaurant, tool_executor):
    router = CapabilityRouter({Capability.SALES: PingPong(Capability.SALES, Capability.CHECKOUT)})
    loop = AgentLoop(router, tool_executor, Humanizer(UnavailableLLMClient()), memory_store, restaurant)

    result = asyncio.run(
        loop.run(
            turn("conv-3", "thanks", ConversationState.ORDER_PLACED),
            ExecutionStep("iteration_1", Capability.SALES, "clarify"),
        )
    )

    assert result.exit_reason == "terminal_state"
    assert result.iterations == 1
    assert result.response
