"""Bounded agent loop: capabilities hand the turn to each other until nothing is left to do."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from orderflow.capabilities.router import CapabilityRouter
from orderflow.catalog import RestaurantProfile
from orderflow.memory.models import CartItem, ConversationState
from orderflow.memory.store import ConversationStore
from orderflow.planner.executor import PlanExecutor, StateTransition, StepResult, TurnState
from orderflow.planner.types import Capability, ExecutionStep, TurnContext
from orderflow.response.combiner import combine
from orderflow.response.humanizer import Humanizer
from orderflow.state.handoff import suggest_next_capability
from orderflow.tools.base import ToolResult
from orderflow.tools.executor import ToolExecutor

logger = logging.getLogger("orderflow.agent")

EXIT_TERMINAL = "terminal_state"
EXIT_NO_MORE_AGENTS = "no_more_agents"
EXIT_MAX_ITERATIONS = "max_iterations"

HANDOFF_ACTIONS = {
    Capability.CHECKOUT: "finalize_order",
    Capability.MENU: "show_menu",
    Capability.SUPPORT: "answer_question",
    Capability.GREETING: "greet",
}


@dataclass(slots=True)
class AgentLoopResult:
    response: str
    iterations: int
    exit_reason: str
    capabilities_called: list[str]
    transitions: list[StateTransition]
    tool_results: list[ToolResult]
    final_state: ConversationState
    metadata: dict[str, Any]
    metadata_patch: dict[str, Any] = field(default_factory=dict)
    cart: list[CartItem] = field(default_factory=list)
    step_results: list[StepResult] = field(default_factory=list)


class AgentLoop:
    """Run one capability, then follow hand-off suggestions up to ``max_iterations`` times."""

    def __init__(
        self,
        router: CapabilityRouter,
        tool_executor: ToolExecutor,
        humanizer: Humanizer,
        store: ConversationStore,
        restaurant: RestaurantProfile,
        *,
        max_iterations: int = 3,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._humanizer = humanizer
        self._steps = PlanExecutor(router, tool_executor, store, restaurant, parallel_read_only=False)
        self.max_iterations = max_iterations

    async def run(self, turn: TurnContext, initial_step: ExecutionStep) -> AgentLoopResult:
        work = TurnState(turn)
        results: list[StepResult] = []
        step = initial_step
        exit_reason = EXIT_MAX_ITERATIONS
        iterations = 0

        for iteration in range(1, self.max_iterations + 1):
            iterations = iteration
            result = await self._steps.run_step(step, work)
            results.append(result)
            logger.info(
                "Iteration %d: %s.%s -> %s", iteration, step.capability.value, step.action, work.state.value
            )

            if work.state.is_terminal:
                exit_reason = EXIT_TERMINAL
                break

            next_capability = suggest_next_capability(work.state, work.context(step.capability), result.handoff)
            if next_capability is None:
                exit_reason = EXIT_NO_MORE_AGENTS
                break

            step = ExecutionStep(
                step_id=f"iteration_{iteration + 1}",
                capability=next_capability,
                action=_handoff_action(next_capability, step.capability),
            )

        if exit_reason == EXIT_MAX_ITERATIONS:
            logger.warning("Agent loop hit the %d iteration cap for %s", self.max_iterations, turn.conversation_id)

        draft = combine(results).text if any(r.output for r in results) else ""
        response = await self._humanizer.humanize(draft, work.tool_results, turn.history)

        return AgentLoopResult(
            response=response,
            iterations=iterations,
            exit_reason=exit_reason,
            capabilities_called=[r.step.capability.value for r in results],
            transitions=work.transitions,
            tool_results=list(work.tool_results),
            final_state=work.state,
            metadata=work.metadata,
            metadata_patch=dict(work.bookkeeping),
            cart=work.cart,
            step_results=results,
        )


def _handoff_action(capability: Capability, previous: Capability) -> str:
    if capability is Capability.SALES:
        return "handle_empty_cart" if previous is Capability.CHECKOUT else "process_order"
    return HANDOFF_ACTIONS.get(capability, "continue")
