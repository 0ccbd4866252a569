"""Plan executor: runs plan steps in dependency order and threads turn state forward."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from orderflow.capabilities.base import CapabilityOutput, CapabilityRequest
from orderflow.capabilities.router import CapabilityRouter
from orderflow.catalog import RestaurantProfile
from orderflow.memory.models import CartItem, ConversationState, MessageTurn, utcnow
from orderflow.memory.store import ConversationStore
from orderflow.state.machine import ConversationContext, build_context, evaluate_state_transition
from orderflow.tools.base import ToolContext, ToolResult
from orderflow.tools.executor import ToolBatch, ToolExecutor

from .types import READ_ONLY_CAPABILITIES, Capability, ExecutionStep, TurnContext

logger = logging.getLogger("orderflow.executor")

DEGRADED_OUTPUT = "Sorry, I couldn't finish part of that request."
GREETING_ACTIONS = frozenset({"greet_and_show_menu"})


@dataclass(slots=True)
class StateTransition:
    from_state: ConversationState
    to_state: ConversationState
    trigger: str
    at: str = field(default_factory=lambda: utcnow().isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {"from": self.from_state.value, "to": self.to_state.value, "trigger": self.trigger, "at": self.at}


@dataclass(slots=True)
class StepResult:
    step: ExecutionStep
    output: str
    tool_results: list[ToolResult] = field(default_factory=list)
    state_after: ConversationState | None = None
    degraded: bool = False
    handoff: Capability | None = None


@dataclass(slots=True)
class ExecutionReport:
    results: list[StepResult]
    skipped: list[ExecutionStep]
    final_state: ConversationState
    metadata: dict[str, Any]
    metadata_patch: dict[str, Any]
    cart: list[CartItem]
    transitions: list[StateTransition]

    @property
    def tool_results(self) -> list[ToolResult]:
        return [result for step in self.results for result in step.tool_results]

    @property
    def capabilities(self) -> list[str]:
        return [step.step.capability.value for step in self.results]


class TurnState:
    """Mutable working copy of a conversation for the duration of one turn."""

    def __init__(self, turn: TurnContext) -> None:
        self.conversation_id = turn.conversation_id
        self.user_message = turn.user_message
        self.history: Sequence[MessageTurn] = turn.history
        self.state = turn.state
        self.metadata: dict[str, Any] = dict(turn.metadata)
        self.cart: list[CartItem] = list(turn.cart)
        self.tool_results: list[ToolResult] = []
        self.transitions: list[StateTransition] = []
        # Orchestration flags written alongside the state at the end of the turn.
        self.bookkeeping: dict[str, Any] = {}
        self.last_capability: Capability | None = None

    @property
    def cart_item_count(self) -> int:
        return sum(item.quantity for item in self.cart)

    @property
    def cart_total(self) -> float:
        return sum(item.line_total for item in self.cart)

    def mark(self, key: str, value: Any) -> None:
        self.metadata[key] = value
        self.bookkeeping[key] = value

    def request(self, step: ExecutionStep, restaurant: RestaurantProfile) -> CapabilityRequest:
        return CapabilityRequest(
            conversation_id=self.conversation_id,
            user_message=self.user_message,
            history=self.history,
            action=step.action,
            parameters=dict(step.parameters),
            state=self.state,
            metadata=dict(self.metadata),
            cart=list(self.cart),
            restaurant=restaurant,
        )

    def tool_context(
        self, store: ConversationStore, capability: Capability, restaurant: RestaurantProfile
    ) -> ToolContext:
        return ToolContext(
            store=store,
            conversation_id=self.conversation_id,
            capability=capability,
            restaurant=restaurant,
            metadata=dict(self.metadata),
            cart=list(self.cart),
            user_message=self.user_message,
        )

    def context(self, capability: Capability | None) -> ConversationContext:
        return build_context(
            self.state,
            self.metadata,
            cart_item_count=self.cart_item_count,
            cart_total=self.cart_total,
            last_capability=capability,
            tool_results=self.tool_results,
        )

    def absorb(self, capability: Capability, batch: ToolBatch, trigger: str) -> ConversationState:
        """Fold one capability's tool outcomes in and advance the state."""

        for key, value in batch.metadata_patch.items():
            if value is None:
                self.metadata.pop(key, None)
            else:
                self.metadata[key] = value
        self.cart = list(batch.cart)
        self.tool_results.extend(batch.results)
        self.last_capability = capability

        next_state = evaluate_state_transition(self.context(capability))
        if next_state is not self.state:
            logger.info(
                "State %s -> %s after %s for %s", self.state.value, next_state.value, trigger, self.conversation_id
            )
            self.transitions.append(StateTransition(self.state, next_state, trigger))
            self.state = next_state
        return self.state


@dataclass(slots=True)
class _Outcome:
    output: CapabilityOutput | None = None
    batch: ToolBatch | None = None
    error: Exception | None = None


class PlanExecutor:
    """Run an execution plan step by step.

    Steps whose dependencies produced no result are skipped and logged. A failing step
    yields a degraded result and the remaining steps still run. Runs of consecutive
    parallelizable read-only steps are fanned out with ``asyncio.gather``; their results
    are applied in plan order.
    """

    def __init__(
        self,
        router: CapabilityRouter,
        tools: ToolExecutor,
        store: ConversationStore,
        restaurant: RestaurantProfile,
        *,
        parallel_read_only: bool = True,
    ) -> None:
        self._router = router
        self._tools = tools
        self._store = store
        self._restaurant = restaurant
        self._parallel_read_only = parallel_read_only

    async def execute(self, plan: Sequence[ExecutionStep], turn: TurnContext) -> ExecutionReport:
        work = TurnState(turn)
        produced: dict[str, StepResult] = {}
        results: list[StepResult] = []
        skipped: list[ExecutionStep] = []

        index = 0
        while index < len(plan):
            step = plan[index]
            if not _dependencies_met(step, produced):
                missing = sorted(step.dependencies - produced.keys())
                logger.warning(
                    "Skipping %s (%s.%s): dependencies %s produced no result",
                    step.step_id,
                    step.capability.value,
                    step.action,
                    missing,
                )
                skipped.append(step)
                index += 1
                continue

            group = [step]
            if self._fan_out_safe(step):
                cursor = index + 1
                while (
                    cursor < len(plan)
                    and self._fan_out_safe(plan[cursor])
                    and _dependencies_met(plan[cursor], produced)
                ):
                    group.append(plan[cursor])
                    cursor += 1

            if len(group) > 1:
                logger.debug("Fanning out %s", ", ".join(s.step_id for s in group))
                outcomes = await asyncio.gather(*(self._invoke(s, work) for s in group))
            else:
                outcomes = [await self._invoke(step, work)]

            for member, outcome in zip(group, outcomes):
                result = self.apply(member, outcome, work)
                produced[member.step_id] = result
                results.append(result)
            index += len(group)

        return ExecutionReport(
            results=results,
            skipped=skipped,
            final_state=work.state,
            metadata=work.metadata,
            metadata_patch=dict(work.bookkeeping),
            cart=work.cart,
            transitions=work.transitions,
        )

    async def run_step(self, step: ExecutionStep, work: TurnState) -> StepResult:
        """Run a single step against ``work`` (used by the agent loop)."""

        return self.apply(step, await self._invoke(step, work), work)

    def _fan_out_safe(self, step: ExecutionStep) -> bool:
        return (
            self._parallel_read_only
            and step.can_run_in_parallel
            and step.capability in READ_ONLY_CAPABILITIES
        )

    async def _invoke(self, step: ExecutionStep, work: TurnState) -> _Outcome:
        try:
            output = await self._router.dispatch(step.capability, work.request(step, self._restaurant))
            batch = await self._tools.execute(
                output.tool_calls,
                work.tool_context(self._store, step.capability, self._restaurant),
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Step %s (%s.%s) failed for %s",
                step.step_id,
                step.capability.value,
                step.action,
                work.conversation_id,
            )
            return _Outcome(error=exc)
        return _Outcome(output=output, batch=batch)

    def apply(self, step: ExecutionStep, outcome: _Outcome, work: TurnState) -> StepResult:
        if outcome.error is not None or outcome.output is None or outcome.batch is None:
            return StepResult(step=step, output=DEGRADED_OUTPUT, state_after=work.state, degraded=True)

        state = work.absorb(step.capability, outcome.batch, trigger=f"{step.capability.value}.{step.action}")
        if step.action in GREETING_ACTIONS or step.capability is Capability.GREETING:
            work.mark("has_greeted", True)

        return StepResult(
            step=step,
            output=compose_output(outcome.output, outcome.batch.results),
            tool_results=list(outcome.batch.results),
            state_after=state,
            handoff=outcome.output.handoff,
        )


def compose_output(output: CapabilityOutput, results: Sequence[ToolResult]) -> str:
    """Merge capability text with tool messages.

    Model-written text leads; for rule-based output the tool messages lead and the
    capability text follows as the closing question.
    """

    messages = [result.message for result in results if result.message]
    parts = [output.content, *messages] if output.used_llm else [*messages, output.content]
    seen: set[str] = set()
    unique = []
    for part in parts:
        text = (part or "").strip()
        if text and text not in seen:
            seen.add(text)
            unique.append(text)
    return " ".join(unique)


def _dependencies_met(step: ExecutionStep, produced: dict[str, StepResult]) -> bool:
    return all(dependency in produced for dependency in step.dependencies)
