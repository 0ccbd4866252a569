"""Turn orchestration: one inbound customer message in, one validated reply out."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from orderflow.agent.loop import AgentLoop
from orderflow.core.concurrency import ConversationLocks
from orderflow.core.metrics import MetricsCollector
from orderflow.memory.models import ConversationRecord, ConversationState, MessageTurn
from orderflow.memory.store import ConversationStore
from orderflow.planner.base import IntentClassifier
from orderflow.planner.execution import ExecutionPlanner
from orderflow.planner.executor import PlanExecutor, StateTransition
from orderflow.planner.types import Intent, TurnContext
from orderflow.response.combiner import combine, create_execution_summary
from orderflow.response.humanizer import Humanizer, scrub_internal_labels
from orderflow.response.validator import ResponseValidator, ValidationReport, safe_reply
from orderflow.tools.base import ToolResult

logger = logging.getLogger("orderflow.app")

APOLOGY = "Sorry, something went wrong on our side. Could you send that again?"
HANDOFF_MESSAGES = {
    ConversationState.ORDER_PLACED: (
        "Your order has already been placed. A member of our team will take it from here "
        "if you need anything else."
    ),
    ConversationState.ABANDONED: (
        "This order was cancelled. A member of our team will get back to you shortly."
    ),
}
STATE_HISTORY_LIMIT = 10


@dataclass(slots=True)
class InboundTurn:
    conversation_id: str
    customer_message: str
    recent_history: Sequence[MessageTurn] | None = None
    current_metadata: Mapping[str, Any] | None = None


@dataclass(slots=True)
class TurnResult:
    conversation_id: str
    message: str
    state: ConversationState
    previous_state: ConversationState
    intents: list[Intent] = field(default_factory=list)
    summary: str = "processed"
    capabilities: list[str] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    validation: dict[str, Any] = field(default_factory=dict)
    exit_reason: str | None = None

    @property
    def tool_success(self) -> bool:
        return all(result.success for result in self.tool_results)


@dataclass(slots=True)
class _Draft:
    text: str
    state: ConversationState
    metadata: dict[str, Any]
    metadata_patch: dict[str, Any]
    capabilities: list[str]
    tool_results: list[ToolResult]
    transitions: list[StateTransition]
    exit_reason: str | None = None


class TurnOrchestrator:
    """Wire classifier, planner, executor, validator and store together for one turn."""

    def __init__(
        self,
        store: ConversationStore,
        classifier: IntentClassifier,
        planner: ExecutionPlanner,
        executor: PlanExecutor,
        agent_loop: AgentLoop,
        validator: ResponseValidator,
        humanizer: Humanizer,
        locks: ConversationLocks,
        metrics: MetricsCollector,
        *,
        mode: str = "plan",
        history_window: int = 10,
    ) -> None:
        self._store = store
        self._classifier = classifier
        self._planner = planner
        self._executor = executor
        self._agent_loop = agent_loop
        self._validator = validator
        self._humanizer = humanizer
        self._locks = locks
        self._metrics = metrics
        self.mode = mode
        self._history_window = history_window

    async def handle_turn(self, inbound: InboundTurn) -> TurnResult:
        """Process one customer message; raises ``TurnInProgressError`` if the lock wait times out."""

        async with self._locks.hold(inbound.conversation_id):
            record = self._store.get_conversation(inbound.conversation_id)
            if record.state.is_terminal:
                logger.info(
                    "Conversation %s is %s, handing off to staff", record.conversation_id, record.state.value
                )
                return TurnResult(
                    conversation_id=record.conversation_id,
                    message=HANDOFF_MESSAGES[record.state],
                    state=record.state,
                    previous_state=record.state,
                    summary="handoff",
                )

            try:
                return await self._run(inbound, record)
            except Exception:  # noqa: BLE001
                logger.exception("Turn failed for conversation %s", inbound.conversation_id)
                return TurnResult(
                    conversation_id=inbound.conversation_id,
                    message=APOLOGY,
                    state=record.state,
                    previous_state=record.state,
                    summary="error",
                )

    async def _run(self, inbound: InboundTurn, record: ConversationRecord) -> TurnResult:
        conversation_id = inbound.conversation_id
        self._store.append_turn(
            MessageTurn(conversation_id=conversation_id, role="user", content=inbound.customer_message)
        )

        history = (
            list(inbound.recent_history)
            if inbound.recent_history is not None
            else list(self._store.get_recent_history(conversation_id, self._history_window))
        )
        metadata = dict(record.metadata)
        if inbound.current_metadata:
            metadata.update(inbound.current_metadata)

        intents = await self._classifier.classify(inbound.customer_message, history, record.state, metadata)
        plan = self._planner.create_plan(
            intents, record.state, metadata, cart_item_count=record.cart_item_count
        )
        turn = TurnContext(
            conversation_id=conversation_id,
            user_message=inbound.customer_message,
            history=history,
            state=record.state,
            metadata=metadata,
            cart=record.cart,
        )

        if self.mode == "loop":
            draft = await self._run_loop(turn, plan[0])
        else:
            draft = await self._run_plan(turn, plan)

        message, validation, errors = await self._validated(draft, history)

        self._persist(record, draft)
        self._store.append_turn(
            MessageTurn(
                conversation_id=conversation_id,
                role="assistant",
                content=message,
                metadata={
                    "summary": create_execution_summary(draft.tool_results),
                    "intents": [intent.type.value for intent in intents],
                    "state": draft.state.value,
                },
            )
        )

        self._metrics.record_turn(
            intents=[intent.type.value for intent in intents],
            capabilities=draft.capabilities,
            tools=[(result.tool_name, result.success) for result in draft.tool_results],
            validation_errors=errors,
            exit_reason=draft.exit_reason,
        )

        return TurnResult(
            conversation_id=conversation_id,
            message=message,
            state=draft.state,
            previous_state=record.state,
            intents=list(intents),
            summary=create_execution_summary(draft.tool_results),
            capabilities=draft.capabilities,
            tool_results=draft.tool_results,
            validation=validation,
            exit_reason=draft.exit_reason,
        )

    async def _run_plan(self, turn: TurnContext, plan) -> _Draft:
        report = await self._executor.execute(plan, turn)
        combined = combine(report.results)
        return _Draft(
            text=scrub_internal_labels(combined.text),
            state=report.final_state,
            metadata=report.metadata,
            metadata_patch=report.metadata_patch,
            capabilities=report.capabilities,
            tool_results=combined.tool_results,
            transitions=report.transitions,
        )

    async def _run_loop(self, turn: TurnContext, initial_step) -> _Draft:
        result = await self._agent_loop.run(turn, initial_step)
        return _Draft(
            text=result.response,
            state=result.final_state,
            metadata=result.metadata,
            metadata_patch=result.metadata_patch,
            capabilities=result.capabilities_called,
            tool_results=result.tool_results,
            transitions=result.transitions,
            exit_reason=result.exit_reason,
        )

    async def _validated(self, draft: _Draft, history: Sequence[MessageTurn]) -> tuple[str, dict[str, Any], list[str]]:
        report = self._validator.validate(draft.text, draft.state, draft.tool_results, draft.metadata)
        error_codes = [issue.code for issue in report.errors]
        if report.valid:
            return draft.text, {**report.to_dict(), "action": "sent"}, error_codes

        rewritten = await self._humanizer.rewrite(
            draft.text, draft.tool_results, history, [issue.message for issue in report.errors]
        )
        if rewritten:
            second: ValidationReport = self._validator.validate(
                rewritten, draft.state, draft.tool_results, draft.metadata
            )
            if second.valid:
                logger.info("Reply rewritten after validation errors %s", error_codes)
                return rewritten, {**report.to_dict(), "action": "rewritten"}, error_codes

        logger.warning("Sending safe reply for state %s after validation errors %s", draft.state.value, error_codes)
        return safe_reply(draft.state), {**report.to_dict(), "action": "substituted"}, error_codes

    def _persist(self, record: ConversationRecord, draft: _Draft) -> None:
        history = list(record.metadata.get("state_history") or [])
        history.extend(transition.to_dict() for transition in draft.transitions)
        patch: dict[str, Any] = {
            **draft.metadata_patch,
            "last_summary": create_execution_summary(draft.tool_results),
            "state_history": history[-STATE_HISTORY_LIMIT:],
        }
        if draft.capabilities:
            patch["last_capability"] = draft.capabilities[-1]

        new_state = draft.state if draft.state is not record.state else None
        if not self._store.atomic_update_state(record.conversation_id, new_state, patch):
            logger.warning("State write rejected for %s", record.conversation_id)
