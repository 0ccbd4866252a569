"""Execution planner: intents to a dependency-ordered list of steps."""

from __future__ import annotations

import logging
from graphlib import CycleError, TopologicalSorter
from typing import Any, Mapping, Sequence

from orderflow.core.errors import PlanValidationError
from orderflow.memory.models import ConversationState

from .types import Capability, ExecutionStep, Intent, IntentType

logger = logging.getLogger("orderflow.planner")


class ExecutionPlanner:
    """Apply the per-intent planning policy.

    Steps are emitted in a topological order: a step only ever depends on steps
    planned before it.
    """

    def create_plan(
        self,
        intents: Sequence[Intent],
        state: ConversationState,
        metadata: Mapping[str, Any],
        *,
        cart_item_count: int = 0,
    ) -> list[ExecutionStep]:
        builder = _PlanBuilder()
        greeted = bool(metadata.get("has_greeted"))

        for intent in sorted(intents, key=lambda item: item.priority):
            data = intent.extracted_data or {}

            if intent.type is IntentType.GREETING:
                if not greeted:
                    builder.add(Capability.MENU, "greet_and_show_menu")
                    greeted = True

            elif intent.type is IntentType.MENU:
                builder.add(Capability.MENU, "show_menu", dict(data), parallel=True)

            elif intent.type is IntentType.ORDER:
                builder.add(
                    Capability.SALES,
                    "process_order",
                    {"products": list(data.get("products") or []), **_without(data, "products")},
                )

            elif intent.type is IntentType.LOGISTICS:
                self._plan_logistics(builder, data, metadata)

            elif intent.type is IntentType.PAYMENT:
                builder.add(
                    Capability.LOGISTICS,
                    "set_payment_method",
                    {"payment_method": data.get("payment_method")},
                    parallel=True,
                )

            elif intent.type is IntentType.CHECKOUT:
                if cart_item_count <= 0:
                    builder.add(Capability.SALES, "handle_empty_cart")
                else:
                    builder.add(
                        Capability.CHECKOUT,
                        "finalize_order",
                        depends_on=builder.step_ids(),
                    )

            elif intent.type is IntentType.SUPPORT:
                builder.add(Capability.SUPPORT, "answer_question", dict(data), parallel=True)

            else:
                self._plan_fallback(builder, greeted, cart_item_count)
                greeted = True

        if not builder.steps:
            logger.info("No planning rule produced a step for state %s, using fallback", state.value)
            self._plan_fallback(builder, greeted, cart_item_count)

        plan = builder.steps
        validate_plan(plan)
        logger.info(
            "Plan for state %s: %s",
            state.value,
            " -> ".join(f"{step.step_id}:{step.capability.value}.{step.action}" for step in plan),
        )
        return plan

    @staticmethod
    def _plan_logistics(builder: "_PlanBuilder", data: Mapping[str, Any], metadata: Mapping[str, Any]) -> None:
        delivery_type = data.get("delivery_type")
        address = data.get("address")
        if address and not delivery_type and metadata.get("delivery_type") != "delivery":
            delivery_type = "delivery"

        type_step: str | None = None
        if delivery_type:
            type_step = builder.add(
                Capability.LOGISTICS,
                "set_delivery_type",
                {"delivery_type": delivery_type},
                parallel=True,
            )
        if address:
            builder.add(
                Capability.LOGISTICS,
                "set_address",
                {"address": address},
                depends_on=[type_step] if type_step else [],
            )

    @staticmethod
    def _plan_fallback(builder: "_PlanBuilder", greeted: bool, cart_item_count: int) -> None:
        if not greeted:
            builder.add(Capability.MENU, "greet_and_show_menu")
        elif cart_item_count <= 0:
            builder.add(Capability.MENU, "show_menu", parallel=True)
        else:
            builder.add(Capability.SALES, "clarify")


class _PlanBuilder:
    def __init__(self) -> None:
        self.steps: list[ExecutionStep] = []

    def step_ids(self) -> list[str]:
        return [step.step_id for step in self.steps]

    def add(
        self,
        capability: Capability,
        action: str,
        parameters: dict[str, Any] | None = None,
        *,
        depends_on: Sequence[str] = (),
        parallel: bool = False,
    ) -> str:
        step_id = f"step_{len(self.steps) + 1}"
        self.steps.append(
            ExecutionStep(
                step_id=step_id,
                capability=capability,
                action=action,
                parameters=parameters or {},
                dependencies=frozenset(depends_on),
                can_run_in_parallel=parallel,
            )
        )
        return step_id


def validate_plan(plan: Sequence[ExecutionStep]) -> None:
    """Raise :class:`PlanValidationError` unless ``plan`` is an ordered DAG."""

    seen: set[str] = set()
    graph: dict[str, set[str]] = {}
    for step in plan:
        if step.step_id in seen:
            raise PlanValidationError(f"duplicate step id {step.step_id}")
        unknown = step.dependencies - seen
        if unknown:
            raise PlanValidationError(f"{step.step_id} depends on unplanned steps {sorted(unknown)}")
        seen.add(step.step_id)
        graph[step.step_id] = set(step.dependencies)

    try:
        tuple(TopologicalSorter(graph).static_order())
    except CycleError as exc:
        raise PlanValidationError(f"dependency cycle: {exc.args[1]}") from exc


def _without(data: Mapping[str, Any], *keys: str) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in keys}
