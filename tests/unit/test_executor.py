import asyncio

from orderflow.capabilities.base import CapabilityModule, CapabilityOutput
from orderflow.capabilities.router import CapabilityRouter
from orderflow.memory.models import ConversationState
from orderflow.planner.executor import DEGRADED_OUTPUT, PlanExecutor, compose_output
from orderflow.planner.types import Capability, ExecutionStep, TurnContext
from orderflow.tools.base import ToolResult


def turn_for(store, conversation_id, message):
    record = store.get_conversation(conversation_id)
    return TurnContext(
        conversation_id=conversation_id,
        user_message=message,
        history=[],
        state=record.state,
        metadata=record.metadata,
        cart=record.cart,
    )


class ExplodingModule(CapabilityModule):
    name = Capability.SUPPORT

    async def handle(self, request):
        raise RuntimeError("boom")


def test_greeting_turn_moves_to_browsing_menu(plan_executor, memory_store):
    plan = [ExecutionStep("step_1", Capability.MENU, "greet_and_show_menu")]

    report = asyncio.run(plan_executor.execute(plan, turn_for(memory_store, "conv-a", "hi")))

    assert report.final_state is ConversationState.BROWSING_MENU
    assert report.metadata_patch == {"has_greeted": True}
    output = report.results[0].output
    assert "Welcome to Corner Grill" in output
    assert "https://cornergrill.example.com/menu" in output
    assert [result.tool_name for result in report.tool_results] == ["send_menu_link"]


def test_order_with_pickup_builds_order(plan_executor, memory_store):
    plan = [
        ExecutionStep(
            "step_1", Capability.SALES, "process_order", {"products": [{"name": "burger", "quantity": 2}]}
        ),
        ExecutionStep(
            "step_2",
            Capability.LOGISTICS,
            "set_delivery_type",
            {"delivery_type": "pickup"},
            can_run_in_parallel=True,
        ),
    ]

    report = asyncio.run(
        plan_executor.execute(plan, turn_for(memory_store, "conv-b", "two burgers and I'll pick up"))
    )

    assert report.final_state is ConversationState.BUILDING_ORDER
    assert report.metadata["delivery_type"] == "pickup"
    assert [(item.product_name, item.quantity) for item in report.cart] == [("Classic Burger", 2)]

    record = memory_store.get_conversation("conv-b")
    assert record.cart_item_count == 2
    assert record.metadata["delivery_type"] == "pickup"


def test_step_with_unproduced_dependency_is_skipped(plan_executor, memory_store):
    plan = [
        ExecutionStep("step_1", Capability.MENU, "show_menu", dependencies=frozenset({"step_0"})),
        ExecutionStep("step_2", Capability.SALES, "clarify", dependencies=frozenset({"step_1"})),
    ]

    report = asyncio.run(plan_executor.execute(plan, turn_for(memory_store, "conv-c", "hmm")))

    assert report.results == []
    assert [step.step_id for step in report.skipped] == ["step_1", "step_2"]
    assert report.final_state is ConversationState.GREETING


def test_failing_step_degrades_and_later_steps_run(memory_store, restaurant, tool_executor):
    router = CapabilityRouter({Capability.SUPPORT: ExplodingModule()})
    executor = PlanExecutor(router, tool_executor, memory_store, restaurant)
    plan = [
        ExecutionStep("step_1", Capability.SUPPORT, "answer_question"),
        ExecutionStep("step_2", Capability.SALES, "clarify", dependencies=frozenset({"step_1"})),
    ]

    report = asyncio.run(executor.execute(plan, turn_for(memory_store, "conv-d", "when do you open?")))

    assert [result.degraded for result in report.results] == [True, False]
    assert report.results[0].output == DEGRADED_OUTPUT


def test_parallel_read_only_steps_keep_plan_order(plan_executor, memory_store):
    plan = [
        ExecutionStep("step_1", Capability.SUPPORT, "answer_question", {"question": "phone"}, can_run_in_parallel=True),
        ExecutionStep("step_2", Capability.MENU, "show_menu", can_run_in_parallel=True),
    ]

    report = asyncio.run(plan_executor.execute(plan, turn_for(memory_store, "conv-e", "phone and menu")))

    assert [result.step.step_id for result in report.results] == ["step_1", "step_2"]
    assert [result.tool_name for result in report.tool_results] == ["get_restaurant_info", "send_menu_link"]


def test_compose_output_orders_by_source():
    results = [ToolResult(tool_name="send_menu_link", success=True, message="Menu link.")]

    assert compose_output(CapabilityOutput(content="Hello!"), results) == "Menu link. Hello!"
    assert compose_output(CapabilityOutput(content="Hello!", used_llm=True), results) == "Hello! Menu link."
    assert compose_output(CapabilityOutput(content="Menu link."), results) == "Menu link."
