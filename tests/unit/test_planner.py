import pytest

from orderflow.core.errors import PlanValidationError
from orderflow.memory.models import ConversationState
from orderflow.planner.execution import ExecutionPlanner, validate_plan
from orderflow.planner.types import Capability, ExecutionStep, Intent, IntentType, unclear_intent

planner = ExecutionPlanner()


def actions(plan):
    return [(step.capability, step.action) for step in plan]


def test_greeting_plans_menu_greeting_once():
    plan = planner.create_plan([Intent(IntentType.GREETING, 0.9)], ConversationState.GREETING, {})

    assert actions(plan) == [(Capability.MENU, "greet_and_show_menu")]


def test_greeting_skipped_when_already_greeted_falls_back():
    plan = planner.create_plan(
        [Intent(IntentType.GREETING, 0.9)], ConversationState.DISCOVERY, {"has_greeted": True}
    )

    assert len(plan) >= 1
    assert actions(plan) == [(Capability.MENU, "show_menu")]


def test_order_and_pickup_become_two_steps():
    intents = [
        Intent(IntentType.ORDER, 0.9, {"products": [{"name": "burger", "quantity": 2}]}, priority=1),
        Intent(IntentType.LOGISTICS, 0.9, {"delivery_type": "pickup"}, priority=2),
    ]

    plan = planner.create_plan(intents, ConversationState.GREETING, {})

    assert actions(plan) == [(Capability.SALES, "process_order"), (Capability.LOGISTICS, "set_delivery_type")]
    assert plan[0].parameters["products"] == [{"name": "burger", "quantity": 2}]
    assert plan[1].parameters == {"delivery_type": "pickup"}


def test_checkout_with_empty_cart_is_substituted():
    plan = planner.create_plan(
        [Intent(IntentType.CHECKOUT, 0.9)], ConversationState.BROWSING_MENU, {}, cart_item_count=0
    )

    assert actions(plan) == [(Capability.SALES, "handle_empty_cart")]


def test_checkout_depends_on_every_earlier_step():
    intents = [
        Intent(IntentType.ORDER, 0.9, {"products": [{"name": "cola", "quantity": 1}]}, priority=1),
        Intent(IntentType.PAYMENT, 0.9, {"payment_method": "cash"}, priority=2),
        Intent(IntentType.CHECKOUT, 0.9, priority=3),
    ]

    plan = planner.create_plan(intents, ConversationState.BUILDING_ORDER, {}, cart_item_count=2)

    checkout = plan[-1]
    assert checkout.capability is Capability.CHECKOUT
    assert checkout.dependencies == {plan[0].step_id, plan[1].step_id}


def test_address_without_type_sets_delivery_first():
    plan = planner.create_plan(
        [Intent(IntentType.LOGISTICS, 0.9, {"address": "12 Market Street"})],
        ConversationState.BUILDING_ORDER,
        {},
    )

    assert actions(plan) == [
        (Capability.LOGISTICS, "set_delivery_type"),
        (Capability.LOGISTICS, "set_address"),
    ]
    assert plan[1].dependencies == {plan[0].step_id}


@pytest.mark.parametrize(
    "metadata,cart_count,expected",
    [
        ({}, 0, (Capability.MENU, "greet_and_show_menu")),
        ({"has_greeted": True}, 0, (Capability.MENU, "show_menu")),
        ({"has_greeted": True}, 3, (Capability.SALES, "clarify")),
    ],
)
def test_unclear_fallback_depends_on_context(metadata, cart_count, expected):
    plan = planner.create_plan(
        [unclear_intent()], ConversationState.DISCOVERY, metadata, cart_item_count=cart_count
    )

    assert actions(plan) == [expected]


def test_every_plan_is_a_valid_dag():
    intents = [Intent(kind, 0.8, priority=index) for index, kind in enumerate(IntentType, start=1)]

    plan = planner.create_plan(intents, ConversationState.BUILDING_ORDER, {}, cart_item_count=1)

    assert plan
    validate_plan(plan)
    seen = set()
    for step in plan:
        assert step.dependencies <= seen
        seen.add(step.step_id)


def test_validate_plan_rejects_forward_dependency():
    plan = [
        ExecutionStep("step_1", Capability.MENU, "show_menu", dependencies=frozenset({"step_2"})),
        ExecutionStep("step_2", Capability.SALES, "process_order"),
    ]

    with pytest.raises(PlanValidationError):
        validate_plan(plan)


def test_validate_plan_rejects_duplicate_ids():
    plan = [
        ExecutionStep("step_1", Capability.MENU, "show_menu"),
        ExecutionStep("step_1", Capability.SALES, "process_order"),
    ]

    with pytest.raises(PlanValidationError):
        validate_plan(plan)
