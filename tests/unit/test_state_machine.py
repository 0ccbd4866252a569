import pytest

from orderflow.memory.models import ConversationState as S
from orderflow.planner.types import Capability
from orderflow.state.handoff import suggest_next_capability
from orderflow.state.machine import (
    TRANSITION_RULES,
    ConversationContext,
    StateTransitionRule,
    evaluate_state_transition,
    sorted_rules,
)
from orderflow.tools.base import ToolResult


def ok(name, **data):
    return ToolResult(tool_name=name, success=True, data=data)


def ctx(state, *, items=0, last=None, results=(), **metadata):
    return ConversationContext(
        current_state=state,
        cart_item_count=items,
        cart_total=items * 5.0,
        has_address=bool(metadata.get("delivery_address") or metadata.get("validated_address")),
        has_payment_method=bool(metadata.get("payment_method")),
        last_capability_called=last,
        tools_executed=[result.tool_name for result in results],
        tool_results=list(results),
        metadata=metadata,
    )


def test_evaluation_is_deterministic():
    context = ctx(S.BUILDING_ORDER, items=2, last=Capability.CHECKOUT)

    assert {evaluate_state_transition(context) for _ in range(5)} == {S.READY_TO_CHECKOUT}


@pytest.mark.parametrize("terminal", [S.ORDER_PLACED, S.ABANDONED])
def test_terminal_states_are_absorbing(terminal):
    context = ctx(terminal, items=3, last=Capability.SALES, results=[ok("add_item_to_order")])

    assert evaluate_state_transition(context) is terminal


def test_first_item_moves_to_building_order():
    context = ctx(S.GREETING, items=2, last=Capability.SALES, results=[ok("add_item_to_order")])

    assert evaluate_state_transition(context) is S.BUILDING_ORDER


def test_order_creation_wins_over_everything():
    context = ctx(S.CONFIRMING_ORDER, last=Capability.CHECKOUT, results=[ok("create_order")], abandoned=True)

    assert evaluate_state_transition(context) is S.ORDER_PLACED


def test_all_details_collected_moves_to_confirmation():
    context = ctx(
        S.COLLECTING_PAYMENT,
        items=1,
        last=Capability.LOGISTICS,
        delivery_type="pickup",
        payment_method="Cash",
    )

    assert evaluate_state_transition(context) is S.CONFIRMING_ORDER


def test_emptying_the_cart_returns_to_menu():
    context = ctx(S.BUILDING_ORDER, items=0, last=Capability.SALES, results=[ok("clear_cart")])

    assert evaluate_state_transition(context) is S.BROWSING_MENU


def test_add_item_heuristic_ranks_above_create_order():
    context = ctx(S.BUILDING_ORDER, items=1, results=[ok("create_order"), ok("add_item_to_order")])

    assert evaluate_state_transition(context, rules=()) is S.BUILDING_ORDER


def test_no_match_keeps_state():
    assert evaluate_state_transition(ctx(S.DISCOVERY)) is S.DISCOVERY


def test_custom_rules_are_sorted_by_priority():
    low = StateTransitionRule("low", frozenset({S.GREETING}), S.DISCOVERY, 1, lambda c: True)
    high = StateTransitionRule("high", frozenset({S.GREETING}), S.ASKING_SUPPORT, 99, lambda c: True)

    assert [rule.name for rule in sorted_rules([low, high])] == ["high", "low"]
    assert evaluate_state_transition(ctx(S.GREETING), rules=[low, high]) is S.ASKING_SUPPORT


def test_builtin_rules_have_unique_names():
    names = [rule.name for rule in TRANSITION_RULES]
    assert len(names) == len(set(names))


def test_context_round_trip():
    original = ctx(
        S.COLLECTING_ADDRESS,
        items=2,
        last=Capability.CHECKOUT,
        results=[ok("check_order_prerequisites", ready=False)],
        delivery_type="delivery",
        delivery_address="12 Market Street",
    )

    assert ConversationContext.from_dict(original.to_dict()) == original


def test_handoff_after_menu_inspection_goes_to_sales():
    context = ctx(S.SELECTING_PRODUCTS, last=Capability.MENU)

    assert suggest_next_capability(S.SELECTING_PRODUCTS, context) is Capability.SALES


def test_handoff_never_repeats_last_capability():
    context = ctx(S.READY_TO_CHECKOUT, items=1, last=Capability.CHECKOUT)

    assert suggest_next_capability(S.READY_TO_CHECKOUT, context, explicit=Capability.CHECKOUT) is None


def test_handoff_stops_on_terminal_state():
    context = ctx(S.ORDER_PLACED, last=Capability.CHECKOUT)

    assert suggest_next_capability(S.ORDER_PLACED, context, explicit=Capability.SALES) is None
