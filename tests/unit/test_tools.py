import asyncio

import pytest

from orderflow.llm.client import ToolCall
from orderflow.planner.types import Capability
from orderflow.tools.base import ToolContext


def context(store, restaurant, capability, conversation_id="conv-1"):
    record = store.get_conversation(conversation_id)
    return ToolContext(
        store=store,
        conversation_id=conversation_id,
        capability=capability,
        restaurant=restaurant,
        metadata=record.metadata,
        cart=record.cart,
    )


def run(executor, ctx, *calls):
    return asyncio.run(executor.execute(list(calls), ctx))


def test_registry_sets_are_disjoint(tool_executor):
    owners = {}
    for capability in Capability:
        for name in tool_executor.tools_for(capability):
            assert name not in owners
            owners[name] = capability

    assert owners["add_item_to_order"] is Capability.SALES
    assert owners["create_order"] is Capability.CHECKOUT
    assert owners["get_restaurant_info"] is Capability.SUPPORT


def test_add_item_twice_keeps_one_line(tool_executor, memory_store, restaurant):
    call = ToolCall("add_item_to_order", {"product_name": "Classic Burger", "quantity": 2})

    batch = run(tool_executor, context(memory_store, restaurant, Capability.SALES), call, call)

    assert [result.success for result in batch.results] == [True, True]
    assert batch.results[1].data["was_updated"] is True
    assert batch.results[1].data["cart_total"] == pytest.approx(17.0)
    assert [(item.product_name, item.quantity) for item in batch.cart] == [("Classic Burger", 2)]


def test_add_item_uses_menu_price_and_reports_unknown_products(tool_executor, memory_store, restaurant):
    batch = run(
        tool_executor,
        context(memory_store, restaurant, Capability.SALES),
        ToolCall("add_item_to_order", {"product_name": "cola", "quantity": 3}),
        ToolCall("add_item_to_order", {"product_name": "sushi"}),
    )

    added, missing = batch.results
    assert added.data["unit_price"] == 2.5
    assert added.data["cart_total"] == pytest.approx(7.5)
    assert missing.success is False
    assert missing.error_code == "PRODUCT_NOT_FOUND"


def test_unknown_tool_fails_structurally(tool_executor, memory_store, restaurant):
    batch = run(tool_executor, context(memory_store, restaurant, Capability.SALES), ToolCall("launch_rocket"))

    assert batch.results[0].success is False
    assert batch.results[0].error_code == "UNKNOWN_TOOL"


def test_cross_capability_call_is_rejected(tool_executor, memory_store, restaurant):
    batch = run(
        tool_executor,
        context(memory_store, restaurant, Capability.MENU),
        ToolCall("add_item_to_order", {"product_name": "Cola"}),
    )

    assert batch.results[0].error_code == "TOOL_NOT_ALLOWED"
    assert memory_store.get_conversation("conv-1").cart == []


def test_invalid_arguments_fail_structurally(tool_executor, memory_store, restaurant):
    batch = run(
        tool_executor,
        context(memory_store, restaurant, Capability.SALES),
        ToolCall("add_item_to_order", {"product_name": "Cola", "quantity": 0}),
    )

    assert batch.results[0].error_code == "INVALID_ARGUMENTS"


def test_update_quantity_to_zero_removes_line(tool_executor, memory_store, restaurant):
    ctx = context(memory_store, restaurant, Capability.SALES)
    batch = run(
        tool_executor,
        ctx,
        ToolCall("add_item_to_order", {"product_name": "Lemonade", "quantity": 2}),
        ToolCall("update_item_quantity", {"product_name": "Lemonade", "new_quantity": 0}),
    )

    assert [result.success for result in batch.results] == [True, True]
    assert batch.cart == []


def test_cart_changes_accept_the_same_names_as_adding(tool_executor, memory_store, restaurant):
    batch = run(
        tool_executor,
        context(memory_store, restaurant, Capability.SALES),
        ToolCall("add_item_to_order", {"product_name": "burger", "quantity": 2}),
        ToolCall("update_item_quantity", {"product_name": "burgers", "new_quantity": 3}),
    )

    assert [result.success for result in batch.results] == [True, True]
    assert batch.results[1].data["product_name"] == "Classic Burger"
    assert [(item.product_name, item.quantity) for item in batch.cart] == [("Classic Burger", 3)]

    removed = run(
        tool_executor,
        context(memory_store, restaurant, Capability.SALES),
        ToolCall("remove_item_from_order", {"product_name": "hamburger"}),
    )

    assert removed.results[0].success is True
    assert removed.cart == []


def test_product_modifiers_are_listed_by_type(tool_executor, memory_store, restaurant):
    batch = run(
        tool_executor,
        context(memory_store, restaurant, Capability.SALES),
        ToolCall("get_product_modifiers", {"product_name": "cola"}),
        ToolCall("get_product_modifiers", {"product_name": "brownie"}),
    )

    cola, brownie = batch.results
    assert cola.success is True
    assert cola.data["modifiers"] == {
        "size": [{"name": "Large", "price": 2.0}],
        "preferences": [{"name": "No Ice", "price": 0.0}],
    }
    assert "Large (+$2.00)" in cola.message
    assert brownie.data["total_count"] == 0
    assert batch.cart == []


def test_modifier_prices_are_folded_into_unit_price(tool_executor, memory_store, restaurant):
    batch = run(
        tool_executor,
        context(memory_store, restaurant, Capability.SALES),
        ToolCall(
            "add_item_to_order",
            {"product_name": "Classic Burger", "quantity": 2, "modifiers": ["extra cheese", "bacon"]},
        ),
        ToolCall("add_item_to_order", {"product_name": "Cola", "modifiers": ["stuffed crust"]}),
    )

    burger, cola = batch.results
    assert burger.data["unit_price"] == pytest.approx(11.0)
    assert burger.data["cart_total"] == pytest.approx(22.0)
    assert "with Extra Cheese, Extra Bacon" in burger.message
    assert cola.error_code == "MODIFIER_NOT_AVAILABLE"
    assert [(item.quantity, item.unit_price, item.notes) for item in batch.cart] == [
        (2, 11.0, "Extra Cheese, Extra Bacon")
    ]


def test_upsell_stops_at_limit(tool_executor, memory_store, restaurant):
    run(
        tool_executor,
        context(memory_store, restaurant, Capability.SALES),
        ToolCall("add_item_to_order", {"product_name": "Classic Burger"}),
    )

    batch = run(
        tool_executor,
        context(memory_store, restaurant, Capability.SALES),
        ToolCall("suggest_upsell"),
        ToolCall("suggest_upsell"),
        ToolCall("suggest_upsell"),
    )

    assert [result.success for result in batch.results] == [True, True, False]
    assert batch.results[2].error_code == "UPSELL_LIMIT_REACHED"
    assert memory_store.get_conversation("conv-1").metadata["upsell_attempts"] == 2


def test_address_validation_outside_zone(tool_executor, memory_store, restaurant):
    batch = run(
        tool_executor,
        context(memory_store, restaurant, Capability.CHECKOUT),
        ToolCall("validate_delivery_address", {"address": "1 Mountain Road, Hilltop"}),
    )

    assert batch.results[0].success is False
    assert batch.results[0].error_code == "INVALID_ADDRESS"


def test_create_order_requires_prerequisites(tool_executor, memory_store, restaurant):
    run(
        tool_executor,
        context(memory_store, restaurant, Capability.SALES),
        ToolCall("add_item_to_order", {"product_name": "Pepperoni Pizza"}),
    )

    missing = run(
        tool_executor,
        context(memory_store, restaurant, Capability.CHECKOUT),
        ToolCall("create_order", {"confirmed_by_customer": True}),
    )
    assert missing.results[0].error_code == "PREREQUISITES_MISSING"

    run(
        tool_executor,
        context(memory_store, restaurant, Capability.LOGISTICS),
        ToolCall("set_delivery_type", {"delivery_type": "pickup"}),
        ToolCall("set_payment_method", {"payment_method": "cash"}),
    )
    placed = run(
        tool_executor,
        context(memory_store, restaurant, Capability.CHECKOUT),
        ToolCall("create_order", {"confirmed_by_customer": True}),
    )

    result = placed.results[0]
    assert result.success is True
    assert result.data["total"] == pytest.approx(13.5)
    assert placed.cart == []
    assert memory_store.get_conversation("conv-1").metadata["order"]["order_id"] == result.data["order_id"]
