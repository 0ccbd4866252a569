import asyncio
from types import SimpleNamespace

import pytest

from orderflow.core.errors import LLMError
from orderflow.llm.client import LLMResponse, UnavailableLLMClient
from orderflow.memory.models import ConversationState
from orderflow.response.combiner import DEFAULT_REPLY, combine, create_execution_summary
from orderflow.response.humanizer import EMPTY_REPLY, Humanizer, scrub_internal_labels
from orderflow.response.validator import ResponseValidator, safe_reply
from orderflow.tools.base import ToolResult

validator = ResponseValidator(max_length=120, max_upsell_attempts=2)


def codes(issues):
    return [issue.code for issue in issues]


def test_customer_phrasing_is_role_confusion():
    report = validator.validate("I'll have the pizza", ConversationState.BUILDING_ORDER, [], {})

    assert not report.valid
    assert codes(report.errors) == ["role_confusion"]


def test_upsell_after_limit_is_an_error():
    text = "Would you like to add some fries?"

    within = validator.validate(text, ConversationState.BUILDING_ORDER, [], {"upsell_attempts": 2})
    beyond = validator.validate(text, ConversationState.BUILDING_ORDER, [], {"upsell_attempts": 3})

    assert within.valid
    assert codes(beyond.errors) == ["upsell_limit"]


def test_price_without_tool_data_is_a_warning():
    priced = ToolResult(tool_name="add_item_to_order", success=True, data={"cart_total": 17.0})

    unverified = validator.validate("That's $17.00 in total.", ConversationState.BUILDING_ORDER, [], {})
    verified = validator.validate("That's $17.00 in total.", ConversationState.BUILDING_ORDER, [priced], {})

    assert "unverified_price" in codes(unverified.warnings)
    assert unverified.valid
    assert "unverified_price" not in codes(verified.warnings)


def test_state_expectations_and_length_are_warnings():
    report = validator.validate("Sure thing! " * 12, ConversationState.COLLECTING_PAYMENT, [], {})

    assert report.valid
    assert codes(report.warnings) == ["state_expectation", "too_long"]


def test_repeated_address_request_is_flagged():
    report = validator.validate(
        "What's the delivery address?",
        ConversationState.COLLECTING_ADDRESS,
        [],
        {"validated_address": "12 Market Street"},
    )

    assert "repeated_request" in codes(report.warnings)


def test_safe_reply_is_state_aware():
    assert "address" in safe_reply(ConversationState.COLLECTING_ADDRESS)
    assert safe_reply(ConversationState.DISCOVERY)


@pytest.mark.parametrize("state", list(ConversationState))
def test_safe_reply_passes_validation_for_its_state(state):
    report = validator.validate(safe_reply(state), state, [], {})

    assert report.errors == []
    assert "state_expectation" not in codes(report.warnings)


def step(output, *tools):
    return SimpleNamespace(output=output, tool_results=list(tools))


def test_combine_passes_single_output_through():
    assert combine([step("Hello!"), step("")]).text == "Hello!"


def test_combine_joins_with_blank_line_and_defaults():
    assert combine([step("One."), step("Two.")]).text == "One.\n\nTwo."
    assert combine([]).text == DEFAULT_REPLY


def test_execution_summary():
    results = [
        ToolResult("add_item_to_order", True, {"product_name": "Cola"}),
        ToolResult("set_delivery_type", True, {"delivery_type": "pickup"}),
        ToolResult("add_item_to_order", False, {}),
        ToolResult("create_order", True, {"order_id": "AB12CD34"}),
    ]

    assert create_execution_summary(results) == "Cola added | delivery: pickup | order AB12CD34 placed"
    assert create_execution_summary([]) == "processed"


def test_scrub_removes_internal_labels():
    assert scrub_internal_labels("SALES: Added 2x Cola (building_order).") == "Added 2x Cola."
    assert scrub_internal_labels("[MENU] Here's the menu.\nCHECKOUT:\tAll set!") == "Here's the menu.\nAll set!"
    assert scrub_internal_labels("Now in BUILDING_ORDER, anything else?") == "Now in, anything else?"
    assert scrub_internal_labels("CHECKOUT") == EMPTY_REPLY


def test_scrub_keeps_labels_used_as_plain_words():
    text = "See our MENU for today's SUPPORT hours. GREETING cards are on the counter."

    assert scrub_internal_labels(text) == text


def test_humanizer_falls_back_to_raw_content():
    humanizer = Humanizer(UnavailableLLMClient())
    tools = [ToolResult("send_menu_link", True, message="Here's our menu.")]

    assert asyncio.run(humanizer.humanize("", tools)) == "Here's our menu."
    assert asyncio.run(humanizer.rewrite("draft", tools, [], ["bad"])) is None


def test_humanizer_rewrite_sends_problems(fake_llm):
    llm = fake_llm(LLMResponse(text="Great choice! Your pizza is in the cart."), LLMError("down"))
    humanizer = Humanizer(llm)

    rewritten = asyncio.run(humanizer.rewrite("I'll have the pizza", [], [], ["speaks as the customer"]))

    assert rewritten == "Great choice! Your pizza is in the cart."
    assert "speaks as the customer" in llm.calls[0]["system_prompt"]
    assert asyncio.run(humanizer.humanize("Fallback draft.", [])) == "Fallback draft."
