"""Merge step outputs into one reply and summarise what the tools did."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from orderflow.tools.base import ToolResult

DEFAULT_REPLY = "All set! Anything else I can help you with?"


@dataclass(slots=True)
class CombinedResponse:
    text: str
    tool_results: list[ToolResult] = field(default_factory=list)
    summary: str = "processed"


def combine(step_results: Sequence) -> CombinedResponse:
    """Join non-empty step outputs with a blank line.

    ``step_results`` are :class:`orderflow.planner.executor.StepResult` objects (anything with
    ``output`` and ``tool_results`` attributes).
    """

    outputs = [result.output.strip() for result in step_results if result.output and result.output.strip()]
    tool_results = [tool for result in step_results for tool in result.tool_results]

    if not outputs:
        text = DEFAULT_REPLY
    elif len(outputs) == 1:
        text = outputs[0]
    else:
        text = "\n\n".join(outputs)

    return CombinedResponse(text=text, tool_results=tool_results, summary=create_execution_summary(tool_results))


def create_execution_summary(tool_results: Iterable[ToolResult]) -> str:
    parts: list[str] = []
    for result in tool_results:
        if not result.success:
            continue
        data = result.data
        name = result.tool_name
        if name == "add_item_to_order":
            parts.append(f"{data.get('product_name', 'item')} added")
        elif name == "remove_item_from_order":
            parts.append(f"{data.get('product_name', 'item')} removed")
        elif name == "clear_cart":
            parts.append("cart cleared")
        elif name == "set_delivery_type":
            parts.append(f"delivery: {data.get('delivery_type')}")
        elif name == "set_address":
            parts.append("address set")
        elif name == "validate_delivery_address" and data.get("valid"):
            parts.append("address validated")
        elif name == "set_payment_method":
            parts.append(f"payment: {data.get('payment_method')}")
        elif name == "create_order":
            parts.append(f"order {data.get('order_id')} placed")
    return " | ".join(parts) or "processed"
