"""Tool executor: validates arguments and dispatches tool calls to handlers."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from orderflow.llm.client import ToolCall
from orderflow.memory.models import CartItem
from orderflow.planner.types import Capability

from .base import ToolContext, ToolResult, ToolSpec
from .registry import tools_for

_logger = logging.getLogger("orderflow.tools")


@dataclass(slots=True)
class ToolBatch:
    """Results of one capability's tool calls plus the state they left behind."""

    results: list[ToolResult] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    cart: list[CartItem] = field(default_factory=list)
    metadata_patch: dict[str, Any] = field(default_factory=dict)


class ToolExecutor:
    """Dispatch named tool calls through the static registry.

    Calls run sequentially in the order proposed. Every outcome, including an unknown
    name or a handler crash, comes back as a :class:`ToolResult`; nothing raises.
    """

    def __init__(self, registry: Mapping[str, ToolSpec]) -> None:
        self._registry = dict(registry)

    @property
    def registry(self) -> Mapping[str, ToolSpec]:
        return self._registry

    def tools_for(self, capability: Capability) -> tuple[str, ...]:
        return tools_for(self._registry, capability)

    def schemas_for(self, capability: Capability) -> list[dict[str, Any]]:
        return [self._registry[name].schema() for name in self.tools_for(capability)]

    def supports(self, tool_name: str) -> bool:
        return tool_name in self._registry

    async def execute(self, calls: Iterable[ToolCall], context: ToolContext) -> ToolBatch:
        metadata = dict(context.metadata)
        cart = list(context.cart)
        batch = ToolBatch(metadata=metadata, cart=cart)

        for call in calls:
            current = dataclasses.replace(context, metadata=dict(metadata), cart=list(cart))
            result = await self.run_one(call, current)
            batch.results.append(result)

            for key, value in result.metadata_patch.items():
                batch.metadata_patch[key] = value
                if value is None:
                    metadata.pop(key, None)
                else:
                    metadata[key] = value

            spec = self._registry.get(call.name)
            if spec is not None and spec.mutates_cart and result.success:
                cart = list(context.store.get_conversation(context.conversation_id).cart)

        batch.metadata = metadata
        batch.cart = cart
        return batch

    async def run_one(self, call: ToolCall, context: ToolContext) -> ToolResult:
        spec = self._registry.get(call.name)
        if spec is None:
            _logger.warning("Unknown tool %s requested by %s", call.name, context.capability.value)
            return ToolResult.failure(call.name, "UNKNOWN_TOOL", f"Unknown tool: {call.name}")

        if spec.capability is not context.capability:
            _logger.warning(
                "Capability %s tried to call %s owned by %s",
                context.capability.value,
                call.name,
                spec.capability.value,
            )
            return ToolResult.failure(
                call.name,
                "TOOL_NOT_ALLOWED",
                f"{call.name} is not available here.",
                owner=spec.capability.value,
            )

        try:
            args = spec.args_model.model_validate(call.arguments or {})
        except ValidationError as exc:
            _logger.info("Invalid arguments for %s: %s", call.name, exc.errors())
            return ToolResult.failure(
                call.name,
                "INVALID_ARGUMENTS",
                "Some details for that request were missing or invalid.",
                errors=[error["msg"] for error in exc.errors()],
            )

        try:
            result = await spec.handler(args, context)
        except Exception as exc:  # noqa: BLE001
            _logger.exception("Tool %s failed for conversation %s", call.name, context.conversation_id)
            return ToolResult.failure(call.name, "TOOL_ERROR", "Something went wrong with that request.", error=str(exc))

        _logger.info(
            "Tool %s for %s -> success=%s%s",
            call.name,
            context.conversation_id,
            result.success,
            f" ({result.error_code})" if result.error_code else "",
        )
        return result
