"""Base classes and types for executable tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Sequence

from pydantic import BaseModel

from orderflow.catalog import RestaurantProfile
from orderflow.memory.models import CartItem
from orderflow.memory.store import ConversationStore
from orderflow.planner.types import Capability

PRICING_KEYS = frozenset(
    {"price", "unit_price", "cart_total", "subtotal", "total", "delivery_fee", "line_total"}
)


@dataclass(slots=True)
class ToolResult:
    """Standard tool result payload."""

    tool_name: str
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    message: str = ""
    error_code: str | None = None
    metadata_patch: dict[str, Any] = field(default_factory=dict)

    @property
    def has_pricing(self) -> bool:
        return _contains_pricing(self.data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "success": self.success,
            "data": self.data,
            "message": self.message,
            "error_code": self.error_code,
            "metadata_patch": self.metadata_patch,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ToolResult":
        return cls(
            tool_name=payload["tool_name"],
            success=bool(payload["success"]),
            data=dict(payload.get("data") or {}),
            message=payload.get("message", ""),
            error_code=payload.get("error_code"),
            metadata_patch=dict(payload.get("metadata_patch") or {}),
        )

    @classmethod
    def failure(cls, tool_name: str, error_code: str, message: str, **data: Any) -> "ToolResult":
        return cls(tool_name=tool_name, success=False, data=data, message=message, error_code=error_code)


@dataclass(slots=True)
class ToolContext:
    """Shared handles provided to a tool invocation."""

    store: ConversationStore
    conversation_id: str
    capability: Capability
    restaurant: RestaurantProfile
    metadata: Mapping[str, Any]
    cart: Sequence[CartItem] = ()
    user_message: str = ""
    extras: Mapping[str, Any] = field(default_factory=dict)


ToolHandler = Callable[[BaseModel, ToolContext], Awaitable[ToolResult]]


class NoArguments(BaseModel):
    """Argument model for tools that take no parameters."""


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Dispatch-table entry: tool name, owning capability, handler and argument model."""

    name: str
    capability: Capability
    handler: ToolHandler
    args_model: type[BaseModel]
    description: str
    mutates_cart: bool = False

    def schema(self) -> dict[str, Any]:
        """OpenAI function-calling schema derived from the argument model."""

        parameters = self.args_model.model_json_schema()
        parameters.pop("title", None)
        parameters.pop("description", None)
        for prop in parameters.get("properties", {}).values():
            prop.pop("title", None)
        parameters.setdefault("properties", {})
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


def _contains_pricing(value: Any) -> bool:
    if isinstance(value, Mapping):
        if any(key in PRICING_KEYS for key in value):
            return True
        return any(_contains_pricing(item) for item in value.values())
    if isinstance(value, (list, tuple)):
        return any(_contains_pricing(item) for item in value)
    return False
