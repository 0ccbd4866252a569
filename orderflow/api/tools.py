"""API routes for individual tool access."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from orderflow.catalog import RestaurantProfile
from orderflow.llm.client import ToolCall
from orderflow.memory.store import ConversationStore
from orderflow.planner.types import Capability
from orderflow.tools.base import ToolContext
from orderflow.tools.executor import ToolExecutor


def create_tools_router(
    executor: ToolExecutor,
    store: ConversationStore,
    restaurant: RestaurantProfile,
) -> APIRouter:
    router = APIRouter(prefix="/tools", tags=["tools"])

    @router.get("")
    async def list_tools() -> list[dict]:
        return [
            {
                "name": spec.name,
                "capability": spec.capability.value,
                "description": spec.description,
                "mutates_cart": spec.mutates_cart,
                "parameters": spec.schema()["function"]["parameters"],
            }
            for spec in executor.registry.values()
        ]

    @router.post("/{tool_name}")
    async def run_tool(tool_name: str, payload: dict) -> dict:
        conversation_id = payload.get("conversation_id")
        if not conversation_id:
            raise HTTPException(status_code=400, detail="conversation_id is required")

        spec = executor.registry.get(tool_name)
        if spec is None:
            raise HTTPException(status_code=404, detail=f"unknown tool {tool_name}")

        capability = spec.capability
        if payload.get("capability"):
            try:
                capability = Capability(str(payload["capability"]).upper())
            except ValueError:
                raise HTTPException(status_code=400, detail="unknown capability") from None

        record = store.get_conversation(str(conversation_id))
        context = ToolContext(
            store=store,
            conversation_id=record.conversation_id,
            capability=capability,
            restaurant=restaurant,
            metadata=record.metadata,
            cart=record.cart,
        )
        result = await executor.run_one(ToolCall(name=tool_name, arguments=payload.get("arguments") or {}), context)
        if result.error_code == "INVALID_ARGUMENTS":
            raise HTTPException(status_code=400, detail=result.message)
        return result.to_dict()

    return router
