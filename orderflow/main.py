"""FastAPI application entry point for the Orderflow ordering assistant."""

import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from orderflow.agent.loop import AgentLoop
from orderflow.api.tools import create_tools_router
from orderflow.capabilities.router import build_capability_router
from orderflow.catalog import load_restaurant_profile
from orderflow.core.concurrency import ConversationLocks
from orderflow.core.config import get_settings
from orderflow.core.errors import TurnInProgressError, turn_in_progress_handler, unhandled_exception_handler
from orderflow.core.logging import configure_logging, request_id_middleware
from orderflow.core.metrics import MetricsCollector
from orderflow.llm.client import LLMClient, OpenAIChatClient, UnavailableLLMClient
from orderflow.memory.store import ConversationStore, SQLiteConversationStore
from orderflow.orchestrator import InboundTurn, TurnOrchestrator
from orderflow.planner.base import IntentClassifier
from orderflow.planner.classifier import LLMIntentClassifier
from orderflow.planner.execution import ExecutionPlanner
from orderflow.planner.executor import PlanExecutor
from orderflow.planner.simple import KeywordIntentClassifier
from orderflow.response.humanizer import Humanizer
from orderflow.response.validator import ResponseValidator
from orderflow.tools.address import AddressValidator, HttpAddressValidator, ZoneAddressValidator
from orderflow.tools.executor import ToolExecutor
from orderflow.tools.registry import build_tool_registry

settings = get_settings()
logger = logging.getLogger("orderflow.app")

memory_store = SQLiteConversationStore(settings.sqlite_path)
restaurant = load_restaurant_profile(settings.restaurant_profile_path)

llm: LLMClient
if settings.llm_enabled:
    llm = OpenAIChatClient(
        settings.openai_api_key or "",
        model=settings.llm_model,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout_seconds,
        max_concurrency=settings.llm_max_concurrency,
        referer=settings.openrouter_referer,
        title=settings.openrouter_title,
    )
else:
    llm = UnavailableLLMClient()

classifier: IntentClassifier = (
    LLMIntentClassifier(llm, history_window=settings.history_window)
    if settings.llm_enabled
    else KeywordIntentClassifier(restaurant)
)
address_validator: AddressValidator = (
    HttpAddressValidator(str(settings.address_validation_url), timeout=settings.llm_timeout_seconds)
    if settings.address_validation_url
    else ZoneAddressValidator(restaurant)
)
tool_executor = ToolExecutor(
    build_tool_registry(address_validator, max_upsell_attempts=settings.max_upsell_attempts)
)
capability_router = build_capability_router(llm, tool_executor)
humanizer = Humanizer(llm)
metrics = MetricsCollector()

orchestrator = TurnOrchestrator(
    store=memory_store,
    classifier=classifier,
    planner=ExecutionPlanner(),
    executor=PlanExecutor(
        capability_router,
        tool_executor,
        memory_store,
        restaurant,
        parallel_read_only=settings.parallel_read_only_steps,
    ),
    agent_loop=AgentLoop(
        capability_router,
        tool_executor,
        humanizer,
        memory_store,
        restaurant,
        max_iterations=settings.agent_max_iterations,
    ),
    validator=ResponseValidator(
        max_length=settings.max_response_chars,
        max_upsell_attempts=settings.max_upsell_attempts,
    ),
    humanizer=humanizer,
    locks=ConversationLocks(settings.turn_lock_timeout_seconds),
    metrics=metrics,
    mode=settings.orchestration_mode,
    history_window=settings.history_window,
)

app = FastAPI(title=settings.app_name, version="0.1.0", docs_url="/docs")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(request_id_middleware)

app.include_router(create_tools_router(tool_executor, memory_store, restaurant))


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Return basic service status for monitoring."""

    return {"status": "ok"}


@app.get("/ready", tags=["health"])
async def readiness_probe() -> dict[str, Any]:
    """Readiness endpoint that verifies critical dependencies.

    Checks:
    - Conversations SQLite DB reachable.
    - Restaurant profile loaded with a non-empty menu.
    - Language model configured (optional; rule-based fallbacks cover its absence).
    """

    components: dict[str, dict[str, Any]] = {}

    store_ok = False
    store_error: str | None = None
    try:
        list(memory_store.iter_conversations())
        store_ok = True
    except Exception as exc:  # noqa: BLE001
        store_error = str(exc)
    components["conversations_db"] = {
        "path": str(settings.sqlite_path),
        "ok": store_ok,
        **({"error": store_error} if store_error else {}),
    }

    components["restaurant_profile"] = {
        "path": str(settings.restaurant_profile_path),
        "ok": bool(restaurant.products),
        "products": len(restaurant.products),
    }
    components["llm"] = {
        "ok": llm.available,
        "model": settings.llm_model if llm.available else None,
        "classifier": classifier.describe(),
    }

    if not store_ok or not restaurant.products:
        overall = "fail"
    elif not llm.available:
        overall = "degraded"
    else:
        overall = "ok"

    return {
        "status": overall,
        "environment": settings.environment,
        "mode": settings.orchestration_mode,
        "components": components,
    }


def get_memory_store() -> ConversationStore:
    """Dependency injector for the conversation store."""

    return memory_store


@app.get("/conversations", tags=["conversations"])
async def list_conversations(store: ConversationStore = Depends(get_memory_store)) -> list[str]:
    """List known conversation identifiers (development helper)."""

    return list(store.iter_conversations())


@app.get("/conversations/{conversation_id}", tags=["conversations"])
async def get_conversation(
    conversation_id: str, store: ConversationStore = Depends(get_memory_store)
) -> dict[str, Any]:
    if conversation_id not in store.iter_conversations():
        raise HTTPException(status_code=404, detail="conversation not found")

    record = store.get_conversation(conversation_id)
    history = store.get_recent_history(conversation_id, settings.history_window)
    return {
        "conversation_id": conversation_id,
        "state": record.state.value,
        "metadata": record.metadata,
        "cart": [item.to_dict() for item in record.cart],
        "cart_total": record.cart_total,
        "items_count": record.cart_item_count,
        "history": [
            {"role": turn.role, "content": turn.content, "created_at": turn.created_at.isoformat()}
            for turn in history
        ],
    }


@app.delete("/conversations/{conversation_id}", tags=["conversations"])
async def delete_conversation(
    conversation_id: str, store: ConversationStore = Depends(get_memory_store)
) -> dict[str, str]:
    store.reset(conversation_id)
    return {"conversation_id": conversation_id, "status": "deleted"}


@app.post("/chat", tags=["chat"])
async def chat(message: dict) -> dict:
    """Primary chat endpoint: classify, plan, execute and validate one customer turn."""

    conversation_id = message.get("conversation_id")
    content = message.get("content")

    if not conversation_id or not content:
        raise HTTPException(status_code=400, detail="conversation_id and content are required")

    result = await orchestrator.handle_turn(
        InboundTurn(conversation_id=str(conversation_id), customer_message=str(content))
    )

    return {
        "conversation_id": result.conversation_id,
        "message": result.message,
        "state": result.state.value,
        "previous_state": result.previous_state.value,
        "intents": [intent.to_dict() for intent in result.intents],
        "capabilities": result.capabilities,
        "summary": result.summary,
        "tool_success": result.tool_success,
        "validation": result.validation,
    }


@app.on_event("startup")
async def startup_logging() -> None:
    level = configure_logging(settings.log_level)
    logger.info(
        "Logging configured at %s level for %s environment (mode=%s, llm=%s)",
        logging.getLevelName(level),
        settings.environment,
        settings.orchestration_mode,
        "on" if llm.available else "off",
    )


app.add_exception_handler(TurnInProgressError, turn_in_progress_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


@app.get("/metrics", tags=["metrics"])
async def metrics_endpoint() -> dict:
    snapshot = metrics.snapshot()
    return {
        "total_turns": snapshot.total_turns,
        "intents": snapshot.intents,
        "capabilities": snapshot.capabilities,
        "tool_calls": snapshot.tool_calls,
        "tool_failures": snapshot.tool_failures,
        "validation_errors": snapshot.validation_errors,
        "exit_reasons": snapshot.exit_reasons,
    }
