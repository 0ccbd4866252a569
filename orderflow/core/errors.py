"""Domain exceptions and FastAPI exception handlers."""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("orderflow.errors")


class LLMError(RuntimeError):
    """Raised when the language model cannot produce a usable completion."""


class StoreError(RuntimeError):
    """Raised when a persistent-store operation cannot be applied."""


class PlanValidationError(ValueError):
    """Raised when an execution plan is not a valid dependency graph."""


class TurnInProgressError(RuntimeError):
    """Raised when another turn is still running for the same conversation."""

    def __init__(self, conversation_id: str, retry_after: int = 1) -> None:
        super().__init__(f"A turn is already in progress for conversation {conversation_id}")
        self.conversation_id = conversation_id
        self.retry_after = retry_after


async def turn_in_progress_handler(request: Request, exc: TurnInProgressError) -> JSONResponse:
    logger.warning(
        "Rejected concurrent turn on %s for conversation %s", request.url.path, exc.conversation_id
    )
    return JSONResponse(
        status_code=409,
        content={
            "error": "turn_in_progress",
            "message": "Still working on your previous message. Please retry shortly.",
            "retry_after": exc.retry_after,
        },
        headers={"Retry-After": str(exc.retry_after)},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: D401
    """Return a generic JSON error response while logging the exception."""

    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "Something unexpected happened. Please try again later.",
        },
    )
