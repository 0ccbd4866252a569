"""Language-model completion clients."""

from __future__ import annotations

import asyncio
import json
import logging
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import httpx

from orderflow.core.errors import LLMError

logger = logging.getLogger("orderflow.llm")


@dataclass(slots=True)
class ToolCall:
    """Structured tool invocation proposed by the model (or by deterministic code)."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str | None = None


@dataclass(slots=True)
class LLMResponse:
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


class LLMClient(ABC):
    """Prompt-in, text-or-tool-calls-out completion service."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[Mapping[str, str]],
        tools: Sequence[Mapping[str, Any]] | None = None,
        *,
        tool_choice: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Return the completion or raise :class:`LLMError`."""

    @property
    def available(self) -> bool:
        return True


class UnavailableLLMClient(LLMClient):
    """Client used when no API key is configured; every call fails fast."""

    async def complete(self, system_prompt, messages, tools=None, *, tool_choice=None, max_tokens=None):
        raise LLMError("language model is not configured")

    @property
    def available(self) -> bool:
        return False


class OpenAIChatClient(LLMClient):
    """OpenAI-compatible ``/chat/completions`` client built on httpx."""

    # One cap per event loop, shared by every client instance.
    _semaphores: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = weakref.WeakKeyDictionary()

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 15.0,
        max_concurrency: int = 4,
        referer: str | None = None,
        title: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._timeout = timeout
        self._max_concurrency = max_concurrency
        self._referer = referer
        self._title = title
        self._transport = transport

    def _get_semaphore(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        semaphore = OpenAIChatClient._semaphores.get(loop)
        if semaphore is None:
            semaphore = OpenAIChatClient._semaphores[loop] = asyncio.Semaphore(self._max_concurrency)
        return semaphore

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if self._title:
            headers["X-Title"] = self._title
        return headers

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[Mapping[str, str]],
        tools: Sequence[Mapping[str, Any]] | None = None,
        *,
        tool_choice: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
        }
        if tools:
            payload["tools"] = list(tools)
            if tool_choice:
                payload["tool_choice"] = {"type": "function", "function": {"name": tool_choice}}
        if max_tokens:
            payload["max_tokens"] = max_tokens

        try:
            async with self._get_semaphore():
                data = await asyncio.wait_for(self._post(payload), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Chat completion timed out after %.1fs", self._timeout)
            raise LLMError("language model timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("Chat completion request failed: %s", exc)
            raise LLMError(str(exc)) from exc
        except ValueError as exc:
            raise LLMError("completion response is not valid JSON") from exc

        return parse_completion(data)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(self._url, headers=self._headers(), json=payload)
            response.raise_for_status()
            return response.json()


def parse_completion(data: Mapping[str, Any]) -> LLMResponse:
    """Convert a chat-completions payload into an :class:`LLMResponse`."""

    try:
        message = data["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMError("completion payload has no message") from exc

    calls: list[ToolCall] = []
    for raw in message.get("tool_calls") or []:
        function = raw.get("function") or {}
        arguments = function.get("arguments") or "{}"
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError as exc:
                raise LLMError(f"malformed arguments for tool {function.get('name')}") from exc
        if not isinstance(arguments, dict):
            raise LLMError(f"arguments for tool {function.get('name')} are not an object")
        calls.append(ToolCall(name=function.get("name", ""), arguments=arguments, call_id=raw.get("id")))

    return LLMResponse(text=(message.get("content") or "").strip(), tool_calls=calls)
