"""lms_agent/engine.py

Inference-engine boundary.

The agent loop talks to an :class:`InferenceEngine`; :class:`OllamaEngine`
is the production implementation backed by ``ollama.AsyncClient``. Ollama
responses are normalised into :class:`EngineReply` here so the loop never
sees client-library types.
"""

from __future__ import annotations

# Standard Library
import logging
from collections.abc import AsyncGenerator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

# Third-Party Libraries
import httpx
from ollama import AsyncClient, ResponseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolInvocationRequest:
    """One tool call emitted by the model. Not yet validated."""

    tool_name: str
    raw_arguments: Any = None

    def as_message_part(self) -> dict[str, Any]:
        """Shape used inside an assistant message's ``tool_calls`` list."""
        arguments = self.raw_arguments
        if isinstance(arguments, Mapping):
            arguments = dict(arguments)
        return {"function": {"name": self.tool_name, "arguments": arguments or {}}}


@dataclass(frozen=True)
class EngineReply:
    """Materialised result of a non-streaming chat request."""

    content: str = ""
    tool_calls: tuple[ToolInvocationRequest, ...] = field(default_factory=tuple)


class InferenceEngine(Protocol):
    """Operations the agent loop needs from a model server."""

    async def chat(
        self,
        *,
        model: str,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
        options: Mapping[str, Any],
    ) -> EngineReply: ...

    def stream_chat(
        self,
        *,
        model: str,
        messages: Sequence[Mapping[str, Any]],
        options: Mapping[str, Any],
    ) -> AsyncGenerator[str, None]: ...

    async def is_model_available(self, model: str) -> bool: ...


def _field(obj: Any, key: str) -> Any:
    """Read ``key`` from an Ollama response object or a plain dict."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def parse_reply(response: Any) -> EngineReply:
    """Normalise an Ollama chat response into an :class:`EngineReply`."""
    message = _field(response, "message")
    content = _field(message, "content") or ""

    calls: list[ToolInvocationRequest] = []
    for call in _field(message, "tool_calls") or []:
        function = _field(call, "function")
        calls.append(
            ToolInvocationRequest(
                tool_name=_field(function, "name") or "",
                raw_arguments=_field(function, "arguments"),
            )
        )
    return EngineReply(content=content, tool_calls=tuple(calls))


class OllamaEngine:
    """:class:`InferenceEngine` backed by a local Ollama server."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        timeout: float | None = None,
        client: AsyncClient | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            host: Ollama API endpoint.
            timeout: Optional per-request timeout in seconds.
            client: Pre-built client, mainly for tests.
        """
        self.host = host
        self.client = client or AsyncClient(host=host, timeout=timeout)

    async def chat(
        self,
        *,
        model: str,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
        options: Mapping[str, Any],
    ) -> EngineReply:
        response = await self.client.chat(
            model=model,
            messages=list(messages),
            tools=list(tools) or None,
            stream=False,
            options=dict(options),
        )
        return parse_reply(response)

    async def stream_chat(
        self,
        *,
        model: str,
        messages: Sequence[Mapping[str, Any]],
        options: Mapping[str, Any],
    ) -> AsyncGenerator[str, None]:
        stream = await self.client.chat(
            model=model,
            messages=list(messages),
            stream=True,
            options=dict(options),
        )
        async for chunk in stream:
            content = _field(_field(chunk, "message"), "content")
            if content:
                yield content

    async def is_model_available(self, model: str) -> bool:
        """Return whether ``model`` (or a tagged variant of it) is pulled locally.

        Connection and API failures count as "not available".
        """
        try:
            response = await self.client.list()
        except (ResponseError, httpx.HTTPError, OSError) as exc:
            logger.error("Ollama availability check failed: %s", exc)
            return False

        for entry in _field(response, "models") or []:
            name = _field(entry, "model") or _field(entry, "name") or ""
            if name == model or name.startswith(model):
                return True
        logger.warning("Model %s not found on %s", model, self.host)
        return False
