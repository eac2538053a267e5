"""lms_agent/agent.py

Two-round tool-calling loop driving one user turn.

Round 1 (decide) sends the transcript and the full tool catalog to the model
without streaming. If the model answers in prose, that answer is replayed to
the caller in small fragments. If it requests tools, each request is looked
up, validated and executed exactly once, strictly in the order emitted; after
every successful execution a second, streamed request (no tools offered)
turns the tool's result into the reply text.

Failures are reported inline as ``Error: ...`` fragments so the client always
receives either content or a marked error, never an empty stream.
"""

from __future__ import annotations

# Standard Library
import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

# Local Modules
from lms_agent.config import AgentSettings
from lms_agent.engine import EngineReply, InferenceEngine, ToolInvocationRequest
from lms_agent.prompts import build_system_prompt
from lms_agent.registry import ToolRegistry
from lms_agent.schema import ValidationFailure

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I apologize, but I couldn't generate a response."


@dataclass(frozen=True)
class ToolInvocationOutcome:
    """What happened to one tool request. Kept per turn, never persisted."""

    tool_name: str
    succeeded: bool
    result_text: str | None = None
    error_text: str | None = None


def compose_messages(
    system_prompt: str,
    history: Sequence[Mapping[str, Any]],
) -> list[dict[str, str]]:
    """Build the outbound transcript: system prompt, then caller history.

    Caller roles are collapsed to ``user`` / ``assistant`` so a client cannot
    inject its own system or tool messages. Non-string content is
    JSON-encoded.
    """
    messages = [{"role": "system", "content": system_prompt}]
    for message in history:
        role = "user" if message.get("role") == "user" else "assistant"
        content = message.get("content")
        if content is None:
            content = ""
        elif not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False)
        messages.append({"role": role, "content": content})
    return messages


class AgentLoop:
    """Stateless driver shared by all requests.

    Args:
        engine: Model server used for both rounds.
        registry: Tools offered in the decide round.
        settings: Model name, sampling options and pacing.
        system_prompt: Overrides the prompt built from the registry.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        registry: ToolRegistry,
        settings: AgentSettings,
        system_prompt: str | None = None,
    ) -> None:
        self.engine = engine
        self.registry = registry
        self.settings = settings
        self.system_prompt = system_prompt or build_system_prompt(registry.names())

    def run(self, history: Sequence[Mapping[str, Any]]) -> AgentRun:
        """Start a turn for ``history``. Nothing is sent until iterated."""
        return AgentRun(self, compose_messages(self.system_prompt, history))


class AgentRun:
    """A single turn's fragment stream. Iterate it exactly once.

    Attributes:
        transcript: Messages sent in the decide round.
        outcomes: One entry per tool request, in execution order.
    """

    def __init__(self, loop: AgentLoop, transcript: list[dict[str, str]]) -> None:
        self._loop = loop
        self.transcript = transcript
        self.outcomes: list[ToolInvocationOutcome] = []
        self._started = False

    def __aiter__(self) -> AsyncGenerator[str, None]:
        if self._started:
            raise RuntimeError("An AgentRun can only be iterated once")
        self._started = True
        return self._fragments()

    async def _fragments(self) -> AsyncGenerator[str, None]:
        settings = self._loop.settings
        try:
            reply = await self._loop.engine.chat(
                model=settings.ollama_model,
                messages=self.transcript,
                tools=self._loop.registry.catalog(),
                options=settings.decide_options(),
            )

            if not reply.tool_calls:
                logger.info("No tool calls, replaying conversational response")
                async with aclosing(self._direct_emit(reply.content)) as fragments:
                    async for fragment in fragments:
                        yield fragment
                return

            logger.info("Tool calls detected: %d", len(reply.tool_calls))
            for request in reply.tool_calls:
                async with aclosing(self._invoke(reply, request)) as fragments:
                    async for fragment in fragments:
                        yield fragment

        except Exception as exc:
            logger.error("Agent turn failed: %s", exc, exc_info=True)
            yield f"\n\nError: {exc}\n\nPlease try again or rephrase your request."

    async def _invoke(
        self,
        reply: EngineReply,
        request: ToolInvocationRequest,
    ) -> AsyncGenerator[str, None]:
        """Execute one tool request and stream its follow-up."""
        name = request.tool_name
        tool = self._loop.registry.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool: %r", name)
            self._record(name, error=f"Function '{name}' not found.")
            yield f"\nError: Function '{name}' not found.\n"
            return

        arguments = self._loop.registry.validate(name, request.raw_arguments)
        if isinstance(arguments, ValidationFailure):
            logger.warning("Rejected arguments for %s: %s", name, arguments.message)
            self._record(name, error=arguments.message)
            yield f"\nError: Invalid arguments for {name}: {arguments.message}\n"
            return

        logger.info("Executing tool %s with args %s", name, arguments)
        try:
            result = await asyncio.to_thread(tool.execute, **arguments)
        except Exception as exc:
            logger.error("Tool %s failed: %s", name, exc, exc_info=True)
            self._record(name, error=str(exc))
            yield f"\nError: {exc}\n"
            return

        logger.info("Tool executed: %s -> %s", name, result[:200])
        self._record(name, result=result)

        follow_up = [
            *self.transcript,
            {
                "role": "assistant",
                "content": reply.content,
                "tool_calls": [call.as_message_part() for call in reply.tool_calls],
            },
            {"role": "tool", "content": result},
        ]
        settings = self._loop.settings
        emitted = False
        stream = self._loop.engine.stream_chat(
            model=settings.ollama_model,
            messages=follow_up,
            options=settings.follow_up_options(),
        )
        async with aclosing(stream) as deltas:
            async for delta in deltas:
                if delta:
                    emitted = True
                    yield delta

        if not emitted:
            # Empty follow-up: the tool result stands in as the reply.
            logger.warning("Empty follow-up for %s, emitting tool result", name)
            yield result

    async def _direct_emit(self, content: str) -> AsyncGenerator[str, None]:
        """Replay an already materialised answer in paced fragments."""
        if not content.strip():
            logger.warning("Empty response from LLM")
            content = FALLBACK_REPLY

        size = self._loop.settings.direct_emit_chunk_size
        delay = self._loop.settings.direct_emit_delay
        for start in range(0, len(content), size):
            if start and delay:
                await asyncio.sleep(delay)
            yield content[start : start + size]

    def _record(self, name: str, *, result: str | None = None, error: str | None = None) -> None:
        self.outcomes.append(
            ToolInvocationOutcome(
                tool_name=name,
                succeeded=error is None,
                result_text=result,
                error_text=error,
            )
        )
