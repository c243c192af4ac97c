"""Tool-Resolution Loop - Bounded Re-invocation Until a Final Answer.

When an agent answers with tool-use blocks, the loop asks the agent's
ToolConfig handler for the tool-result turn, appends both to the working
history and invokes the agent again. It stops at the first response without
tool use.

Cycle accounting with ``max_cycles = N``:
    - the handler runs at most N times
    - the agent is invoked at most N + 1 times
    - a tool-use response on invocation N + 1 raises ToolResolutionExceeded

Streaming agents participate the same way: their chunks are forwarded as
they arrive and the structured message (with any tool-use blocks) is read
from the exhausted AgentStream afterwards.

The loop never writes the conversation store. It accumulates the turn's
exchange (user request, assistant responses, tool results) for the
orchestrator to commit, or to attach to the error when the cap is hit.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime

import logfire
from pydantic import BaseModel, ConfigDict

from .agent import Agent, AgentReply, AgentStream
from .domain_type import RequestStage
from .domain_value import ConversationHistory, ConversationMessage
from .errors import ToolResolutionExceeded
from .trace import RequestTrace

Invoke = Callable[[ConversationHistory, int], Awaitable[AgentReply]]


class ToolLoopResult(BaseModel):
    """Outcome of a resolved turn.

    Attributes:
        exchange: Every message of the turn in order, starting with the request
        message: Final assistant message (no pending tool use)
        cycles: How many tool-result turns were fed back
        trace: Trace including the DISPATCHING and TOOL_RESOLVING records
    """

    exchange: tuple[ConversationMessage, ...]
    message: ConversationMessage
    cycles: int
    trace: RequestTrace

    model_config = ConfigDict(frozen=True)


class ToolResolutionLoop:
    """Drives one agent through a turn, one instance per request.

    Args:
        agent: Selected agent (tool config and id are read from it)
        invoke: ``(working_history, cycle) -> AgentReply``; the orchestrator
            binds text, ids and request context into this callable
        max_cycles: Tool-result turns allowed before giving up
        trace: Trace to continue (RECEIVED/CLASSIFYING already recorded)

    Progress is observable while the loop runs (``stage``, ``stage_start``,
    ``exchange``, ``trace``) so a failure can be attributed to its stage.
    """

    def __init__(
        self,
        agent: Agent,
        invoke: Invoke,
        *,
        max_cycles: int,
        trace: RequestTrace | None = None,
    ) -> None:
        if max_cycles < 0:
            raise ValueError("max_cycles must be >= 0")
        self.agent = agent
        self.invoke = invoke
        self.max_cycles = max_cycles
        self.trace = trace or RequestTrace()
        self.stage = RequestStage.DISPATCHING
        self.stage_start = datetime.now(UTC)
        self.exchange: tuple[ConversationMessage, ...] = ()
        self.cycles = 0
        self.final: ConversationMessage | None = None

    @property
    def result(self) -> ToolLoopResult:
        if self.final is None:
            raise RuntimeError("Tool resolution has not finished")
        return ToolLoopResult(exchange=self.exchange, message=self.final, cycles=self.cycles, trace=self.trace)

    async def resolve(self, history: ConversationHistory, request: ConversationMessage) -> ToolLoopResult:
        """Run the turn to completion, discarding any streamed chunks."""
        async for _ in self.stream(history, request):
            pass
        return self.result

    async def stream(self, history: ConversationHistory, request: ConversationMessage) -> AsyncIterator[str]:
        """Run the turn, yielding text chunks from streaming replies as they arrive.

        ``history`` is the agent's committed history; ``request`` is the
        user's message for this turn.
        """
        tool_config = self.agent.options.tool_config
        working = history.append_message(request)
        self.exchange = (request,)
        self.stage = RequestStage.DISPATCHING
        self.stage_start = datetime.now(UTC)

        while True:
            reply = await self.invoke(working, self.cycles)
            if isinstance(reply, AgentStream):
                try:
                    async for chunk in reply:
                        yield chunk
                finally:
                    if not reply.completed:
                        await reply.aclose()
                message = reply.message
            else:
                message = reply

            self.exchange = (*self.exchange, message)
            working = working.append_message(message)
            detail = ",".join(block.name for block in message.tool_uses) or None
            self.trace = self.trace.record(self.stage, self.stage_start, detail=detail)

            if not message.has_tool_use:
                break
            if tool_config is None:
                logfire.warn("Agent {agent_id} requested tools but declares none", agent_id=self.agent.id)
                break
            if self.cycles >= self.max_cycles:
                raise ToolResolutionExceeded(
                    f"Tool resolution exceeded {self.max_cycles} cycle(s)",
                    max_cycles=self.max_cycles,
                    exchange=self.exchange,
                    agent_id=self.agent.id,
                )

            self.stage = RequestStage.TOOL_RESOLVING
            self.stage_start = datetime.now(UTC)
            tool_result = await tool_config.handler(message, working)
            self.exchange = (*self.exchange, tool_result)
            working = working.append_message(tool_result)
            self.cycles += 1
            logfire.info(
                "Tool cycle {cycle} for {agent_id}",
                cycle=self.cycles,
                agent_id=self.agent.id,
                tools=detail,
            )

        self.final = message


__all__ = ["Invoke", "ToolLoopResult", "ToolResolutionLoop"]
