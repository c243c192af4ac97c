"""Orchestrator - Classify, Dispatch, Resolve Tools, Commit.

The orchestrator is the only writer of conversation history. Each request
walks the state machine

    RECEIVED → CLASSIFYING → DISPATCHING → TOOL_RESOLVING* → COMMITTING → COMPLETE

with ERROR reachable from every step. The user's message and everything the
agent produces are built on a working copy of the agent's history and saved
in one write at COMMITTING, so a failed or cancelled turn leaves committed
history exactly as it was.

Concurrency:
    - A per-session lock (user, session) is held from RECEIVED to COMMITTING,
      so turns of one session commit in call order and the session's
      most-recently-used agent pointer never races
    - Different sessions never share a lock
    - Streaming turns keep the lock until the stream is exhausted or closed

Example:
    >>> orchestrator = Orchestrator(KeywordClassifier({"tech": ["python"]}))
    >>> orchestrator.add_agent(tech_agent)
    >>> result = await orchestrator.route_request("How do I install python?", "u1", "s1")
    >>> result.metadata.agent_id
    'tech'
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator, Callable, Hashable, Sequence
from contextlib import aclosing, asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal, overload

import logfire
from pydantic import BaseModel, ConfigDict, Field

from .agent import Agent, AgentReply, RequestContext
from .classifier import Classifier, ClassifierResult
from .conversation_store import ConversationStore, InMemoryConversationStore
from .domain_type import RequestStage
from .domain_value import ConversationHistory, ConversationMessage, SessionKey
from .errors import (
    AgentInvocationFailed,
    AgentNotFound,
    DuplicateAgentId,
    InvalidInput,
    LowConfidenceSelection,
    NoAgentsRegistered,
    SwitchboardError,
)
from .prompt import PromptTemplate, TemplateValue
from .tool_loop import Invoke, ToolResolutionLoop
from .trace import RequestTrace

if TYPE_CHECKING:
    from ..config import Settings


class KeyedLocks:
    """Registry of asyncio locks created on demand and dropped when idle.

    A lock lives only while someone holds it or waits for it, so the
    registry never grows with the number of sessions ever seen. Waiters are
    woken in FIFO order.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    async def acquire(self, key: Hashable) -> None:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._forget(key)
            raise

    def release(self, key: Hashable) -> None:
        self._locks[key].release()
        self._forget(key)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        await self.acquire(key)
        try:
            yield
        finally:
            self.release(key)

    def _forget(self, key: Hashable) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]


class OrchestratorConfig(BaseModel):
    """Routing policy.

    Attributes:
        confidence_threshold: Selections below this go to the default agent
        default_agent_id: Explicit default agent
        use_first_agent_as_default: Without an explicit default, the first
            registered agent is the default. Disable to surface
            LowConfidenceSelection instead
        max_tool_cycles: Tool-result turns allowed per request
        max_history_messages: Per-key history window (None keeps everything)
        invocation_timeout_seconds: Bound on each agent call (None waits forever)
    """

    confidence_threshold: float = Field(default=0.0, ge=0.0, le=1.0)
    default_agent_id: str | None = None
    use_first_agent_as_default: bool = True
    max_tool_cycles: int = Field(default=20, ge=0)
    max_history_messages: int | None = Field(default=200, ge=1)
    invocation_timeout_seconds: float | None = Field(default=None, gt=0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorConfig:
        return cls(
            confidence_threshold=settings.confidence_threshold,
            default_agent_id=settings.default_agent_id,
            use_first_agent_as_default=settings.use_first_agent_as_default,
            max_tool_cycles=settings.max_tool_cycles,
            max_history_messages=settings.max_history_messages,
            invocation_timeout_seconds=settings.agent_timeout_seconds,
        )


class RouteMetadata(BaseModel):
    """Who answered and why.

    Attributes:
        agent_id: Agent that handled the turn
        confidence: Classifier confidence for its own pick
        classified_agent_id: Classifier's raw pick (differs from agent_id when overridden)
        overridden: Low confidence sent the turn to the default agent
        reasoning: Classifier explanation, if any
    """

    user_id: str
    session_id: str
    agent_id: str
    agent_name: str
    confidence: float
    user_input: str
    classified_agent_id: str | None = None
    overridden: bool = False
    reasoning: str | None = None

    model_config = ConfigDict(frozen=True)


class RouteResult(BaseModel):
    """Completed, committed turn."""

    metadata: RouteMetadata
    message: ConversationMessage
    exchange: tuple[ConversationMessage, ...]
    trace: RequestTrace

    model_config = ConfigDict(frozen=True)

    @property
    def text(self) -> str:
        return self.message.text


class RouteStream:
    """Live turn: iterate for text chunks, then read ``result``.

    The session stays locked until the stream is exhausted or closed. Use it
    as an async context manager (or call aclose()) so an abandoned stream
    releases the session and discards partial text. A stream dropped without
    either releases the session when it is garbage collected.

    Example:
        >>> async with await orchestrator.route_request("hi", "u1", "s1", stream=True) as stream:
        ...     async for chunk in stream:
        ...         print(chunk, end="")
        >>> stream.result.metadata.agent_id
    """

    def __init__(
        self,
        metadata: RouteMetadata,
        source: AsyncIterator[str | RouteResult],
        release: Callable[[], None],
    ) -> None:
        self.metadata = metadata
        self._source = source
        # A stream dropped before its first iteration never runs the source's finally
        self._release = weakref.finalize(self, release)
        self._chunks: list[str] = []
        self._result: RouteResult | None = None

    def __aiter__(self) -> RouteStream:
        return self

    async def __anext__(self) -> str:
        while True:
            item = await self._source.__anext__()
            if isinstance(item, RouteResult):
                self._result = item
                continue
            self._chunks.append(item)
            return item

    async def __aenter__(self) -> RouteStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def text(self) -> str:
        """Text forwarded so far."""
        return "".join(self._chunks)

    @property
    def completed(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> RouteResult:
        if self._result is None:
            raise RuntimeError("Stream has not completed")
        return self._result

    async def aclose(self) -> None:
        """Stop the turn: cancel the backend stream, commit nothing, unlock the session."""
        try:
            await self._source.aclose()  # type: ignore[attr-defined]
        finally:
            self._release()
            if self._result is None:
                self._chunks.clear()


class _Turn:
    """Working state of one request; never shared between requests."""

    def __init__(self, input_text: str, user_id: str, session_id: str, params: dict[str, str]) -> None:
        self.input_text = input_text
        self.user_id = user_id
        self.session_id = session_id
        self.params = params
        self.trace = RequestTrace()
        self.stage = RequestStage.RECEIVED
        self.stage_start = datetime.now(UTC)
        self.agent: Agent | None = None
        self.history = ConversationHistory()
        self.context = RequestContext()

    def advance(self, stage: RequestStage, detail: str | None = None) -> None:
        """Record the current stage as done and start ``stage``."""
        self.trace = self.trace.record(self.stage, self.stage_start, detail=detail)
        self.stage = stage
        self.stage_start = datetime.now(UTC)

    def log_attributes(self) -> dict[str, Any]:
        attrs = {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "agent_id": self.agent.id if self.agent else None,
            **self.trace.to_logfire_attributes().root,
        }
        return {k: v for k, v in attrs.items() if v is not None}


class Orchestrator:
    """Top-level coordinator owning the agent registry and the conversation store.

    Args:
        classifier: Agent selection strategy
        store: History persistence (in-memory by default)
        config: Routing policy
        agents: Agents to register in order (the first one is the conventional default)
    """

    def __init__(
        self,
        classifier: Classifier,
        store: ConversationStore | None = None,
        config: OrchestratorConfig | None = None,
        agents: Sequence[Agent] = (),
    ) -> None:
        self.classifier = classifier
        self.store = store or InMemoryConversationStore()
        self.config = config or OrchestratorConfig()
        self._agents: dict[str, Agent] = {}
        self._locks = KeyedLocks()
        for agent in agents:
            self.add_agent(agent)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @property
    def agents(self) -> tuple[Agent, ...]:
        """Registered agents in registration order."""
        return tuple(self._agents.values())

    def get_agent(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFound(f"Agent '{agent_id}' is not registered", agent_id=agent_id)
        return agent

    def add_agent(self, agent: Agent) -> None:
        """Register ``agent``; ids are unique.

        The registry dict is replaced, never mutated, so a request iterating
        the previous registry is unaffected.
        """
        if agent.id in self._agents:
            raise DuplicateAgentId(f"Agent '{agent.id}' is already registered", agent_id=agent.id)
        self._agents = {**self._agents, agent.id: agent}
        logfire.info("Registered agent {agent_id}", agent_id=agent.id, agent_name=agent.name)

    def set_system_prompt(
        self,
        agent_id: str,
        template: str | None = None,
        variables: dict[str, TemplateValue] | None = None,
    ) -> PromptTemplate:
        """Swap an agent's prompt; in-flight invocations keep their snapshot."""
        prompt = self.get_agent(agent_id).set_system_prompt(template, variables)
        logfire.info("Updated system prompt of {agent_id}", agent_id=agent_id, version=prompt.version)
        return prompt

    def default_agent(self) -> Agent | None:
        """Agent that takes low-confidence turns, or None when there is none.

        Raises:
            AgentNotFound: default_agent_id names an unregistered agent
        """
        if self.config.default_agent_id:
            return self.get_agent(self.config.default_agent_id)
        if self.config.use_first_agent_as_default and self._agents:
            return next(iter(self._agents.values()))
        return None

    async def get_history(self, user_id: str, session_id: str, agent_id: str) -> ConversationHistory:
        return await self.store.get(SessionKey.of(user_id, session_id, agent_id))

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    @overload
    async def route_request(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        *,
        stream: Literal[False] = False,
        agent_id: str | None = None,
        additional_params: dict[str, str] | None = None,
    ) -> RouteResult: ...

    @overload
    async def route_request(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        *,
        stream: bool,
        agent_id: str | None = None,
        additional_params: dict[str, str] | None = None,
    ) -> RouteResult | RouteStream: ...

    async def route_request(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        *,
        stream: bool = False,
        agent_id: str | None = None,
        additional_params: dict[str, str] | None = None,
    ) -> RouteResult | RouteStream:
        """Route one user turn.

        Args:
            input_text: User's message
            user_id: Caller's user id
            session_id: Conversation id (scoped to the user)
            stream: Ask for a RouteStream; honoured only when the selected
                agent supports streaming, otherwise a RouteResult is returned
            agent_id: Skip classification and route to this agent
            additional_params: Passed through to the agent in its RequestContext

        Raises:
            InvalidInput, NoAgentsRegistered, AgentNotFound, LowConfidenceSelection,
            AgentInvocationFailed, ToolResolutionExceeded
        """
        for name, value in (("input_text", input_text), ("user_id", user_id), ("session_id", session_id)):
            if not value or not value.strip():
                raise InvalidInput(f"{name} must not be empty", user_id=user_id or None, session_id=session_id or None)

        turn = _Turn(input_text, user_id.strip(), session_id.strip(), dict(additional_params or {}))
        scope = (turn.user_id, turn.session_id)
        await self._locks.acquire(scope)
        release = self._release_once(scope)
        handed_off = False
        try:
            with logfire.span("route_request", user_id=turn.user_id, session_id=turn.session_id) as span:
                try:
                    prior = await self._receive(turn)
                    agent, metadata = await self._classify(turn, prior, agent_id)
                    await self._prepare_dispatch(turn, agent, stream)
                except SwitchboardError as e:
                    self._fail(turn, e)
                    raise

                if turn.context.stream:
                    handed_off = True
                    span.set_attribute("streaming", True)
                    return RouteStream(metadata, self._stream_turn(turn, agent, metadata, release), release)

                result = await self._run_turn(turn, agent, metadata)
                span.set_attributes(turn.log_attributes())
                return result
        finally:
            if not handed_off:
                release()

    def _release_once(self, scope: tuple[str, str]) -> Callable[[], None]:
        released = False

        def release() -> None:
            nonlocal released
            if not released:
                released = True
                self._locks.release(scope)

        return release

    async def _receive(self, turn: _Turn) -> ConversationHistory:
        """Load the session's most-recently-used agent history for classification."""
        last_agent = await self.store.last_agent(turn.user_id, turn.session_id)
        prior = ConversationHistory()
        if last_agent:
            prior = await self.store.get(SessionKey.of(turn.user_id, turn.session_id, last_agent))
        turn.advance(RequestStage.CLASSIFYING, detail=last_agent)
        return prior

    async def _classify(
        self, turn: _Turn, prior: ConversationHistory, agent_id: str | None
    ) -> tuple[Agent, RouteMetadata]:
        agents = self.agents
        if not agents:
            raise NoAgentsRegistered()

        if agent_id:
            result = ClassifierResult(agent=self.get_agent(agent_id), confidence=1.0, reasoning="Explicit agent selection")
        else:
            try:
                result = await self.classifier.classify(turn.input_text, prior, agents)
            except SwitchboardError:
                raise
            except Exception as e:
                logfire.warn("Classifier raised, using fallback", error=str(e), **turn.log_attributes())
                result = Classifier.fallback(agents, reasoning=f"Classifier error: {type(e).__name__}")

        selected = result.agent
        overridden = False
        if selected is None or result.confidence < self.config.confidence_threshold:
            default = self.default_agent()
            if default is None:
                raise LowConfidenceSelection(
                    f"Classifier confidence {result.confidence:.2f} is below {self.config.confidence_threshold:.2f}"
                    " and no default agent is configured",
                    result=result,
                    threshold=self.config.confidence_threshold,
                )
            overridden = default is not selected
            selected = default
            if overridden:
                logfire.info(
                    "Low confidence for {classified}, routing to default {agent_id}",
                    classified=result.agent_id,
                    agent_id=selected.id,
                    confidence=result.confidence,
                )

        turn.agent = selected
        metadata = RouteMetadata(
            user_id=turn.user_id,
            session_id=turn.session_id,
            agent_id=selected.id,
            agent_name=selected.name,
            confidence=result.confidence,
            user_input=turn.input_text,
            classified_agent_id=result.agent_id,
            overridden=overridden,
            reasoning=result.reasoning,
        )
        turn.advance(RequestStage.DISPATCHING, detail=selected.id)
        return selected, metadata

    async def _prepare_dispatch(self, turn: _Turn, agent: Agent, stream: bool) -> None:
        """Load the selected agent's history and build its request context."""
        turn.history = await self.store.get(SessionKey.of(turn.user_id, turn.session_id, agent.id))

        retrieval = None
        if agent.options.retriever is not None:
            try:
                retrieval = await agent.options.retriever.retrieve(turn.input_text) or None
            except Exception as e:
                logfire.warn("Retrieval failed for {agent_id}, continuing without context", agent_id=agent.id, error=str(e))

        turn.context = RequestContext(
            stream=agent.wants_stream(stream),
            retrieval=retrieval,
            additional_params=turn.params,
        )

    def _invoker(self, turn: _Turn, agent: Agent) -> Invoke:
        timeout = self.config.invocation_timeout_seconds

        async def invoke(working: ConversationHistory, cycle: int) -> AgentReply:
            context = turn.context.model_copy(update={"tool_cycle": cycle})
            async with asyncio.timeout(timeout):
                return await agent.process(turn.input_text, turn.user_id, turn.session_id, working, context)

        return invoke

    def _loop(self, turn: _Turn, agent: Agent) -> ToolResolutionLoop:
        return ToolResolutionLoop(
            agent,
            self._invoker(turn, agent),
            max_cycles=self.config.max_tool_cycles,
            trace=turn.trace,
        )

    async def _run_turn(self, turn: _Turn, agent: Agent, metadata: RouteMetadata) -> RouteResult:
        loop = self._loop(turn, agent)
        request = ConversationMessage.user_text(turn.input_text)
        try:
            try:
                resolved = await loop.resolve(turn.history, request)
            finally:
                self._sync(turn, loop)
            return await self._commit(turn, agent, metadata, resolved.exchange, resolved.message)
        except SwitchboardError as e:
            self._fail(turn, e)
            raise
        except Exception as e:
            error = self._invocation_failed(turn, e)
            self._fail(turn, error)
            raise error from e

    async def _stream_turn(
        self,
        turn: _Turn,
        agent: Agent,
        metadata: RouteMetadata,
        release: Callable[[], None],
    ) -> AsyncIterator[str | RouteResult]:
        loop = self._loop(turn, agent)
        request = ConversationMessage.user_text(turn.input_text)
        try:
            with logfire.span("route_stream", user_id=turn.user_id, session_id=turn.session_id) as span:
                try:
                    try:
                        async with aclosing(loop.stream(turn.history, request)) as chunks:
                            async for chunk in chunks:
                                yield chunk
                    finally:
                        self._sync(turn, loop)
                    resolved = loop.result
                    result = await self._commit(turn, agent, metadata, resolved.exchange, resolved.message)
                except GeneratorExit:
                    logfire.info("Stream closed before completion, nothing committed", **turn.log_attributes())
                    raise
                except SwitchboardError as e:
                    self._fail(turn, e)
                    raise
                except Exception as e:
                    error = self._invocation_failed(turn, e)
                    self._fail(turn, error)
                    raise error from e
                span.set_attributes(turn.log_attributes())
            yield result
        finally:
            release()

    @staticmethod
    def _sync(turn: _Turn, loop: ToolResolutionLoop) -> None:
        turn.trace = loop.trace
        turn.stage = loop.stage
        turn.stage_start = loop.stage_start

    async def _commit(
        self,
        turn: _Turn,
        agent: Agent,
        metadata: RouteMetadata,
        exchange: tuple[ConversationMessage, ...],
        message: ConversationMessage,
    ) -> RouteResult:
        """Append the whole exchange in one write, trim, move the session's MRU pointer."""
        turn.stage = RequestStage.COMMITTING
        turn.stage_start = datetime.now(UTC)

        key = SessionKey.of(turn.user_id, turn.session_id, agent.id)
        history = turn.history.extend(exchange).trimmed(self.config.max_history_messages)
        await self.store.save(key, history)
        await self.store.touch(turn.user_id, turn.session_id, agent.id)

        turn.advance(RequestStage.COMPLETE, detail=f"{len(history)} message(s)")
        turn.trace = turn.trace.record(RequestStage.COMPLETE, turn.stage_start)
        logfire.info("Routed request to {agent_id}", **turn.log_attributes())
        return RouteResult(metadata=metadata, message=message, exchange=exchange, trace=turn.trace)

    @staticmethod
    def _invocation_failed(turn: _Turn, cause: Exception) -> AgentInvocationFailed:
        agent_id = turn.agent.id if turn.agent else None
        if isinstance(cause, TimeoutError):
            message = f"Agent '{agent_id}' timed out"
        else:
            message = f"Agent '{agent_id}' failed: {type(cause).__name__}"
        return AgentInvocationFailed(message, stage=turn.stage)

    def _fail(self, turn: _Turn, error: SwitchboardError) -> None:
        """Attach request context to ``error`` and record the failed stage."""
        error.user_id = error.user_id or turn.user_id
        error.session_id = error.session_id or turn.session_id
        if turn.agent is not None:
            error.agent_id = error.agent_id or turn.agent.id
        error.stage = error.stage or turn.stage

        turn.trace = turn.trace.record(turn.stage, turn.stage_start, error=error.message)
        turn.trace = turn.trace.record(RequestStage.ERROR, datetime.now(UTC), detail=type(error).__name__)
        logfire.error("Request failed at {stage}: {error}", stage=turn.stage.value, error=error.message, **turn.log_attributes())


__all__ = [
    "KeyedLocks",
    "Orchestrator",
    "OrchestratorConfig",
    "RouteMetadata",
    "RouteResult",
    "RouteStream",
]
