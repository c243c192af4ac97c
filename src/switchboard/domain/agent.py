"""Agent Contract - Polymorphic Unit That Answers a Routed Request.

The orchestrator only ever holds the Agent interface. Concrete variants
(model-backed, retrieval-augmented, custom logic, test fakes) implement
process() and declare their capabilities through AgentOptions.

Invocation contract:
    - ``history`` already ends with the turn being answered (the user's
      request, or a tool-result message during tool resolution)
    - Non-streaming agents return one ConversationMessage
    - Streaming agents return an AgentStream: text chunks in order, then the
      same structured message (including any tool-use blocks) once exhausted
    - Agents never write history; the orchestrator commits their output

System prompts are PromptTemplate values swapped atomically by
set_system_prompt(). An invocation reads ``agent.prompt`` once at start and
renders that snapshot, so concurrent updates never tear an in-flight call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from pydantic import BaseModel, ConfigDict, Field

from .domain_value import ConversationHistory, ConversationMessage
from .prompt import PromptTemplate, TemplateValue
from .retriever import Retriever
from .tools import ToolConfig


class AgentOptions(BaseModel):
    """Identity and capabilities of an agent, fixed at registration.

    Attributes:
        id: Registry key (unique per orchestrator)
        name: Human-readable name
        description: What the agent is good at; classifiers read this
        supports_streaming: Agent can return an AgentStream
        tool_config: Tool declarations + handler, or None for no tools
        retriever: Optional context source injected before dispatch
    """

    id: str = Field(min_length=1, pattern=r"^\S+$")
    name: str
    description: str = ""
    supports_streaming: bool = False
    tool_config: ToolConfig | None = None
    retriever: Retriever | None = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def supports_tools(self) -> bool:
        return self.tool_config is not None and bool(self.tool_config.tools)


class RequestContext(BaseModel):
    """Per-invocation context passed explicitly by the orchestrator.

    Attributes:
        stream: Caller asked for streaming and the agent supports it
        retrieval: Retriever output for this request, if any
        additional_params: Caller-supplied passthrough values
        tool_cycle: 0 for the first call, n for the n-th tool re-invocation
    """

    stream: bool = False
    retrieval: str | None = None
    additional_params: dict[str, str] = Field(default_factory=dict)
    tool_cycle: int = 0

    model_config = ConfigDict(frozen=True)


class AgentStream:
    """Ordered text chunks from a streaming agent plus the final message.

    Wraps a producer that yields ``str`` chunks and may yield one
    ConversationMessage (the structured response, e.g. with tool-use blocks)
    as its last item. If the producer never yields a message, the
    accumulated text becomes a plain assistant message.

    Example:
        >>> async def produce():
        ...     yield "Hel"
        ...     yield "lo"
        >>> stream = AgentStream(produce())
        >>> [c async for c in stream]
        ['Hel', 'lo']
        >>> stream.message.text
        'Hello'
    """

    def __init__(self, source: AsyncIterator[str | ConversationMessage]) -> None:
        self._source = source
        self._chunks: list[str] = []
        self._message: ConversationMessage | None = None
        self._completed = False
        self._closed = False
        self._iterator = self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        async for item in self._source:
            if isinstance(item, ConversationMessage):
                self._message = item
                continue
            if item:
                self._chunks.append(item)
                yield item
        self._completed = True

    def __aiter__(self) -> AgentStream:
        return self

    async def __anext__(self) -> str:
        return await self._iterator.__anext__()

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def text(self) -> str:
        """Text received so far."""
        return "".join(self._chunks)

    @property
    def message(self) -> ConversationMessage:
        """Structured response; only available after the stream is exhausted."""
        if not self._completed:
            raise RuntimeError("AgentStream has not finished")
        return self._message or ConversationMessage.assistant_text(self.text)

    async def aclose(self) -> None:
        """Tear down the producer and drop partial text."""
        if self._closed:
            return
        self._closed = True
        await self._iterator.aclose()
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
        if not self._completed:
            self._chunks.clear()


AgentReply = ConversationMessage | AgentStream


class Agent(ABC):
    """Base class for all agents.

    Subclasses implement process(). Identity is immutable; only the system
    prompt may change after registration.
    """

    def __init__(self, options: AgentOptions, prompt: PromptTemplate | None = None) -> None:
        self.options = options
        self._prompt = prompt or PromptTemplate()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"

    @property
    def id(self) -> str:
        return self.options.id

    @property
    def name(self) -> str:
        return self.options.name

    @property
    def description(self) -> str:
        return self.options.description

    @property
    def prompt(self) -> PromptTemplate:
        """Current prompt snapshot."""
        return self._prompt

    def set_system_prompt(
        self,
        template: str | None = None,
        variables: dict[str, TemplateValue] | None = None,
    ) -> PromptTemplate:
        """Replace template and variables together; returns the new version.

        ``template=None`` keeps the current template text and only replaces
        the variables.
        """
        current = self._prompt
        self._prompt = current.replaced(current.template if template is None else template, variables)
        return self._prompt

    def wants_stream(self, requested: bool) -> bool:
        return requested and self.options.supports_streaming

    @abstractmethod
    async def process(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        history: ConversationHistory,
        context: RequestContext,
    ) -> AgentReply:
        """Answer the request; see module docstring for the contract."""


__all__ = ["Agent", "AgentOptions", "AgentReply", "AgentStream", "RequestContext"]
