"""Model-Backed Agent - One Backend Request per Invocation.

LLMAgent talks to a language model through pydantic-ai's direct request API
rather than a pydantic-ai Agent run loop: the orchestrator's tool-resolution
loop owns tool execution, so each process() call must be exactly one model
round trip that may end in tool-use requests.

Message mapping (ours → pydantic-ai):
    user TextBlock          → ModelRequest[UserPromptPart]
    user ToolResultBlock    → ModelRequest[ToolReturnPart]
    assistant TextBlock     → ModelResponse[TextPart]
    assistant ToolUseBlock  → ModelResponse[ToolCallPart]
The rendered system prompt is prepended to the first request.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from pydantic_ai.direct import model_request, model_request_stream
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    ModelResponsePart,
    PartDeltaEvent,
    PartStartEvent,
    SystemPromptPart,
    TextPart,
    TextPartDelta,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import ModelRequestParameters
from pydantic_ai.tools import ToolDefinition

from .agent import Agent, AgentOptions, AgentReply, AgentStream, RequestContext
from .domain_type import ParticipantRole
from .domain_value import (
    ContentBlock,
    ConversationHistory,
    ConversationMessage,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from .prompt import PromptTemplate

if TYPE_CHECKING:
    from pydantic_ai.models import Model
    from pydantic_ai.settings import ModelSettings

RETRIEVAL_PREAMBLE = "Here is the context to use to answer the user's question:"


def to_model_messages(system_prompt: str, history: ConversationHistory) -> list[ModelMessage]:
    """Convert stored history into pydantic-ai request/response messages."""
    tool_names: dict[str, str] = {}
    messages: list[ModelMessage] = []
    pending_system: list[ModelRequestPart] = [SystemPromptPart(content=system_prompt)] if system_prompt else []

    for msg in history.messages:
        if msg.role == ParticipantRole.ASSISTANT:
            response_parts: list[ModelResponsePart] = []
            for block in msg.content:
                if isinstance(block, TextBlock):
                    response_parts.append(TextPart(content=block.text))
                elif isinstance(block, ToolUseBlock):
                    tool_names[block.id] = block.name
                    response_parts.append(ToolCallPart(tool_name=block.name, args=block.input, tool_call_id=block.id))
            messages.append(ModelResponse(parts=response_parts))
            continue

        request_parts: list[ModelRequestPart] = pending_system
        pending_system = []
        for block in msg.content:
            if isinstance(block, TextBlock):
                request_parts.append(UserPromptPart(content=block.text))
            elif isinstance(block, ToolResultBlock):
                request_parts.append(
                    ToolReturnPart(
                        tool_name=tool_names.get(block.tool_use_id, "unknown"),
                        content=block.content,
                        tool_call_id=block.tool_use_id,
                    )
                )
        messages.append(ModelRequest(parts=request_parts))

    if pending_system:
        # History held no request to carry the system prompt
        messages.insert(0, ModelRequest(parts=pending_system))
    return messages


def from_model_response(response: ModelResponse) -> ConversationMessage:
    """Convert a pydantic-ai response into an assistant message (text + tool uses)."""
    blocks: list[ContentBlock] = []
    for part in response.parts:
        if isinstance(part, TextPart) and part.content:
            blocks.append(TextBlock(text=part.content))
        elif isinstance(part, ToolCallPart):
            blocks.append(ToolUseBlock(id=part.tool_call_id, name=part.tool_name, input=part.args_as_dict()))
    return ConversationMessage(role=ParticipantRole.ASSISTANT, content=tuple(blocks))


class LLMAgent(Agent):
    """Agent answering through a single pydantic-ai model request.

    Args:
        options: Identity and capabilities
        model: pydantic-ai model name ("anthropic:claude-sonnet-4-5") or Model instance
        prompt: System prompt template
        model_settings: Temperature, max_tokens, ...

    Example:
        >>> agent = LLMAgent(
        ...     AgentOptions(id="tech", name="Tech Agent", description="Software questions"),
        ...     model="openai:gpt-4o",
        ...     prompt=PromptTemplate(template="You are {{NAME}}.", variables={"NAME": "Tech"}),
        ... )
    """

    def __init__(
        self,
        options: AgentOptions,
        model: Model | str,
        prompt: PromptTemplate | None = None,
        model_settings: ModelSettings | None = None,
    ) -> None:
        super().__init__(options, prompt)
        self.model = model
        self.model_settings = model_settings

    def request_parameters(self) -> ModelRequestParameters:
        tools = self.options.tool_config.tools if self.options.tool_config else ()
        return ModelRequestParameters(
            function_tools=[
                ToolDefinition(name=t.name, description=t.description, parameters_json_schema=t.input_schema)
                for t in tools
            ],
            allow_text_output=True,
        )

    def system_prompt(self, prompt: PromptTemplate, context: RequestContext) -> str:
        rendered = prompt.render()
        if context.retrieval:
            rendered = f"{rendered}\n\n{RETRIEVAL_PREAMBLE}\n{context.retrieval}".strip()
        return rendered

    async def process(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        history: ConversationHistory,
        context: RequestContext,
    ) -> AgentReply:
        prompt = self.prompt  # snapshot for this invocation
        messages = to_model_messages(self.system_prompt(prompt, context), history)
        params = self.request_parameters()

        if self.wants_stream(context.stream):
            return AgentStream(self._stream(messages, params))

        response = await model_request(
            self.model,
            messages,
            model_settings=self.model_settings,
            model_request_parameters=params,
        )
        return from_model_response(response)

    async def _stream(
        self,
        messages: list[ModelMessage],
        params: ModelRequestParameters,
    ) -> AsyncIterator[str | ConversationMessage]:
        async with model_request_stream(
            self.model,
            messages,
            model_settings=self.model_settings,
            model_request_parameters=params,
        ) as stream:
            async for event in stream:
                if isinstance(event, PartStartEvent) and isinstance(event.part, TextPart):
                    if event.part.content:
                        yield event.part.content
                elif isinstance(event, PartDeltaEvent) and isinstance(event.delta, TextPartDelta):
                    yield event.delta.content_delta
            yield from_model_response(stream.get())


__all__ = ["LLMAgent", "from_model_response", "to_model_messages"]
