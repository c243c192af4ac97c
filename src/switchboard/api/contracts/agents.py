"""Agent registry contracts."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ...domain.agent import Agent
from ...domain.prompt import PromptTemplate, TemplateValue


class AgentResponse(BaseModel):
    """Public view of a registered agent."""

    id: str
    name: str
    description: str
    supports_streaming: bool
    supports_tools: bool
    tools: tuple[str, ...] = ()
    prompt_version: int = Field(ge=1)

    @classmethod
    def from_agent(cls, agent: Agent) -> AgentResponse:
        tool_config = agent.options.tool_config
        return cls(
            id=agent.id,
            name=agent.name,
            description=agent.description,
            supports_streaming=agent.options.supports_streaming,
            supports_tools=agent.options.supports_tools,
            tools=tool_config.names if tool_config else (),
            prompt_version=agent.prompt.version,
        )


class PromptUpdateRequest(BaseModel):
    """Replace an agent's template and variables together."""

    template: str | None = Field(
        default=None,
        description="New template; omit to keep the current text and only replace variables",
        examples=["You are {{NAME}}. {{STYLE}}"],
    )
    variables: dict[str, TemplateValue] = Field(default_factory=dict, examples=[{"NAME": "Tech", "STYLE": "Be brief"}])


class PromptResponse(BaseModel):
    """Prompt state after an update."""

    agent_id: str
    template: str
    variables: dict[str, TemplateValue]
    version: int
    unresolved: tuple[str, ...] = Field(description="Placeholders left verbatim when rendering")

    @classmethod
    def from_prompt(cls, agent_id: str, prompt: PromptTemplate) -> PromptResponse:
        return cls(
            agent_id=agent_id,
            template=prompt.template,
            variables=prompt.variables,
            version=prompt.version,
            unresolved=tuple(sorted(prompt.unresolved())),
        )
