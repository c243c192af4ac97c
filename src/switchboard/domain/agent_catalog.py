"""Agent Catalog - Configuration-Driven Agent Registration.

Agents served by the HTTP app are declared in JSON rather than code. Each
entry becomes an LLMAgent with its prompt, tools, streaming flag and
optional retrieval; the keyword lists double as rules for the
KeywordClassifier.

File format (list order is registration order, so the first entry is the
conventional default agent):

    [
      {
        "id": "tech",
        "name": "Tech Agent",
        "description": "Software, hardware and troubleshooting questions",
        "model": "anthropic:claude-sonnet-4-5",
        "streaming": true,
        "prompt": "You are {{NAME}}. {{STYLE}}",
        "variables": {"NAME": "the tech agent"},
        "tools": ["calculator"],
        "retrieval": false,
        "keywords": ["python", "install", "error"]
      }
    ]
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator, model_validator

from .agent import AgentOptions
from .llm_agent import LLMAgent
from .prompt import PromptTemplate, TemplateValue
from .tools import Toolbox, ToolFunction, calculator

if TYPE_CHECKING:
    from pydantic_ai.settings import ModelSettings

    from .retriever import Retriever

BUILTIN_TOOLS: dict[str, ToolFunction] = {"calculator": calculator}


class AgentDefinition(BaseModel):
    """One catalog entry.

    Attributes:
        model: pydantic-ai model string; falls back to the catalog default
        tools: Names from BUILTIN_TOOLS
        retrieval: Attach the shared retriever (if one is configured)
        keywords: Routing keywords for the KeywordClassifier
    """

    id: str = Field(min_length=1, pattern=r"^\S+$")
    name: str
    description: str = ""
    model: str | None = None
    streaming: bool = False
    prompt: str = ""
    variables: dict[str, TemplateValue] = Field(default_factory=dict)
    tools: tuple[str, ...] = ()
    retrieval: bool = False
    keywords: tuple[str, ...] = ()
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)

    model_config = ConfigDict(frozen=True)

    @field_validator("tools")
    @classmethod
    def _known_tools(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        unknown = sorted(set(v) - set(BUILTIN_TOOLS))
        if unknown:
            raise ValueError(f"Unknown tools: {unknown}; available: {sorted(BUILTIN_TOOLS)}")
        return v

    def model_settings(self) -> ModelSettings | None:
        settings: dict[str, Any] = {}
        if self.temperature is not None:
            settings["temperature"] = self.temperature
        if self.max_tokens is not None:
            settings["max_tokens"] = self.max_tokens
        return settings or None  # type: ignore[return-value]

    def build(self, default_model: str, retriever: Retriever | None = None) -> LLMAgent:
        """Construct the agent (no network access happens here)."""
        tool_config = None
        if self.tools:
            tool_config = Toolbox.from_functions(*(BUILTIN_TOOLS[name] for name in self.tools)).to_config()

        options = AgentOptions(
            id=self.id,
            name=self.name,
            description=self.description,
            supports_streaming=self.streaming,
            tool_config=tool_config,
            retriever=retriever if self.retrieval else None,
        )
        return LLMAgent(
            options,
            model=self.model or default_model,
            prompt=PromptTemplate(template=self.prompt, variables=dict(self.variables)),
            model_settings=self.model_settings(),
        )


class AgentCatalog(RootModel[tuple[AgentDefinition, ...]]):
    """Ordered agent definitions with unique ids."""

    root: tuple[AgentDefinition, ...]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_duplicate_ids(self) -> AgentCatalog:
        ids = [definition.id for definition in self.root]
        duplicates = sorted({x for x in ids if ids.count(x) > 1})
        if duplicates:
            raise ValueError(f"Duplicate agent ids in catalog: {duplicates}")
        return self

    @classmethod
    def from_json_file(cls, path: Path) -> AgentCatalog:
        """Load and validate catalog from JSON."""
        return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(definition.id for definition in self.root)

    def keyword_rules(self) -> dict[str, tuple[str, ...]]:
        return {definition.id: definition.keywords for definition in self.root if definition.keywords}

    def build_agents(self, default_model: str, retriever: Retriever | None = None) -> list[LLMAgent]:
        return [definition.build(default_model, retriever) for definition in self.root]


__all__ = ["AgentCatalog", "AgentDefinition", "BUILTIN_TOOLS"]
