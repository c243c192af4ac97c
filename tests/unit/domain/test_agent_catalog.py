"""
Tests for the agent catalog.

These tests demonstrate:
- Loading the catalog shipped with the package
- Business validation (unique ids, known tools)
- Building agents without touching the network
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from switchboard.config import Settings
from switchboard.domain.agent_catalog import AgentCatalog, AgentDefinition
from switchboard.domain.llm_agent import LLMAgent

from ...fakes import StaticRetriever


@pytest.fixture
def catalog() -> AgentCatalog:
    return AgentCatalog.from_json_file(Path(Settings().agent_catalog_path))


def test_shipped_catalog_loads_in_order(catalog: AgentCatalog):
    """The first entry is the default agent, so order matters."""
    assert catalog.ids == ("general", "tech", "math")


def test_keyword_rules_skip_agents_without_keywords(catalog: AgentCatalog):
    rules = catalog.keyword_rules()

    assert set(rules) == {"tech", "math"}
    assert "python" in rules["tech"]


def test_duplicate_ids_rejected():
    with pytest.raises(ValidationError, match="Duplicate agent ids"):
        AgentCatalog.model_validate([{"id": "a", "name": "A"}, {"id": "a", "name": "Other A"}])


def test_unknown_tool_rejected():
    with pytest.raises(ValidationError, match="Unknown tools"):
        AgentDefinition(id="a", name="A", tools=("web_search",))


class TestBuild:
    def test_tools_and_model_settings(self, catalog: AgentCatalog):
        math = next(d for d in catalog.root if d.id == "math")

        agent = math.build("test")

        assert isinstance(agent, LLMAgent)
        assert agent.options.tool_config.names == ("calculator",)
        assert agent.model == "test"
        assert agent.model_settings == {"temperature": 0.0}
        assert not agent.options.supports_streaming

    def test_explicit_model_overrides_default(self):
        definition = AgentDefinition(id="a", name="A", model="openai:gpt-4o")

        assert definition.build("test").model == "openai:gpt-4o"

    def test_retriever_attached_only_when_requested(self, catalog: AgentCatalog):
        retriever = StaticRetriever("docs")

        agents = {agent.id: agent for agent in catalog.build_agents("test", retriever=retriever)}

        assert agents["tech"].options.retriever is retriever
        assert agents["general"].options.retriever is None
        assert agents["general"].model_settings is None

    def test_prompt_variables_render(self, catalog: AgentCatalog):
        tech = catalog.build_agents("test")[1]

        rendered = tech.prompt.render()

        assert rendered.startswith("You are a senior support engineer.")
        assert "- Give concrete steps\n- Show commands in code blocks" in rendered
