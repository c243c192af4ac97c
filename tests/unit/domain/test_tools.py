"""Tests for tool declarations, the function toolbox and the calculator tool."""

import pytest

from switchboard.domain.domain_type import ParticipantRole
from switchboard.domain.domain_value import ConversationHistory, ConversationMessage, ToolUseBlock
from switchboard.domain.tools import Toolbox, ToolSpec, calculator


async def weather(city: str, unit: str = "celsius") -> str:
    """Current weather for a city.

    Longer explanation that should not reach the model.
    """
    return f"20 {unit} in {city}"


def explode(reason: str) -> str:
    """Always fails."""
    raise RuntimeError(reason)


def tool_call(*blocks: ToolUseBlock) -> ConversationMessage:
    return ConversationMessage(role=ParticipantRole.ASSISTANT, content=blocks)


# =============================================================================
# ToolSpec
# =============================================================================


class TestToolSpec:
    def test_schema_from_signature(self):
        spec = ToolSpec.from_function(weather)

        assert spec.name == "weather"
        assert spec.description == "Current weather for a city."
        assert spec.input_schema["type"] == "object"
        assert set(spec.input_schema["properties"]) == {"city", "unit"}
        assert spec.input_schema["required"] == ["city"]
        assert "title" not in spec.input_schema

    def test_name_override(self):
        assert ToolSpec.from_function(weather, name="get_weather").name == "get_weather"


# =============================================================================
# Toolbox handler
# =============================================================================


class TestToolbox:
    @pytest.mark.asyncio
    async def test_handle_returns_user_message_with_results_in_order(self):
        toolbox = Toolbox.from_functions(weather, calculator)
        response = tool_call(
            ToolUseBlock(id="c1", name="weather", input={"city": "Oslo"}),
            ToolUseBlock(id="c2", name="calculator", input={"expression": "6 * 7"}),
        )

        result = await toolbox.handle(response, ConversationHistory())

        assert result.role == ParticipantRole.USER
        assert [(r.tool_use_id, r.content) for r in result.tool_results] == [("c1", "20 celsius in Oslo"), ("c2", "42")]

    @pytest.mark.asyncio
    async def test_failing_tool_becomes_error_result(self):
        toolbox = Toolbox.from_functions(explode)

        response = tool_call(ToolUseBlock(id="c1", name="explode", input={"reason": "nope"}))

        result = await toolbox.handle(response, ConversationHistory())

        (block,) = result.tool_results
        assert block.is_error
        assert "nope" in block.content

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_error_result(self):
        toolbox = Toolbox.from_functions(weather)

        result = await toolbox.handle(tool_call(ToolUseBlock(id="c1", name="missing")), ConversationHistory())

        assert result.tool_results[0].is_error
        assert "Unknown tool" in result.tool_results[0].content

    def test_with_tool_rejects_duplicates(self):
        toolbox = Toolbox.from_functions(weather)

        with pytest.raises(ValueError, match="already registered"):
            toolbox.with_tool(ToolSpec.from_function(weather), weather)

    def test_to_config_exposes_specs_and_handler(self):
        config = Toolbox.from_functions(weather, calculator).to_config()

        assert config.names == ("weather", "calculator")


# =============================================================================
# Calculator
# =============================================================================


class TestCalculator:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("expression", "expected"),
        [("5 * 8", "40"), ("factorial(5)", "120"), ("2 ** 10", "1024"), ("-3 + 1", "-2"), ("sqrt(16)", "4.0")],
    )
    async def test_evaluates_whitelisted_math(self, expression: str, expected: str):
        assert await calculator(expression) == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expression", ["__import__('os')", "open('x')", "(1).__class__", "1 +"])
    async def test_rejects_everything_else(self, expression: str):
        assert (await calculator(expression)).startswith("Error evaluating expression")
