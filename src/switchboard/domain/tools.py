"""Tool Declarations and Handlers - What Agents May Ask the Host to Run.

An agent that supports tools declares ToolSpecs to its backend. When the
backend answers with tool-use blocks, the ToolConfig handler maps that
response (plus the conversation so far) to the next user-role message made
of tool-result blocks. The handler is stateless and runs once per cycle.

Toolbox is the stock handler: it dispatches tool-use blocks to plain Python
functions by name, the same way pydantic-ai registers tool functions, and
generates each input schema from the function signature.

Example:
    >>> toolbox = Toolbox.from_functions(calculator)
    >>> config = toolbox.to_config()
    >>> agent = LLMAgent(options=AgentOptions(..., tool_config=config), ...)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, get_type_hints

import logfire
from pydantic import BaseModel, ConfigDict, Field, create_model

from .domain_type import ParticipantRole
from .domain_value import ConversationHistory, ConversationMessage, ToolResultBlock, ToolUseBlock

ToolHandler = Callable[[ConversationMessage, ConversationHistory], Awaitable[ConversationMessage]]
ToolFunction = Callable[..., Any]


class ToolSpec(BaseModel):
    """Tool declaration sent to the model backend.

    Attributes:
        name: Identifier the model uses in tool-use requests
        description: What the tool does (the model reads this!)
        input_schema: JSON schema of the arguments object
    """

    name: str = Field(min_length=1, max_length=64, pattern=r"^[a-zA-Z0-9_-]+$")
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_function(cls, func: ToolFunction, *, name: str | None = None) -> ToolSpec:
        """Build a spec from a function's signature and docstring.

        Parameters become schema properties; parameters without defaults are
        required. The first docstring paragraph becomes the description.
        """
        hints = get_type_hints(func)
        fields: dict[str, Any] = {}
        for param in inspect.signature(func).parameters.values():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            annotation = hints.get(param.name, Any)
            default = ... if param.default is param.empty else param.default
            fields[param.name] = (annotation, default)

        args_model = create_model(f"{func.__name__}_args", **fields)
        schema = args_model.model_json_schema()
        schema.pop("title", None)

        doc = inspect.getdoc(func) or ""
        description = doc.split("\n\n", 1)[0].replace("\n", " ").strip()
        return cls(name=name or func.__name__, description=description, input_schema=schema)


class ToolConfig(BaseModel):
    """Ordered tool declarations plus the handler producing tool results."""

    tools: tuple[ToolSpec, ...] = ()
    handler: ToolHandler

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(t.name for t in self.tools)


class Toolbox(BaseModel):
    """Name → function registry that doubles as a ToolConfig handler.

    Tool failures become error tool-results so the model can explain or
    retry; they never abort the turn.
    """

    specs: tuple[ToolSpec, ...] = ()
    functions: dict[str, ToolFunction] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @classmethod
    def from_functions(cls, *funcs: ToolFunction) -> Toolbox:
        specs = tuple(ToolSpec.from_function(f) for f in funcs)
        return cls(specs=specs, functions={spec.name: f for spec, f in zip(specs, funcs, strict=True)})

    def with_tool(self, spec: ToolSpec, func: ToolFunction) -> Toolbox:
        if spec.name in self.functions:
            raise ValueError(f"Tool '{spec.name}' already registered")
        return self.model_copy(update={"specs": (*self.specs, spec), "functions": {**self.functions, spec.name: func}})

    def to_config(self) -> ToolConfig:
        return ToolConfig(tools=self.specs, handler=self.handle)

    async def handle(self, response: ConversationMessage, history: ConversationHistory) -> ConversationMessage:
        """Run every tool-use block of ``response`` and wrap the results."""
        results = await asyncio.gather(*(self._run(block) for block in response.tool_uses))
        return ConversationMessage(role=ParticipantRole.USER, content=tuple(results))

    async def _run(self, block: ToolUseBlock) -> ToolResultBlock:
        func = self.functions.get(block.name)
        if func is None:
            return ToolResultBlock(tool_use_id=block.id, content=f"Unknown tool: {block.name}", is_error=True)
        try:
            result = func(**block.input)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logfire.warn("Tool {tool} failed", tool=block.name, error=str(e))
            return ToolResultBlock(tool_use_id=block.id, content=f"Error running {block.name}: {e}", is_error=True)
        return ToolResultBlock(tool_use_id=block.id, content=str(result))


async def calculator(expression: str) -> str:
    """Evaluate a mathematical expression such as "5 * 8", "factorial(6)" or "sin(pi/2)".

    Parses to an AST and evaluates only whitelisted operators, functions and
    constants, so arbitrary code can never run.

    Args:
        expression: Math expression as string

    Returns:
        String result of the calculation, or error message if invalid
    """
    import ast
    import math
    import operator

    operators = {
        ast.Add: operator.add,
        ast.Sub: operator.sub,
        ast.Mult: operator.mul,
        ast.Div: operator.truediv,
        ast.Pow: operator.pow,
        ast.USub: operator.neg,
        ast.UAdd: operator.pos,
        ast.Mod: operator.mod,
        ast.FloorDiv: operator.floordiv,
    }

    safe_functions = {
        "abs": abs,
        "round": round,
        "min": min,
        "max": max,
        "sqrt": math.sqrt,
        "factorial": math.factorial,
        "log": math.log,
        "log10": math.log10,
        "exp": math.exp,
        "sin": math.sin,
        "cos": math.cos,
        "tan": math.tan,
        "pi": math.pi,
        "e": math.e,
    }

    def eval_expr(node: ast.expr) -> Any:
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
            return node.value
        if isinstance(node, ast.BinOp) and type(node.op) in operators:
            return operators[type(node.op)](eval_expr(node.left), eval_expr(node.right))  # type: ignore[operator]
        if isinstance(node, ast.UnaryOp) and type(node.op) in operators:
            return operators[type(node.op)](eval_expr(node.operand))  # type: ignore[operator]
        if isinstance(node, ast.Call):
            # No attribute access: only bare whitelisted names
            if not isinstance(node.func, ast.Name) or node.func.id not in safe_functions:
                raise ValueError("Only whitelisted functions allowed")
            return safe_functions[node.func.id](*[eval_expr(arg) for arg in node.args])  # type: ignore[operator]
        if isinstance(node, ast.Name) and node.id in safe_functions:
            return safe_functions[node.id]
        raise ValueError(f"Unsupported expression: {ast.dump(node)[:40]}")

    try:
        tree = ast.parse(expression, mode="eval")
        return str(eval_expr(tree.body))
    except Exception as e:
        return f"Error evaluating expression: {e}"


__all__ = ["ToolConfig", "ToolFunction", "ToolHandler", "ToolSpec", "Toolbox", "calculator"]
