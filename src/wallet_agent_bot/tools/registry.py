"""Tool catalog and registry - declare tools once, bind them per session."""

from __future__ import annotations

import functools
import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from wallet_agent_bot.errors import ToolError
from wallet_agent_bot.llm.base import ToolCall, ToolDefinition

logger = logging.getLogger("wallet_agent_bot.tools.registry")

C = TypeVar("C")


@dataclass
class ToolResult:
    """Outcome of one tool call: ``output`` on success, ``error`` otherwise."""

    ok: bool
    output: Any = None
    error: str | None = None

    @classmethod
    def success(cls, output: Any) -> ToolResult:
        return cls(ok=True, output=output)

    @classmethod
    def failure(cls, error: str) -> ToolResult:
        return cls(ok=False, error=error)

    def render(self) -> str:
        """Text handed back to the model as the tool message."""
        if not self.ok:
            return json.dumps({"error": self.error})
        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output, default=str)


@dataclass
class Tool:
    name: str
    description: str
    parameters: dict[str, Any]
    func: Callable[..., Any] | Callable[..., Awaitable[Any]]
    is_async: bool = False

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    async def execute(self, **kwargs) -> ToolResult:
        """Run the tool. Failures come back as an error result, never raised."""
        try:
            inspect.signature(self.func).bind(**kwargs)
        except TypeError as exc:
            return ToolResult.failure(f"Invalid arguments for {self.name}: {exc}")
        try:
            if self.is_async:
                result = await self.func(**kwargs)
            else:
                result = self.func(**kwargs)
        except ToolError as exc:
            logger.info(f"Tool {self.name} refused: {exc}")
            return ToolResult.failure(str(exc))
        except Exception as exc:
            logger.warning(f"Tool {self.name} failed: {type(exc).__name__}: {exc}")
            return ToolResult.failure(f"{type(exc).__name__}: {exc}")
        return ToolResult.success(result)


class ToolRegistry:
    """The fixed set of tools available to one agent session."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for t in tools or []:
            self.register(t)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_names(self) -> list[str]:
        return list(self._tools.keys())

    def definitions(self) -> list[ToolDefinition]:
        return [t.to_definition() for t in self._tools.values()]

    async def run(self, call: ToolCall) -> ToolResult:
        tool = self.get_tool(call.name)
        if tool is None:
            return ToolResult.failure(f"Unknown tool '{call.name}'")
        return await tool.execute(**call.arguments)


def _extract_parameters(func: Callable, skip: int = 0) -> dict:
    """Extract JSON Schema parameters from function type hints.

    The first *skip* positional parameters (the bound context) are left out.
    """
    sig = inspect.signature(func)
    properties = {}
    required = []

    type_map = {
        "str": "string",
        "int": "integer",
        "float": "number",
        "bool": "boolean",
        "list": "array",
        "dict": "object",
    }

    for name, param in list(sig.parameters.items())[skip:]:
        annotation = param.annotation
        # Annotations are strings under ``from __future__ import annotations``.
        type_name = annotation if isinstance(annotation, str) else getattr(annotation, "__name__", "")
        properties[name] = {"type": type_map.get(type_name, "string")}
        if param.default is inspect.Parameter.empty:
            required.append(name)

    schema: dict[str, Any] = {
        "type": "object",
        "properties": properties,
    }
    if required:
        schema["required"] = required
    return schema


@dataclass
class ToolSpec:
    """A tool declared against a context type, not yet bound to one."""

    name: str
    description: str
    parameters: dict[str, Any]
    func: Callable[..., Any]

    def bind(self, context: Any) -> Tool:
        return Tool(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
            func=functools.partial(self.func, context),
            is_async=inspect.iscoroutinefunction(self.func),
        )


class ToolCatalog(Generic[C]):
    """Statically declared tools whose handlers take a context first.

    Usage::

        wallet_tools = ToolCatalog()

        @wallet_tools.tool("get_balance", "Check the wallet balance")
        async def get_balance(ctx: WalletContext) -> dict:
            ...

        registry = wallet_tools.bind(ctx)
    """

    def __init__(self) -> None:
        self._specs: dict[str, ToolSpec] = {}

    def tool(self, name: str, description: str, parameters: dict[str, Any] | None = None):
        def decorator(func: Callable) -> Callable:
            params = parameters if parameters is not None else _extract_parameters(func, skip=1)
            self._specs[name] = ToolSpec(name, description, params, func)
            return func

        return decorator

    def names(self) -> list[str]:
        return list(self._specs.keys())

    def bind(self, context: C) -> ToolRegistry:
        return ToolRegistry([spec.bind(context) for spec in self._specs.values()])
