"""Agent tools and the ``@tool`` decorator.

Usage:
    @tool(description="Add two integers")
    def add(a: int, b: int) -> int:
        return a + b

``add`` is now a ``Tool`` whose JSON Schema was generated from the
signature; the agent loop calls ``await add.invoke({"a": 1, "b": 2})``.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, get_type_hints

# Python type -> JSON Schema type
_TYPE_MAP = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


class Tool:
    """A named callable an agent can select with ``action``/``actionInput``."""

    def __init__(self, name: str, description: str, func: Callable,
                 schema: Optional[Dict[str, Any]] = None):
        self.name = name
        self.description = description
        self.func = func
        self.schema = schema if schema is not None else build_schema(func)

    async def invoke(self, tool_input: Any) -> Any:
        if isinstance(tool_input, dict):
            result = self.func(**tool_input)
        elif tool_input is None:
            result = self.func()
        else:
            result = self.func(tool_input)
        if inspect.isawaitable(result):
            result = await result
        return result

    def describe(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "schema": self.schema}

    def __repr__(self) -> str:
        return f"Tool({self.name!r})"


def tool(description: str, name: Optional[str] = None):
    """Decorator turning a (sync or async) function into a ``Tool``."""
    def decorator(func: Callable) -> Tool:
        return Tool(name or func.__name__, description, func)

    return decorator


@dataclass
class BlockTaskRequest:
    """Returned by ``block_task``; tells the loop to stop and block the task."""

    reason: str


class BlockTaskTool(Tool):
    """Lets an agent refuse a task it cannot or should not complete."""

    def __init__(self):
        super().__init__(
            name="block_task",
            description=(
                "Block the current task when it cannot be completed, e.g. missing "
                "information, insufficient permissions or a request outside your role. "
                "Give the reason so a human can follow up."
            ),
            func=self._block,
            schema={
                "type": "object",
                "properties": {
                    "reason": {
                        "type": "string",
                        "description": "Why the task cannot be completed",
                    },
                },
                "required": ["reason"],
            },
        )

    @staticmethod
    def _block(reason: str = "No reason given") -> BlockTaskRequest:
        return BlockTaskRequest(reason=reason)


def find_tool(tools: Iterable[Tool], name: Optional[str]) -> Optional[Tool]:
    for t in tools:
        if t.name == name:
            return t
    return None


def build_schema(func: Callable) -> dict:
    """JSON Schema (object) for the function's parameters."""
    sig = inspect.signature(func)
    try:
        hints = get_type_hints(func)
    except Exception:
        hints = {}

    properties = {}
    required = []

    for param_name, param in sig.parameters.items():
        if param_name in ("self", "cls"):
            continue
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue

        prop: Dict[str, Any] = {}
        hint = hints.get(param_name)

        # Optional[X] -> X
        args = getattr(hint, "__args__", None)
        if args and type(None) in args:
            hint = next((a for a in args if a is not type(None)), None)
        hint = getattr(hint, "__origin__", None) or hint

        prop["type"] = _TYPE_MAP.get(hint, "string")

        doc_desc = _extract_param_doc(func, param_name)
        if doc_desc:
            prop["description"] = doc_desc

        if param.default is not inspect.Parameter.empty:
            if param.default is not None:
                prop["default"] = param.default
        else:
            required.append(param_name)

        properties[param_name] = prop

    return {"type": "object", "properties": properties, "required": required}


def _extract_param_doc(func: Callable, param_name: str) -> str:
    """Parameter description from a Google-style docstring line."""
    doc = func.__doc__
    if not doc:
        return ""
    for line in doc.splitlines():
        stripped = line.strip()
        if stripped.startswith(f"{param_name}:") or stripped.startswith(f"{param_name} :"):
            _, _, desc = stripped.partition(":")
            return desc.strip()
    return ""
