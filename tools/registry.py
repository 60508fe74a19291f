from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable


ToolHandler = Callable[[dict[str, Any]], Awaitable[str]]


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler


class ToolRegistry:
    """Explicit name -> handler table for model-callable functions. Filled at startup."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def names(self) -> list[str]:
        return sorted(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def openai_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": spec.name,
                    "description": spec.description,
                    "parameters": spec.parameters,
                },
            }
            for spec in self._tools.values()
        ]

    async def call(self, name: str, arguments_json: str | None) -> str:
        """Run a tool and return its text output. Failures come back as an error string for the model."""
        spec = self._tools.get(name)
        if spec is None:
            return f"Error: unknown tool '{name}'."

        try:
            arguments = json.loads(arguments_json) if (arguments_json or "").strip() else {}
        except json.JSONDecodeError as e:
            return f"Error: invalid arguments for {name}: {e}"
        if not isinstance(arguments, dict):
            return f"Error: arguments for {name} must be a JSON object."

        try:
            return await spec.handler(arguments)
        except Exception as e:
            print(f"[Tools] {name} failed: {e}")
            return f"Error: {name} failed: {e}"
