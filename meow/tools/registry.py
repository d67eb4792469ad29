"""Tool registry: named callables the model can invoke, with JSON-schema parameters."""

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

from meow.utils.logging import log_debug, log_warning


@dataclass
class Tool:
    """A capability offered to the model.

    Attributes:
        name: Tool name the model calls
        description: What the tool does, shown to the model
        parameters: JSON schema of the keyword arguments
        execute: Callable receiving the parsed arguments as keywords
    """
    name: str
    description: str
    parameters: Dict[str, Any]
    execute: Callable[..., Any]

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _error(message: str) -> str:
    return json.dumps({"success": False, "error": message})


class ToolRegistry:
    """Name -> Tool mapping handed to the model for one agent.

    execute() never raises: unknown tools, malformed arguments and
    executor exceptions all come back as {"success": false, "error": ...}.
    """

    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def to_openai(self) -> List[Dict[str, Any]]:
        """Tool schemas in chat completion `tools` format."""
        return [tool.to_openai() for tool in self._tools.values()]

    def execute(self, name: str, arguments: Union[str, Dict[str, Any], None]) -> str:
        """Run a tool and return its result serialized as JSON."""
        tool = self._tools.get(name)
        if tool is None:
            log_warning(f"[Tool::{name}] Unknown tool requested")
            return _error(f"Unknown tool: {name}")

        if isinstance(arguments, str):
            try:
                args = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError as e:
                log_warning(f"[Tool::{name}] Malformed arguments: {e}")
                return _error(f"Invalid arguments: {e}")
        else:
            args = arguments or {}
        if not isinstance(args, dict):
            return _error("Arguments must be a JSON object")

        log_debug(f"[Tool::{name}] Calling tool: {args}")
        try:
            result = tool.execute(**args)
        except Exception as e:
            log_warning(f"[Tool::{name}] Tool failed: {e}")
            return _error(str(e))
        log_debug(f"[Tool::{name}] Tool completed")

        return json.dumps(result, ensure_ascii=False, default=str)
