"""Skill registry: the narrow contract the agent core uses to run tools.

The core only needs three calls:
- list_tools() → [{"name", "description", "parameters"}]
- has_tool(name) → bool
- execute(name, args) → text  (raises ToolNotFoundError / ToolExecutionError)

Concrete skills (file I/O, shell, price lookups, ...) live outside this
package and register their tools here.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from loguru import logger


class ToolNotFoundError(Exception):
    """Raised when a tool name is not registered."""


class ToolExecutionError(Exception):
    """Raised when a tool reports failure."""


@dataclass
class ToolResult:
    """Outcome of a single tool invocation."""

    success: bool
    output: str = ""
    error: Optional[str] = None


class Tool(ABC):
    """Base class for a tool: name, description, JSON-schema parameters, execute()."""

    name: str = ""
    description: str = ""
    # Subclasses declare their own JSON schema; None means "no arguments"
    parameters: Optional[dict[str, Any]] = None

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult:
        ...

    def to_definition(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": (
                copy.deepcopy(self.parameters)
                if self.parameters is not None
                else {"type": "object", "properties": {}}
            ),
        }


class SkillRegistry:
    """Holds skills and the tools they expose, keyed by tool name."""

    def __init__(self) -> None:
        self._skills: dict[str, list[Tool]] = {}
        self._tools: dict[str, tuple[str, Tool]] = {}

    def register_skill(self, skill: str, tools: Iterable[Tool]) -> None:
        tools = list(tools)
        self._skills[skill] = tools
        for tool in tools:
            if tool.name in self._tools:
                logger.warning(f"Tool '{tool.name}' re-registered by skill '{skill}'")
            self._tools[tool.name] = (skill, tool)
        logger.info(f"Skill loaded: {skill} ({len(tools)} tools)")

    def register_tool(self, tool: Tool, skill: str = "builtin") -> None:
        self._skills.setdefault(skill, []).append(tool)
        self._tools[tool.name] = (skill, tool)

    def list_skills(self) -> list[str]:
        return list(self._skills.keys())

    def list_tools(self) -> list[dict[str, Any]]:
        return [tool.to_definition() for _, tool in self._tools.values()]

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    async def execute(self, name: str, args: Optional[dict[str, Any]] = None) -> str:
        """Run a tool and return its text output.

        Raises:
            ToolNotFoundError: no tool with that name is registered.
            ToolExecutionError: the tool returned an unsuccessful result.
        """
        entry = self._tools.get(name)
        if entry is None:
            raise ToolNotFoundError(f"Tool {name} not found. Did you forget to load the skill?")

        skill, tool = entry
        logger.debug(f"Executing tool: {name} (via {skill})")

        result = await tool.execute(**(args or {}))
        if isinstance(result, ToolResult):
            if not result.success:
                raise ToolExecutionError(result.error or f"Tool {name} failed")
            return result.output
        return str(result)
