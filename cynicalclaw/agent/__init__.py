"""Agent core module."""

from cynicalclaw.agent.decision import Decision, Raw, Structured, extract_json_block, parse_decision
from cynicalclaw.agent.loop import AgentContext, AgentLoop, AgentRunResult, AgentStep
from cynicalclaw.agent.skills import SkillRegistry, Tool, ToolExecutionError, ToolNotFoundError, ToolResult
from cynicalclaw.agent.tool_router import CONFIDENCE_THRESHOLD, ToolRouter, ToolSelection, should_run_agent

__all__ = [
    "Decision",
    "Raw",
    "Structured",
    "extract_json_block",
    "parse_decision",
    "AgentContext",
    "AgentLoop",
    "AgentRunResult",
    "AgentStep",
    "SkillRegistry",
    "Tool",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolResult",
    "CONFIDENCE_THRESHOLD",
    "ToolRouter",
    "ToolSelection",
    "should_run_agent",
]
