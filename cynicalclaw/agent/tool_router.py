"""Tool router: a single gate deciding whether an utterance needs a tool."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger

from cynicalclaw.agent.decision import Raw, parse_decision
from cynicalclaw.agent.skills import SkillRegistry
from cynicalclaw.llm.models import Complexity, Personality, Tier
from cynicalclaw.llm.router import ModelRouter, RouterError

NO_TOOL_MARKER = "NO_TOOL"
DEFAULT_CONFIDENCE = 0.5
CONFIDENCE_THRESHOLD = 0.6


@dataclass
class ToolSelection:
    """A proposed tool call with the model's self-reported confidence."""

    tool: str
    args: dict[str, Any] = field(default_factory=dict)
    reasoning: str = ""
    confidence: float = DEFAULT_CONFIDENCE


def should_run_agent(selection: Optional[ToolSelection], threshold: float = CONFIDENCE_THRESHOLD) -> bool:
    """True when a selection is confident enough to drive the agent loop (strictly above)."""
    return selection is not None and selection.confidence > threshold


ROUTER_PROMPT = """You are an AI tool router. Analyze the user input and decide if a tool is needed.

Available tools:
{tools}

User input: "{input}"

If NO tool is needed (just conversation, questions you can answer directly, greetings), respond exactly: NO_TOOL

If a tool IS needed, respond ONLY in this JSON format:
{{
  "tool": "exact_tool_name",
  "args": {{ "param": "value" }},
  "reasoning": "specific explanation of why this tool is needed",
  "confidence": 0.0-1.0
}}

Rules:
- Only use tools for external data, code execution, or file operations
- "What is X" -> NO_TOOL (you know this)
- "What is the weather" -> search tool (external data)
- "Calculate 123*456" -> code_execute tool (calculation)
- "Read my file.txt" -> file_read tool (file access)"""


class ToolRouter:
    """Ask a cheap model whether a tool call is warranted.

    Unknown or malformed proposals are dropped silently: the caller only ever
    sees a ToolSelection or None.
    """

    def __init__(self, router: ModelRouter, skills: SkillRegistry) -> None:
        self._router = router
        self._skills = skills

    def _build_prompt(self, user_input: str) -> str:
        tools = "\n".join(
            f"- {t['name']}: {t['description']}\n  Parameters: {json.dumps(t.get('parameters', {}))}"
            for t in self._skills.list_tools()
        )
        return ROUTER_PROMPT.format(tools=tools, input=user_input)

    async def route(self, user_input: str) -> Optional[ToolSelection]:
        prompt = self._build_prompt(user_input)

        try:
            response = await self._router.route_request(
                [{"role": "user", "content": prompt}],
                Complexity.MEDIUM,
                Tier.FREE,
                Personality.CLINICAL,
            )
        except RouterError as e:
            logger.error(f"Tool routing failed: {e}")
            return None

        if NO_TOOL_MARKER in response:
            logger.debug(f"No tool routing needed for: '{user_input[:30]}...'")
            return None

        decision = parse_decision(response)
        if isinstance(decision, Raw):
            logger.warning("Tool routing: no JSON found in response")
            return None

        tool = decision.get("tool")
        if not tool or not isinstance(tool, str) or not self._skills.has_tool(tool):
            logger.warning(f"Tool routing: invalid tool '{tool}'")
            return None

        args = decision.get("args")
        confidence = decision.get("confidence")
        try:
            confidence = float(confidence) if confidence is not None else DEFAULT_CONFIDENCE
        except (TypeError, ValueError):
            confidence = DEFAULT_CONFIDENCE

        selection = ToolSelection(
            tool=tool,
            args=args if isinstance(args, dict) else {},
            reasoning=str(decision.get("reasoning") or ""),
            confidence=confidence,
        )
        logger.info(f"Auto-routed to: {selection.tool} ({selection.reasoning}) [{selection.confidence}]")
        return selection
