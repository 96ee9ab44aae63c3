"""Agent loop: plan → execute → reflect until done or out of budget.

    Start → [PreselectedExecute]? → Plan ⇄ (Execute → Reflect) → Respond | GiveUp

Each ``run()`` owns its step list and nothing else; persistence is the
caller's job. Model output that cannot be parsed ends the loop with the raw
text as the answer, tool failures become ``"Error: ..."`` results, and an
exhausted iteration budget returns a synthesis with a visible marker.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger

from cynicalclaw.agent.decision import Raw, parse_decision
from cynicalclaw.agent.skills import SkillRegistry
from cynicalclaw.llm.models import Complexity, Personality, Tier
from cynicalclaw.llm.router import ModelRouter, RouterError

MAX_ITERATIONS = 5
GAVE_UP_MARKER = "\n\n*[Max iterations reached. I gave up.]*"
EMPTY_RESPONSE = "I have no response. The void consumes all."
NOTHING_DONE = "I processed your request through my agent loop. The result is... nothing. How fitting."

PLAN_ACTIONS = frozenset({"plan", "execute", "reflect", "respond"})
REFLECT_DECISIONS = frozenset({"continue", "complete"})

_RESULT_PREVIEW = 200


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class AgentStep:
    """One iteration of the loop. Only ``reflection`` is set after append."""

    id: str
    action: str
    tool: Optional[str] = None
    args: Optional[dict[str, Any]] = None
    result: Optional[str] = None
    reflection: Optional[str] = None
    timestamp: str = field(default_factory=_now)

    def summary(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "tool": self.tool,
            "result": self.result[:_RESULT_PREVIEW] if self.result else None,
        }


@dataclass
class AgentContext:
    """Per-run input, read once at loop start."""

    preselected_tool: Optional[str] = None
    preselected_args: Optional[dict[str, Any]] = None
    session_id: Optional[str] = None
    user_id: Optional[str] = None


@dataclass
class PlanDecision:
    action: str
    tool: Optional[str] = None
    args: Optional[dict[str, Any]] = None
    reasoning: str = ""
    result: Optional[str] = None


@dataclass
class ReflectDecision:
    decision: str
    final_answer: Optional[str] = None
    next_input: Optional[str] = None
    reasoning: str = ""


@dataclass
class AgentRunResult:
    """Answer text plus the step trace of one run."""

    text: str
    steps: list[AgentStep] = field(default_factory=list)
    iterations: int = 0
    gave_up: bool = False


PLAN_PROMPT = """You are an AI agent planner. Given user input and previous steps, decide the next action.

Available tools:
{tools}

Previous steps: {steps}

User input: "{input}"

Respond in JSON:
{{
  "action": "plan" | "execute" | "reflect" | "respond",
  "tool": "tool_name" | null,
  "args": {{}} | null,
  "reasoning": "why this action",
  "result": "if respond, the final answer"
}}"""

REFLECT_PROMPT = """You are an AI reflector. Evaluate if the task is complete or needs more steps.

Steps taken: {steps}

Original input: "{input}"

Respond in JSON:
{{
  "decision": "continue" | "complete",
  "finalAnswer": "if complete, the comprehensive answer",
  "nextInput": "if continue, what to do next",
  "reasoning": "why"
}}"""


def interpret_plan(text: str) -> PlanDecision:
    """Map a planner reply to a PlanDecision; anything unusable is a respond."""
    decision = parse_decision(text)
    if isinstance(decision, Raw):
        return PlanDecision(action="respond", result=text)

    action = decision.get("action")
    if action not in PLAN_ACTIONS:
        return PlanDecision(action="respond", result=text)

    tool = decision.get("tool")
    args = decision.get("args")
    result = decision.get("result")
    return PlanDecision(
        action=action,
        tool=tool if isinstance(tool, str) and tool else None,
        args=args if isinstance(args, dict) else None,
        reasoning=str(decision.get("reasoning") or ""),
        result=result if isinstance(result, str) else None,
    )


def interpret_reflection(text: str) -> ReflectDecision:
    """Map a reflector reply to a ReflectDecision; anything unusable completes."""
    decision = parse_decision(text)
    if isinstance(decision, Raw) or decision.get("decision") not in REFLECT_DECISIONS:
        return ReflectDecision(decision="complete", final_answer=text)

    final_answer = decision.get("finalAnswer")
    next_input = decision.get("nextInput")
    return ReflectDecision(
        decision=decision.get("decision"),
        final_answer=final_answer if isinstance(final_answer, str) and final_answer else None,
        next_input=next_input if isinstance(next_input, str) and next_input else None,
        reasoning=str(decision.get("reasoning") or ""),
    )


class AgentLoop:
    """Plan-execute-reflect control loop over a ModelRouter and a SkillRegistry."""

    def __init__(
        self,
        router: ModelRouter,
        skills: SkillRegistry,
        max_iterations: int = MAX_ITERATIONS,
    ) -> None:
        self.router = router
        self.skills = skills
        self.max_iterations = max_iterations

    async def run(self, user_input: str, context: AgentContext | None = None) -> str:
        result = await self.run_with_trace(user_input, context)
        return result.text

    async def run_with_trace(self, user_input: str, context: AgentContext | None = None) -> AgentRunResult:
        context = context or AgentContext()
        steps: list[AgentStep] = []
        current_input = user_input
        iteration = 0

        logger.info(f"Agent loop started for: '{user_input[:50]}...'")

        if context.preselected_tool:
            step = await self._execute_tool(
                AgentStep(
                    id="step-0",
                    action="execute",
                    tool=context.preselected_tool,
                    args=context.preselected_args,
                )
            )
            steps.append(step)
            current_input = (
                f"Tool {context.preselected_tool} returned: {step.result}. "
                f"Original request: {user_input}"
            )

        try:
            while iteration < self.max_iterations:
                iteration += 1

                plan = await self._plan(current_input, steps)
                logger.info(f"Plan: {plan.action}{f' → {plan.tool}' if plan.tool else ''}")

                if plan.action == "respond":
                    text = plan.result or EMPTY_RESPONSE
                    steps.append(AgentStep(id=f"step-{iteration}", action="respond", result=text))
                    return AgentRunResult(text=text, steps=steps, iterations=iteration)

                step = AgentStep(id=f"step-{iteration}", action=plan.action, tool=plan.tool, args=plan.args)
                if plan.action == "execute" and plan.tool:
                    step = await self._execute_tool(step)
                steps.append(step)

                reflection = await self._reflect(steps, user_input)
                step.reflection = reflection.decision
                logger.info(f"Reflection: {reflection.decision}")

                if reflection.decision == "complete":
                    text = reflection.final_answer or self.synthesize_response(steps)
                    return AgentRunResult(text=text, steps=steps, iterations=iteration)

                current_input = reflection.next_input or current_input

        except RouterError as e:
            logger.error(f"Agent loop aborted, model backend unavailable: {e}")
            return AgentRunResult(
                text=self.synthesize_response(steps) + GAVE_UP_MARKER,
                steps=steps,
                iterations=iteration,
                gave_up=True,
            )

        logger.warning(f"Agent loop hit max iterations ({self.max_iterations})")
        return AgentRunResult(
            text=self.synthesize_response(steps) + GAVE_UP_MARKER,
            steps=steps,
            iterations=iteration,
            gave_up=True,
        )

    # ── Phases ────────────────────────────────────────────────────

    async def _execute_tool(self, step: AgentStep) -> AgentStep:
        try:
            step.result = await self.skills.execute(step.tool, step.args)
            logger.info(f"Executed {step.tool}: {step.result[:100]}...")
        except Exception as e:
            step.result = f"Error: {e}"
            logger.error(f"Tool {step.tool} failed: {e}")
        return step

    def _tool_list(self) -> str:
        return "\n".join(f"{t['name']}: {t['description']}" for t in self.skills.list_tools())

    @staticmethod
    def _steps_json(steps: list[AgentStep]) -> str:
        return json.dumps([s.summary() for s in steps], ensure_ascii=False)

    async def _plan(self, current_input: str, steps: list[AgentStep]) -> PlanDecision:
        prompt = PLAN_PROMPT.format(
            tools=self._tool_list(),
            steps=self._steps_json(steps),
            input=current_input,
        )
        response = await self.router.route_request(
            [{"role": "user", "content": prompt}],
            Complexity.HIGH,
            Tier.PREMIUM,
            Personality.CLINICAL,
        )
        return interpret_plan(response)

    async def _reflect(self, steps: list[AgentStep], original_input: str) -> ReflectDecision:
        prompt = REFLECT_PROMPT.format(steps=self._steps_json(steps), input=original_input)
        response = await self.router.route_request(
            [{"role": "user", "content": prompt}],
            Complexity.HIGH,
            Tier.PREMIUM,
            Personality.CLINICAL,
        )
        return interpret_reflection(response)

    @staticmethod
    def synthesize_response(steps: list[AgentStep]) -> str:
        """Concatenate every tool output observed so far."""
        tool_results = "\n\n".join(
            f"[{s.tool}]: {s.result}" for s in steps if s.action == "execute" and s.result
        )
        if tool_results:
            return f"I completed the following actions:\n\n{tool_results}"
        return NOTHING_DONE
