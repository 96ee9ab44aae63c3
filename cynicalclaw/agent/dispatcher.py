"""Inbound utterance handling: tool gate, then agent loop or a direct reply.

This is the seam a transport layer calls. It records the user turn and the
reply in the session history so the compressor sees the same log.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger

from cynicalclaw.agent.loop import AgentContext, AgentLoop
from cynicalclaw.agent.tool_router import CONFIDENCE_THRESHOLD, ToolRouter, ToolSelection, should_run_agent
from cynicalclaw.llm.models import Complexity, Personality, Tier
from cynicalclaw.llm.providers import ChunkCallback
from cynicalclaw.llm.router import ModelRouter
from cynicalclaw.memory.store import MemoryStore

HISTORY_WINDOW = 20


@dataclass
class DispatchResult:
    text: str
    used_agent_loop: bool = False
    selection: Optional[ToolSelection] = None


class Dispatcher:
    """Route one utterance through the tool gate and produce a reply."""

    def __init__(
        self,
        router: ModelRouter,
        tool_router: ToolRouter,
        agent_loop: AgentLoop,
        store: Optional[MemoryStore] = None,
        threshold: float = CONFIDENCE_THRESHOLD,
        history_window: int = HISTORY_WINDOW,
    ) -> None:
        self.router = router
        self.tool_router = tool_router
        self.agent_loop = agent_loop
        self.store = store
        self.threshold = threshold
        self.history_window = history_window

    async def handle(
        self,
        text: str,
        session_id: str,
        user_id: Optional[str] = None,
        personality: Personality | str = Personality.SARCASTIC,
        stream_callback: Optional[ChunkCallback] = None,
    ) -> DispatchResult:
        """Answer ``text``.

        The agent-loop path always yields text. The direct path may raise
        AllModelsFailedError, in which case no reply is recorded.
        """
        selection = await self.tool_router.route(text)

        if should_run_agent(selection, self.threshold):
            logger.info(f"Selected tool: {selection.tool} (confidence {selection.confidence})")
            await self._record(session_id, "user", text)
            reply = await self.agent_loop.run(
                text,
                AgentContext(
                    preselected_tool=selection.tool,
                    preselected_args=selection.args,
                    session_id=session_id,
                    user_id=user_id,
                ),
            )
            await self._record(session_id, "assistant", reply, {"agentLoop": True})
            return DispatchResult(text=reply, used_agent_loop=True, selection=selection)

        history = await self._history(session_id)
        await self._record(session_id, "user", text)
        messages = history + [{"role": "user", "content": text}]

        reply = await self.router.route_request(
            messages, Complexity.LOW, Tier.FREE, personality, stream_callback
        )
        await self._record(session_id, "assistant", reply, {"model": self.router.current_model.id})
        return DispatchResult(text=reply, used_agent_loop=False, selection=selection)

    async def _history(self, session_id: str) -> list[dict[str, Any]]:
        if not self.store:
            return []
        messages = await self.store.get_session_messages(session_id)
        return [
            {"role": m.role, "content": m.content}
            for m in messages[-self.history_window:]
        ]

    async def _record(
        self, session_id: str, role: str, content: str, metadata: Optional[dict[str, Any]] = None
    ) -> None:
        if self.store:
            await self.store.append_message(session_id, role, content, metadata=metadata)
