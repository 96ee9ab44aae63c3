"""Session compaction: summarize long histories into one durable memory entry.

Compaction is destructive. The summary entry is written first and the raw
messages are deleted only afterwards, so a crash in between leaves both
rather than neither.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from loguru import logger

from cynicalclaw.llm.models import Complexity, Personality, Tier
from cynicalclaw.llm.router import ModelRouter, RouterError
from cynicalclaw.memory.store import MemoryEntry, MemoryStore, StoredMessage, now_iso

COMPRESSION_THRESHOLD = 100
TRANSCRIPT_CHAR_BUDGET = 4000
PERIODIC_MIN_MESSAGES = 20

SUMMARY_TAG = "summary"
AUTO_TAG = "auto-compressed"
SUMMARY_MOOD = "compressed"

COMPRESS_PROMPT = """Summarize this conversation into a compressed memory format. Extract:
1. Key facts discussed
2. User preferences revealed
3. Decisions made
4. Action items (if any)

Be concise but preserve important details.

Conversation:
{transcript}

Respond in this format:
SUMMARY:
[bullet points of key information]

CONTEXT:
[brief narrative of what happened]"""


def format_transcript(messages: list[StoredMessage], char_budget: int = TRANSCRIPT_CHAR_BUDGET) -> str:
    """Role-tagged transcript, mood-annotated where known, cut to ``char_budget``."""
    lines = []
    for m in messages:
        mood = m.metadata.get("mood") if m.metadata else None
        tag = f" [{mood}]" if mood else ""
        lines.append(f"{m.role}{tag}: {m.content}")
    return "\n".join(lines)[:char_budget]


class MemoryCompressor:
    """Compress session histories through the model router."""

    def __init__(
        self,
        router: ModelRouter,
        store: MemoryStore,
        threshold: int = COMPRESSION_THRESHOLD,
        char_budget: int = TRANSCRIPT_CHAR_BUDGET,
    ):
        self.router = router
        self.store = store
        self.threshold = threshold
        self.char_budget = char_budget
        self._in_progress: set[str] = set()

    async def compress_session(self, session_id: str, force: bool = False) -> Optional[str]:
        """Summarize and delete a session's messages.

        Returns the summary text, or None when there was nothing to do
        (empty session, below threshold without ``force``, already being
        compressed, or the model call failed).
        """
        if session_id in self._in_progress:
            logger.debug(f"Session {session_id} is already being compressed")
            return None

        self._in_progress.add(session_id)
        try:
            return await self._compress(session_id, force)
        finally:
            self._in_progress.discard(session_id)

    async def _compress(self, session_id: str, force: bool) -> Optional[str]:
        messages = await self.store.get_session_messages(session_id)

        if not messages:
            return None
        if not force and len(messages) < self.threshold:
            logger.debug(
                f"Session {session_id}: {len(messages)} messages, below threshold {self.threshold}"
            )
            return None

        prompt = COMPRESS_PROMPT.format(transcript=format_transcript(messages, self.char_budget))

        try:
            summary = await self.router.route_request(
                [{"role": "user", "content": prompt}],
                Complexity.MEDIUM,
                Tier.FREE,
                Personality.CLINICAL,
            )
        except RouterError as e:
            logger.error(f"Failed to compress session {session_id}: {e}")
            return None

        compressed_at = now_iso()
        entry = MemoryEntry(
            id=f"summary-{session_id}-{int(time.time() * 1000)}",
            content=f"## Session Summary ({len(messages)} messages)\n\n{summary}",
            timestamp=compressed_at,
            mood=SUMMARY_MOOD,
            tags=[SUMMARY_TAG, session_id, AUTO_TAG],
            metadata={
                "sessionId": session_id,
                "originalMessageCount": len(messages),
                "compressedAt": compressed_at,
                "dateRange": {"from": messages[0].timestamp, "to": messages[-1].timestamp},
            },
        )

        await self.store.add_entry(entry)
        # Turns appended while the summary was generated stay in the log
        await self.store.delete_session_messages(session_id, up_to_id=max(m.id for m in messages))

        logger.info(f"Compressed session {session_id}: {len(messages)} messages → summary")
        return summary

    async def periodic_compression(
        self,
        older_than_days: int = 7,
        min_messages: int = PERIODIC_MIN_MESSAGES,
    ) -> int:
        """Force-compress every idle session holding more than ``min_messages``.

        Each session is handled independently; a failure is logged and the
        sweep moves on. Returns the number of sessions compressed.
        """
        cutoff = (datetime.now(timezone.utc) - timedelta(days=older_than_days)).isoformat()
        stale = await self.store.find_stale_sessions(cutoff, min_messages)

        compressed = 0
        done: set[str] = set()
        for session in stale:
            if session.session_id in done:
                continue
            try:
                if await self.compress_session(session.session_id, force=True):
                    compressed += 1
                    done.add(session.session_id)
            except Exception as e:
                logger.error(f"Periodic compression of {session.session_id} failed: {e}")

        logger.info(f"Periodic compression: {compressed} sessions compressed")
        return compressed

    async def get_session_summary(self, session_id: str) -> Optional[str]:
        """Content of the most recent summary entry for a session."""
        for entry in await self.store.find_by_tag(session_id, limit=10):
            if SUMMARY_TAG in entry.tags:
                return entry.content
        return None
