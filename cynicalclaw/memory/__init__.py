"""Long-term memory: message history, compaction and hybrid retrieval."""

from cynicalclaw.memory.compressor import MemoryCompressor
from cynicalclaw.memory.db import Database
from cynicalclaw.memory.embeddings import EmbeddingClient, cosine_distance, cosine_similarity
from cynicalclaw.memory.scheduler import CompressionScheduler
from cynicalclaw.memory.store import MemoryEntry, MemoryStore, StoredMessage

__all__ = [
    "MemoryCompressor",
    "Database",
    "EmbeddingClient",
    "cosine_distance",
    "cosine_similarity",
    "CompressionScheduler",
    "MemoryEntry",
    "MemoryStore",
    "StoredMessage",
]
