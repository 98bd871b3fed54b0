"""Genesis memory graph.

Per-subject graphs of memory nodes with gravity (importance) and depth
(distance from core), typed edges, an append-only ledger and
embedding-weighted recall.

Usage:
    from src.genesis.memory import MemoryManager, MemoryConfig

    memory = MemoryManager(MemoryConfig())
    await memory.initialize()

    created = await memory.remember("s1", "Prefers async communication", tags=["comms"])
    result = await memory.recall("s1", "communication style")
"""

from src.genesis.memory.models import (
    AuditEntry,
    CubePosition,
    Edge,
    Graph,
    GraphSnapshot,
    LedgerEntry,
    LedgerEntryType,
    MemoryNode,
    Modality,
    RelationType,
)
from src.genesis.memory.memory_manager import MemoryConfig, MemoryManager, create_backend

__all__ = [
    "AuditEntry",
    "CubePosition",
    "Edge",
    "Graph",
    "GraphSnapshot",
    "LedgerEntry",
    "LedgerEntryType",
    "MemoryNode",
    "Modality",
    "RelationType",
    "MemoryConfig",
    "MemoryManager",
    "create_backend",
]
