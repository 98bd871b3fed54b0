"""Genesis - per-subject semantic memory graph.

Stores discrete memories as graph nodes carrying gravity (importance) and
depth (distance from core identity), links them with typed weighted edges,
recalls them by embedding similarity blended with gravity and depth, and keeps
an append-only narrative ledger next to the decayable graph.

Usage:
    from src.genesis.memory import MemoryManager, MemoryConfig
    from src.genesis.protocol import create_default_registry

    memory = MemoryManager(MemoryConfig())
    await memory.initialize()

    registry = create_default_registry(memory)
    result = await registry.execute("student-42", "remember", {
        "content": "Prefers async communication",
        "nodeType": "insight",
        "tags": ["comms"],
    })
"""

__version__ = "0.1.0"
