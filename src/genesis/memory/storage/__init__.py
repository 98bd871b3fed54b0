"""Storage backends for the memory graph."""

from src.genesis.memory.storage.base import GraphStorageBackend
from src.genesis.memory.storage.memory import InMemoryBackend, InMemoryConfig
from src.genesis.memory.storage.postgres import PostgresBackend, PostgresConfig

__all__ = [
    "GraphStorageBackend",
    "InMemoryBackend",
    "InMemoryConfig",
    "PostgresBackend",
    "PostgresConfig",
]
