"""Memory operators: embedding, gravity dynamics and recall."""

from src.genesis.memory.operators.embedding import (
    EmbeddingCache,
    EmbeddingConfig,
    EmbeddingService,
    RateLimiter,
)
from src.genesis.memory.operators.gravity import GravityConfig, GravityController, ReinforceOutcome
from src.genesis.memory.operators.recall import RecallConfig, RecallEngine, RecallResult, ScoredNode

__all__ = [
    "EmbeddingCache",
    "EmbeddingConfig",
    "EmbeddingService",
    "RateLimiter",
    "GravityConfig",
    "GravityController",
    "ReinforceOutcome",
    "RecallConfig",
    "RecallEngine",
    "RecallResult",
    "ScoredNode",
]
