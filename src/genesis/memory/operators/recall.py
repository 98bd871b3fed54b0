"""RecallEngine - "what matters now" retrieval.

Ranks a graph's nodes against a query by blending embedding similarity,
gravity and closeness to core:

    score = w_sim * cosine(query, node)
          + w_grav * gravity / (gravity + 1)
          + w_depth * 1 / (1 + depth)

Each term rises strictly with its input, so at equal gravity and depth higher
similarity always ranks higher, and the same holds for gravity. Ties break
by most recent access, then by node id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from src.genesis.errors import GenesisError, ValidationError
from src.genesis.memory.models import Edge, Graph, MemoryNode, Modality
from src.genesis.memory.operators.embedding import EmbeddingService
from src.genesis.memory.operators.gravity import GravityConfig
from src.genesis.memory.storage.base import GraphStorageBackend
from src.genesis.memory.stores import NodeStore
from src.genesis.memory.vector import cosine_similarity


@dataclass
class RecallConfig:
    """Configuration for recall ranking."""
    max_results: int = 10
    similarity_weight: float = 0.6
    gravity_weight: float = 0.3
    depth_weight: float = 0.1
    candidate_limit: int | None = None  # None = score every node in the graph


@dataclass
class ScoredNode:
    node: MemoryNode
    score: float
    similarity: float

    def to_dict(self) -> dict[str, Any]:
        data = self.node.to_dict()
        data["score"] = round(self.score, 6)
        data["similarity"] = round(self.similarity, 6)
        return data


@dataclass
class RecallResult:
    """Ranked nodes plus their one-hop context."""
    query: str
    nodes: list[ScoredNode] = field(default_factory=list)
    context: list[MemoryNode] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "nodes": [n.to_dict() for n in self.nodes],
            "context": [n.to_dict() for n in self.context],
            "edges": [e.to_dict() for e in self.edges],
            "count": len(self.nodes),
        }


def score_node(similarity: float, gravity: float, depth: float, config: RecallConfig) -> float:
    """Weighted blend; strictly increasing in similarity and gravity, decreasing in depth."""
    gravity = max(0.0, gravity)
    depth = max(0.0, depth)
    return (
        config.similarity_weight * similarity
        + config.gravity_weight * (gravity / (gravity + 1.0))
        + config.depth_weight * (1.0 / (1.0 + depth))
    )


def rank(scored: list[ScoredNode]) -> list[ScoredNode]:
    """Score descending, then most recent access, then id."""
    return sorted(scored, key=lambda s: (-s.score, -s.node.last_accessed, s.node.id))


class RecallEngine:
    """Scores candidate nodes and applies the access boost to the winners."""

    def __init__(
        self,
        backend: GraphStorageBackend,
        embedding: EmbeddingService,
        nodes: NodeStore,
        config: RecallConfig | None = None,
        gravity_config: GravityConfig | None = None,
    ):
        self.backend = backend
        self.embedding = embedding
        self.nodes = nodes
        self.config = config or RecallConfig()
        self.gravity_config = gravity_config or GravityConfig()

    async def recall(
        self,
        graph: Graph | None,
        query: str,
        max_results: int | None = None,
        modalities: list[Modality] | None = None,
        tags: list[str] | None = None,
        min_gravity: float | None = None,
        include_edges: bool = True,
    ) -> RecallResult:
        if not query or not query.strip():
            raise ValidationError("query is required", {"field": "query"})

        limit = self.config.max_results if max_results is None else max_results
        if limit < 1:
            raise ValidationError("maxResults must be >= 1", {"field": "maxResults", "value": limit})

        result = RecallResult(query=query)
        if graph is None:
            return result

        candidates = await self.backend.list_nodes(
            graph.id,
            modalities=modalities,
            min_gravity=min_gravity,
            tags=tags,
            limit=self.config.candidate_limit,
        )
        if not candidates:
            return result

        query_vector = await self.embedding.embed(query)
        vectors = await self._node_vectors(candidates, len(query_vector))

        scored = []
        for node in candidates:
            similarity = cosine_similarity(query_vector, vectors[node.id])
            scored.append(ScoredNode(
                node=node,
                score=score_node(similarity, node.gravity, node.depth, self.config),
                similarity=similarity,
            ))
        ranked = rank(scored)[:limit]

        for item in ranked:
            item.node = await self.touch(item.node)
        result.nodes = ranked

        if include_edges:
            result.context, result.edges = await self._one_hop([s.node for s in ranked])

        logger.debug(
            f"[Recall] '{query[:40]}' -> {len(ranked)} of {len(candidates)} nodes, "
            f"{len(result.context)} context"
        )
        return result

    async def _node_vectors(self, nodes: list[MemoryNode], dimension: int) -> dict[str, list[float]]:
        """Stored embeddings, computing and persisting any that are missing or stale."""
        stored = await self.backend.get_embeddings([n.id for n in nodes])
        stale = [n for n in nodes if len(stored.get(n.id) or []) != dimension]

        if stale:
            fresh = await self.embedding.embed_batch([n.content for n in stale])
            for node, vector in zip(stale, fresh):
                await self.backend.put_embedding(
                    node.id, vector, self.embedding.config.embedding_model
                )
                stored[node.id] = vector
            logger.debug(f"[Recall] Embedded {len(stale)} nodes lazily")

        return stored

    async def touch(self, node: MemoryNode) -> MemoryNode:
        """Best-effort access boost; failures are logged and the node returned as is."""
        try:
            return await self.nodes.touch_access(node.id, self.gravity_config.access_boost)
        except GenesisError as e:
            logger.warning(f"[Recall] Access boost failed for {node.id}: {e}")
            return node

    async def _one_hop(self, ranked: list[MemoryNode]) -> tuple[list[MemoryNode], list[Edge]]:
        """Targets of outgoing edges from the ranked nodes that are not ranked themselves."""
        context: list[MemoryNode] = []
        edges: list[Edge] = []
        seen: set[str] = {n.id for n in ranked}

        for node in ranked:
            for edge in await self.backend.list_edges_for_node(node.id, "out"):
                edges.append(edge)
                if edge.target_id in seen:
                    continue
                seen.add(edge.target_id)
                target = await self.backend.get_node(edge.target_id)
                if target is not None:
                    context.append(target)

        return context, edges
