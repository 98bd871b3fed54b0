"""MemoryManager - Main entry point for the Genesis memory graph.

Composes the stores, ledger, gravity operators, embedding service and recall
engine into per-subject operations. Every mutating call runs under that
subject's lock; reads do not lock.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

from loguru import logger

from src.genesis.errors import ConflictError, GenesisError, ValidationError
from src.genesis.memory.ledger import Ledger
from src.genesis.memory.locks import SubjectLocks
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
from src.genesis.memory.operators import (
    EmbeddingConfig,
    EmbeddingService,
    GravityConfig,
    GravityController,
    RecallConfig,
    RecallEngine,
    RecallResult,
    ReinforceOutcome,
)
from src.genesis.memory.storage import (
    GraphStorageBackend,
    InMemoryBackend,
    InMemoryConfig,
    PostgresBackend,
    PostgresConfig,
)
from src.genesis.memory.stores import EdgeStore, GraphStore, NodeStore, coerce_enum

CUBE_AXIS_MAX = 10.0


@dataclass
class MemoryConfig:
    """Master configuration for the memory system."""
    # Storage
    backend: str = "memory"         # "memory" | "postgres"
    memory_config: InMemoryConfig | None = None
    postgres_config: PostgresConfig | None = None

    # Operator configs
    embedding_config: EmbeddingConfig | None = None
    gravity_config: GravityConfig | None = None
    recall_config: RecallConfig | None = None

    # Node defaults
    default_salience: float = 1.0
    default_depth: float = 0.5
    reject_duplicates: bool = False     # Raise ConflictError instead of reporting duplicateOf
    eager_embedding: bool = True        # Embed at remember time (best-effort)

    # Composite views
    who_am_i_nodes: int = 20
    who_am_i_ledger: int = 10
    who_am_i_surfaced: int = 5
    touch_on_who_am_i: bool = False
    status_top_nodes: int = 5
    activity_window: float = 86400.0    # Seconds counted as "recent" by status
    snapshot_nodes: int = 50
    snapshot_ledger: int = 10


def create_backend(config: MemoryConfig) -> GraphStorageBackend:
    if config.backend == "postgres":
        return PostgresBackend(config.postgres_config or PostgresConfig())
    if config.backend == "memory":
        return InMemoryBackend(config.memory_config or InMemoryConfig())
    raise ValidationError(f"Unknown storage backend: {config.backend}", {"backend": config.backend})


class MemoryManager:
    """Per-subject memory graph API.

    Provides:
    - remember / relate / observe / forget / reinforce (serialized per subject)
    - recall (similarity + gravity + depth ranking with access boost)
    - who_am_i / status composite views
    - audited node update and delete, listings, cube position
    - snapshots and batches for the subconscious processor
    """

    def __init__(
        self,
        config: MemoryConfig | None = None,
        backend: GraphStorageBackend | None = None,
        embedding: EmbeddingService | None = None,
    ):
        self.config = config or MemoryConfig()

        self.backend = backend or create_backend(self.config)
        self.embedding = embedding or EmbeddingService(
            self.config.embedding_config or EmbeddingConfig()
        )
        self.locks = SubjectLocks()

        self.graphs = GraphStore(self.backend)
        self.nodes = NodeStore(self.backend)
        self.edges = EdgeStore(self.backend)
        self.ledger = Ledger(self.backend)
        self.gravity = GravityController(
            self.backend, self.config.gravity_config or GravityConfig()
        )
        self.recall_engine = RecallEngine(
            self.backend,
            self.embedding,
            self.nodes,
            self.config.recall_config or RecallConfig(),
            self.gravity.config,
        )

        self._initialized = False

    async def initialize(self) -> None:
        """Connect storage and prepare the embedding provider."""
        if self._initialized:
            return

        await self.backend.connect()
        await self.embedding.initialize()
        self._initialized = True
        logger.info(f"[Memory] Initialized with {type(self.backend).__name__}")

    async def shutdown(self) -> None:
        await self.backend.disconnect()
        await self.embedding.close()
        self._initialized = False

    @asynccontextmanager
    async def batch(self, subject_id: str) -> AsyncIterator[None]:
        """Hold the subject lock and one storage transaction for a group of calls."""
        async with self.locks.hold(subject_id):
            async with self.backend.transaction():
                yield

    # ==================== Core operations ====================

    async def remember(
        self,
        subject_id: str,
        content: str,
        modality: Modality | str = Modality.INSIGHT,
        tags: list[str] | None = None,
        depth: float | None = None,
        gravity: float | None = None,
        salience: float | None = None,
        confidence: float = 1.0,
        related_to: list[str] | None = None,
        source_type: str | None = None,
        source_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a node, creating the subject's graph on first write.

        Returns the node, the `references` edges made to `related_to`, whether
        the node was embedded, and ids of existing nodes with the same content.
        """
        async with self.locks.hold(subject_id):
            async with self.backend.transaction():
                graph = await self.graphs.get_or_create_graph(subject_id)

                targets = list(dict.fromkeys(related_to or []))
                for target_id in targets:
                    await self.nodes.get_node_in_graph(target_id, graph.id)

                duplicates = await self.nodes.find_by_content(graph.id, content or "")
                if duplicates and self.config.reject_duplicates:
                    raise ConflictError(
                        "Duplicate content already stored",
                        {"duplicateOf": [n.id for n in duplicates]},
                    )

                node = await self.nodes.create_node(
                    graph,
                    content,
                    modality=modality,
                    salience=self.config.default_salience if salience is None else salience,
                    gravity=gravity,
                    depth=self.config.default_depth if depth is None else depth,
                    confidence=confidence,
                    tags=tags,
                    source_type=source_type,
                    source_id=source_id,
                )

                edges = [
                    await self.edges.create_edge(node.id, target_id, RelationType.REFERENCES)
                    for target_id in targets
                ]

            embedded = await self._embed_node(node) if self.config.eager_embedding else False

        logger.debug(f"[Memory] remember {node.id} for {subject_id} ({len(edges)} edges)")
        return {
            "node": node,
            "edges": edges,
            "embedded": embedded,
            "duplicateOf": [n.id for n in duplicates],
        }

    async def _embed_node(self, node: MemoryNode) -> bool:
        try:
            vector = await self.embedding.embed(node.content)
            await self.backend.put_embedding(node.id, vector, self.embedding.config.embedding_model)
            return True
        except GenesisError as e:
            logger.warning(f"[Memory] Embedding deferred for {node.id}: {e}")
            return False

    async def recall(
        self,
        subject_id: str,
        query: str,
        max_results: int | None = None,
        modalities: list[Modality | str] | None = None,
        tags: list[str] | None = None,
        min_gravity: float | None = None,
        include_edges: bool = True,
    ) -> RecallResult:
        graph = await self.graphs.find_graph(subject_id)
        return await self.recall_engine.recall(
            graph,
            query,
            max_results=max_results,
            modalities=[coerce_enum(Modality, m, "nodeTypes") for m in modalities or []],
            tags=tags,
            min_gravity=min_gravity,
            include_edges=include_edges,
        )

    async def relate(
        self,
        subject_id: str,
        source_id: str,
        target_id: str,
        relation_type: RelationType | str,
        weight: float | None = None,
        context: str | None = None,
    ) -> Edge:
        async with self.locks.hold(subject_id):
            async with self.backend.transaction():
                graph = await self.graphs.get_graph(subject_id)
                await self.nodes.get_node_in_graph(source_id, graph.id)
                return await self.edges.create_edge(
                    source_id, target_id, relation_type, weight=weight, context=context
                )

    async def observe(
        self,
        subject_id: str,
        entry_type: LedgerEntryType | str,
        content: str,
        confidence: float = 1.0,
        node_id: str | None = None,
        actor: str = "manual",
    ) -> LedgerEntry:
        """Append to the subject's ledger. A referenced node must exist."""
        async with self.locks.hold(subject_id):
            if node_id:
                graph = await self.graphs.get_graph(subject_id)
                await self.nodes.get_node_in_graph(node_id, graph.id)
            return await self.ledger.append(
                subject_id, entry_type, content,
                confidence=confidence, node_id=node_id, actor=actor,
            )

    async def forget(
        self,
        subject_id: str,
        node_id: str,
        amount: float | None = None,
    ) -> tuple[MemoryNode, MemoryNode]:
        """Increase a node's depth. Returns (before, after)."""
        async with self.locks.hold(subject_id):
            async with self.backend.transaction():
                graph = await self.graphs.get_graph(subject_id)
                node = await self.nodes.get_node_in_graph(node_id, graph.id)
                return node, await self.gravity.forget(node, amount)

    async def reinforce(
        self,
        subject_id: str,
        tags: list[str] | None = None,
        node_ids: list[str] | None = None,
        amount: float | None = None,
    ) -> ReinforceOutcome:
        if not tags and not node_ids:
            raise ValidationError("reinforce needs tags and/or nodeIds", {"fields": ["tags", "nodeIds"]})

        async with self.locks.hold(subject_id):
            async with self.backend.transaction():
                graph = await self.graphs.find_graph(subject_id)
                if graph is None:
                    if amount is not None and amount < 0:
                        raise ValidationError("amount must be >= 0", {"field": "amount", "value": amount})
                    return ReinforceOutcome(nodes=[], missing=list(node_ids or []))
                return await self.gravity.reinforce(graph.id, tags, node_ids, amount)

    async def who_am_i(self, subject_id: str) -> dict[str, Any]:
        """Cube position, top-gravity nodes, recent ledger and surfaced insights."""
        cube = await self.get_cube_position(subject_id)
        graph = await self.graphs.find_graph(subject_id)

        top: list[MemoryNode] = []
        if graph is not None:
            top = await self.nodes.list_nodes(graph.id, limit=self.config.who_am_i_nodes)
            if self.config.touch_on_who_am_i:
                top = [await self.recall_engine.touch(n) for n in top]

        recent = await self.ledger.list_recent(subject_id, self.config.who_am_i_ledger)
        surfaced = await self.ledger.list_recent(
            subject_id, self.config.who_am_i_surfaced, LedgerEntryType.SURFACED
        )

        return {
            "cube": cube,
            "top_nodes": top,
            "recent_ledger": recent,
            "surfaced": surfaced,
        }

    async def status(self, subject_id: str) -> dict[str, Any]:
        """Aggregate statistics. Never mutates anything."""
        since = time.time() - self.config.activity_window
        graph = await self.graphs.find_graph(subject_id)
        ledger_total = await self.ledger.count(subject_id)
        ledger_recent = await self.ledger.count(subject_id, since)

        if graph is None:
            return {
                "graph": None,
                "node_count": 0,
                "edge_count": 0,
                "ledger_count": ledger_total,
                "avg_depth": 0.0,
                "avg_gravity": 0.0,
                "top_nodes": [],
                "recent_activity": {
                    "nodes_created": 0,
                    "nodes_accessed": 0,
                    "ledger_entries": ledger_recent,
                },
            }

        stats = await self.backend.node_stats(graph.id, since)
        top = await self.nodes.list_nodes(graph.id, limit=self.config.status_top_nodes)
        return {
            "graph": graph,
            "node_count": graph.node_count,
            "edge_count": graph.edge_count,
            "ledger_count": ledger_total,
            "avg_depth": stats["avg_depth"],
            "avg_gravity": stats["avg_gravity"],
            "top_nodes": top,
            "recent_activity": {
                "nodes_created": stats["created_since"],
                "nodes_accessed": stats["accessed_since"],
                "ledger_entries": ledger_recent,
            },
        }

    # ==================== Out-of-band node management ====================

    async def get_node(self, subject_id: str, node_id: str) -> MemoryNode:
        graph = await self.graphs.get_graph(subject_id)
        return await self.nodes.get_node_in_graph(node_id, graph.id)

    async def list_nodes(
        self,
        subject_id: str,
        modalities: list[Modality | str] | None = None,
        min_gravity: float | None = None,
        tags: list[str] | None = None,
        limit: int | None = 50,
    ) -> list[MemoryNode]:
        graph = await self.graphs.find_graph(subject_id)
        if graph is None:
            return []
        return await self.nodes.list_nodes(graph.id, modalities, min_gravity, tags, limit)

    async def list_edges(
        self,
        subject_id: str,
        node_id: str | None = None,
        direction: str = "both",
        limit: int | None = 100,
    ) -> list[Edge]:
        graph = await self.graphs.find_graph(subject_id)
        if graph is None:
            return []
        if node_id:
            await self.nodes.get_node_in_graph(node_id, graph.id)
            return await self.edges.list_edges_for_node(node_id, direction)
        return await self.edges.list_graph_edges(graph.id, limit)

    async def update_node(
        self,
        subject_id: str,
        node_id: str,
        fields: dict[str, Any],
        actor: str = "system",
    ) -> MemoryNode:
        """Patch gravity/salience/confidence/strength/tags and audit the change."""
        if not fields:
            raise ValidationError("No fields to update")

        async with self.locks.hold(subject_id):
            async with self.backend.transaction():
                graph = await self.graphs.get_graph(subject_id)
                before = await self.nodes.get_node_in_graph(node_id, graph.id)
                after = await self.nodes.update_node_fields(node_id, fields)

                changes = {
                    name: {"from": getattr(before, name), "to": getattr(after, name)}
                    for name in ("gravity", "salience", "confidence", "strength", "tags")
                    if getattr(before, name) != getattr(after, name)
                }
                await self.backend.append_audit(AuditEntry(
                    subject_id=subject_id,
                    operation="node.updated",
                    entity_id=node_id,
                    actor=actor,
                    details={"changes": changes},
                ))
                await self.graphs.bump_version(graph.id)
                return after

    async def delete_node(self, subject_id: str, node_id: str, actor: str = "system") -> dict[str, Any]:
        """Audited delete: edges, embedding, node, then counters."""
        async with self.locks.hold(subject_id):
            async with self.backend.transaction():
                graph = await self.graphs.get_graph(subject_id)
                await self.nodes.get_node_in_graph(node_id, graph.id)
                return await self.nodes.delete_node(subject_id, node_id, actor)

    async def list_audit(self, subject_id: str, limit: int = 50) -> list[AuditEntry]:
        return await self.backend.list_audit(subject_id, limit)

    # ==================== Cube position ====================

    async def get_cube_position(self, subject_id: str) -> CubePosition:
        position = await self.backend.get_cube_position(subject_id)
        return position or CubePosition(subject_id=subject_id)

    async def set_cube_position(
        self,
        subject_id: str,
        trust_level: float | None = None,
        access_depth: float | None = None,
        role_clarity: float | None = None,
    ) -> CubePosition:
        updates = {
            "trust_level": trust_level,
            "access_depth": access_depth,
            "role_clarity": role_clarity,
        }
        for name, value in updates.items():
            if value is not None and not 0.0 <= value <= CUBE_AXIS_MAX:
                raise ValidationError(
                    f"{name} must be between 0 and {CUBE_AXIS_MAX:g}",
                    {"field": name, "value": value},
                )

        async with self.locks.hold(subject_id):
            position = await self.get_cube_position(subject_id)
            for name, value in updates.items():
                if value is not None:
                    setattr(position, name, float(value))
            position.updated_at = time.time()
            await self.backend.put_cube_position(position)
            return position

    # ==================== Subconscious support ====================

    async def snapshot(self, subject_id: str) -> GraphSnapshot:
        """Top nodes and recent ledger, frozen for the subconscious processor."""
        graph: Graph | None = await self.graphs.find_graph(subject_id)
        nodes = (
            await self.nodes.list_nodes(graph.id, limit=self.config.snapshot_nodes)
            if graph else []
        )
        ledger = await self.ledger.list_recent(subject_id, self.config.snapshot_ledger)
        return GraphSnapshot(
            subject_id=subject_id,
            nodes=tuple(nodes),
            ledger=tuple(ledger),
            version=graph.version if graph else 0,
        )
