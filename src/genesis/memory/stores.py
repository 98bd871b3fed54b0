"""Graph, node and edge stores.

The stores own the data-model rules on top of a storage backend: graph
counters, default and clamped field values, same-graph edges and the audited
cascade delete.
"""

from __future__ import annotations

import time
from typing import Any

from loguru import logger

from src.genesis.errors import ConflictError, NotFoundError, ValidationError
from src.genesis.memory.models import (
    AuditEntry,
    content_hash,
    Edge,
    Graph,
    MemoryNode,
    Modality,
    RelationType,
)
from src.genesis.memory.storage.base import GraphStorageBackend

# Fields the audited update path may change. Content never changes.
UPDATABLE_FIELDS = ("gravity", "salience", "confidence", "strength", "tags")

# Weight added when an existing edge is related again, capped at 1.
EDGE_STRENGTHEN_STEP = 0.1


def coerce_enum(enum_cls, value, name: str):
    """Enum member for `value`, or ValidationError listing the allowed values."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [m.value for m in enum_cls]
        raise ValidationError(
            f"Invalid {name}: {value!r}", {"field": name, "allowed": allowed}
        ) from None


def _non_negative(name: str, value: float) -> float:
    if value < 0:
        raise ValidationError(f"{name} must be >= 0", {"field": name, "value": value})
    return float(value)


def _unit_interval(name: str, value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValidationError(f"{name} must be between 0 and 1", {"field": name, "value": value})
    return float(value)


class GraphStore:
    """One graph per subject, created lazily on first write."""

    def __init__(self, backend: GraphStorageBackend):
        self.backend = backend

    async def get_or_create_graph(self, subject_id: str) -> Graph:
        """Return the subject's graph, creating it if absent. Idempotent."""
        graph = await self.backend.get_graph_by_subject(subject_id)
        if graph is not None:
            return graph

        graph = await self.backend.create_graph(Graph(subject_id=subject_id))
        logger.debug(f"[Storage] Created graph {graph.id} for subject {subject_id}")
        return graph

    async def find_graph(self, subject_id: str) -> Graph | None:
        return await self.backend.get_graph_by_subject(subject_id)

    async def get_graph(self, subject_id: str) -> Graph:
        graph = await self.backend.get_graph_by_subject(subject_id)
        if graph is None:
            raise NotFoundError(f"No memory graph for subject {subject_id}", {"subject_id": subject_id})
        return graph

    async def bump_version(self, graph_id: str) -> Graph | None:
        return await self.backend.bump_graph(graph_id)


class NodeStore:
    """CRUD for memory nodes scoped to a graph."""

    def __init__(self, backend: GraphStorageBackend):
        self.backend = backend

    async def create_node(
        self,
        graph: Graph,
        content: str,
        modality: Modality | str = Modality.INSIGHT,
        salience: float = 1.0,
        gravity: float | None = None,
        depth: float = 0.5,
        confidence: float = 1.0,
        strength: float = 1.0,
        tags: list[str] | None = None,
        source_type: str | None = None,
        source_id: str | None = None,
    ) -> MemoryNode:
        """Insert a node and update the owning graph's counters.

        Gravity starts at salience unless given, and never above it.
        """
        if not content or not content.strip():
            raise ValidationError("content is required", {"field": "content"})

        salience = _non_negative("salience", salience)
        gravity = salience if gravity is None else min(salience, _non_negative("gravity", gravity))

        now = time.time()
        node = MemoryNode(
            graph_id=graph.id,
            content=content,
            modality=coerce_enum(Modality, modality, "modality"),
            gravity=gravity,
            salience=salience,
            depth=_non_negative("depth", depth),
            confidence=_unit_interval("confidence", confidence),
            strength=_non_negative("strength", strength),
            tags=list(dict.fromkeys(tags or [])),
            source_type=source_type,
            source_id=source_id,
            created_at=now,
            updated_at=now,
            last_accessed=now,
        )

        await self.backend.put_node(node)
        await self.backend.bump_graph(graph.id, node_delta=1, memory_at=now)
        return node

    async def get_node(self, node_id: str) -> MemoryNode:
        node = await self.backend.get_node(node_id)
        if node is None:
            raise NotFoundError(f"Node not found: {node_id}", {"node_id": node_id})
        return node

    async def get_node_in_graph(self, node_id: str, graph_id: str) -> MemoryNode:
        """Like get_node, but nodes of other graphs count as missing."""
        node = await self.backend.get_node(node_id)
        if node is None or node.graph_id != graph_id:
            raise NotFoundError(f"Node not found: {node_id}", {"node_id": node_id})
        return node

    async def find_by_content(self, graph_id: str, content: str) -> list[MemoryNode]:
        return await self.backend.find_nodes_by_hash(graph_id, content_hash(content))

    async def list_nodes(
        self,
        graph_id: str,
        modalities: list[Modality | str] | None = None,
        min_gravity: float | None = None,
        tags: list[str] | None = None,
        limit: int | None = 50,
    ) -> list[MemoryNode]:
        """Nodes ordered by gravity descending."""
        return await self.backend.list_nodes(
            graph_id,
            modalities=[coerce_enum(Modality, m, "modality") for m in modalities or []],
            min_gravity=min_gravity,
            tags=tags,
            limit=limit,
        )

    async def update_node_fields(self, node_id: str, partial: dict[str, Any]) -> MemoryNode:
        """Patch mutable fields. Gravity is clamped to the resulting salience."""
        unknown = set(partial) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                {"fields": sorted(unknown)},
            )

        node = await self.get_node(node_id)
        fields: dict[str, Any] = {}
        for name, value in partial.items():
            if name == "tags":
                fields["tags"] = list(dict.fromkeys(value or []))
            elif name == "confidence":
                fields["confidence"] = _unit_interval(name, value)
            else:
                fields[name] = _non_negative(name, value)

        salience = fields.get("salience", node.salience)
        gravity = fields.get("gravity", node.gravity)
        if gravity > salience:
            fields["gravity"] = salience

        updated = await self.backend.update_node_fields(node_id, fields)
        if updated is None:
            raise NotFoundError(f"Node not found: {node_id}", {"node_id": node_id})
        return updated

    async def touch_access(self, node_id: str, boost_factor: float = 1.1) -> MemoryNode:
        """Record a retrieval: `gravity = min(salience, gravity * boost_factor)`."""
        node = await self.backend.boost_access(node_id, boost_factor, time.time())
        if node is None:
            raise NotFoundError(f"Node not found: {node_id}", {"node_id": node_id})
        return node

    async def delete_node(self, subject_id: str, node_id: str, actor: str = "system") -> dict[str, Any]:
        """Delete edges, embedding and node, then fix counts and audit.

        The audit entry keeps the content hash and modality, never the content.
        """
        node = await self.get_node(node_id)

        removed_edges = await self.backend.delete_edges_for_node(node_id)
        await self.backend.delete_embedding(node_id)
        await self.backend.delete_node(node_id)
        await self.backend.bump_graph(node.graph_id, node_delta=-1, edge_delta=-removed_edges)

        await self.backend.append_audit(AuditEntry(
            subject_id=subject_id,
            operation="node.deleted",
            entity_id=node_id,
            actor=actor,
            details={
                "content_hash": node.content_hash,
                "modality": node.modality.value,
                "edges_removed": removed_edges,
            },
        ))

        logger.info(f"[Storage] Deleted node {node_id} ({removed_edges} edges)")
        return {"deleted": node_id, "edgesRemoved": removed_edges}


class EdgeStore:
    """Typed, weighted relations between nodes of one graph."""

    def __init__(self, backend: GraphStorageBackend):
        self.backend = backend

    async def create_edge(
        self,
        source_id: str,
        target_id: str,
        relation_type: RelationType | str,
        weight: float | None = None,
        context: str | None = None,
    ) -> Edge:
        source = await self.backend.get_node(source_id)
        if source is None:
            raise NotFoundError(f"Source node not found: {source_id}", {"node_id": source_id})
        target = await self.backend.get_node(target_id)
        if target is None:
            raise NotFoundError(f"Target node not found: {target_id}", {"node_id": target_id})

        if source.graph_id != target.graph_id:
            raise ConflictError(
                "cross-graph edge rejected",
                {"source_graph": source.graph_id, "target_graph": target.graph_id},
            )

        kind = coerce_enum(RelationType, relation_type, "relationType")
        weight = 1.0 if weight is None else _unit_interval("weight", weight)
        existing = await self.backend.find_edge(source_id, target_id, kind)
        if existing is not None:
            # Relating an already related pair strengthens the edge instead of
            # adding a parallel one; the edge count stays the same.
            edge = await self.backend.strengthen_edge(existing.id, EDGE_STRENGTHEN_STEP, time.time())
            await self.backend.bump_graph(edge.graph_id)
            logger.debug(
                f"[Storage] Strengthened edge {edge.id} to {edge.weight:.2f} "
                f"({edge.strengthened_count}x)"
            )
            return edge

        edge = Edge(
            graph_id=source.graph_id,
            source_id=source_id,
            target_id=target_id,
            relation_type=kind,
            weight=weight,
            context=context,
        )

        await self.backend.put_edge(edge)
        await self.backend.bump_graph(edge.graph_id, edge_delta=1)
        return edge

    async def list_edges_for_node(self, node_id: str, direction: str = "out") -> list[Edge]:
        return await self.backend.list_edges_for_node(node_id, direction)

    async def list_graph_edges(self, graph_id: str, limit: int | None = 100) -> list[Edge]:
        return await self.backend.list_graph_edges(graph_id, limit)
