"""In-memory storage backend.

Dicts for graphs, nodes, embeddings, ledger and cube positions; one NetworkX
multigraph for edges (parallel edges of different relation types are allowed).
Every read-modify-write completes without awaiting, so on a single event loop
each primitive is atomic.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Callable

import networkx as nx

from src.genesis.memory.models import (
    AuditEntry,
    CubePosition,
    Edge,
    Graph,
    LedgerEntry,
    LedgerEntryType,
    MemoryNode,
    Modality,
    RelationType,
)
from src.genesis.memory.storage.base import GraphStorageBackend


@dataclass
class InMemoryConfig:
    """Configuration for the in-memory backend."""
    copy_on_read: bool = True   # Return copies so callers cannot alter stored rows


def _copy_node(node: MemoryNode) -> MemoryNode:
    return replace(node, tags=list(node.tags))


_NODE_FIELDS = tuple(MemoryNode.__dataclass_fields__)


class InMemoryBackend(GraphStorageBackend):
    """Process-local backend used for development and tests.

    Transactions keep an undo journal per task context; on exception the
    journal is replayed in reverse, so concurrent writers on other subjects
    are never rolled back along with it.
    """

    def __init__(self, config: InMemoryConfig | None = None):
        self.config = config or InMemoryConfig()
        self._graphs: dict[str, Graph] = {}
        self._graph_by_subject: dict[str, str] = {}
        self._nodes: dict[str, MemoryNode] = {}
        self._edges: nx.MultiDiGraph = nx.MultiDiGraph()
        self._embeddings: dict[str, tuple[list[float], str]] = {}
        self._ledger: list[LedgerEntry] = []
        self._audit: list[AuditEntry] = []
        self._cube: dict[str, CubePosition] = {}
        self._journal: ContextVar[list[Callable[[], None]] | None] = ContextVar(
            f"genesis_memory_journal_{id(self)}", default=None
        )
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._journal.get() is not None:
            yield
            return

        journal: list[Callable[[], None]] = []
        token = self._journal.set(journal)
        try:
            yield
        except BaseException:
            for undo in reversed(journal):
                undo()
            raise
        finally:
            self._journal.reset(token)

    def _record(self, undo: Callable[[], None]) -> None:
        journal = self._journal.get()
        if journal is not None:
            journal.append(undo)

    def _out(self, node: MemoryNode) -> MemoryNode:
        return _copy_node(node) if self.config.copy_on_read else node

    async def clear(self) -> None:
        self._graphs.clear()
        self._graph_by_subject.clear()
        self._nodes.clear()
        self._edges.clear()
        self._embeddings.clear()
        self._ledger.clear()
        self._audit.clear()
        self._cube.clear()

    # ==================== Graphs ====================

    async def get_graph(self, graph_id: str) -> Graph | None:
        graph = self._graphs.get(graph_id)
        return replace(graph) if graph else None

    async def get_graph_by_subject(self, subject_id: str) -> Graph | None:
        graph_id = self._graph_by_subject.get(subject_id)
        return await self.get_graph(graph_id) if graph_id else None

    async def create_graph(self, graph: Graph) -> Graph:
        existing = self._graph_by_subject.get(graph.subject_id)
        if existing:
            return replace(self._graphs[existing])

        self._graphs[graph.id] = replace(graph)
        self._graph_by_subject[graph.subject_id] = graph.id

        def undo() -> None:
            self._graphs.pop(graph.id, None)
            self._graph_by_subject.pop(graph.subject_id, None)

        self._record(undo)
        return replace(graph)

    async def bump_graph(
        self,
        graph_id: str,
        node_delta: int = 0,
        edge_delta: int = 0,
        memory_at: float | None = None,
    ) -> Graph | None:
        graph = self._graphs.get(graph_id)
        if graph is None:
            return None

        previous = replace(graph)
        graph.node_count = max(0, graph.node_count + node_delta)
        graph.edge_count = max(0, graph.edge_count + edge_delta)
        graph.version += 1
        graph.updated_at = time.time()
        if memory_at is not None:
            graph.newest_memory_at = memory_at
            if graph.oldest_memory_at is None:
                graph.oldest_memory_at = memory_at

        self._record(lambda: self._graphs.__setitem__(graph_id, previous))
        return replace(graph)

    # ==================== Nodes ====================

    async def put_node(self, node: MemoryNode) -> None:
        self._nodes[node.id] = _copy_node(node)
        self._edges.add_node(node.id, graph_id=node.graph_id)

        def undo() -> None:
            self._nodes.pop(node.id, None)
            if self._edges.has_node(node.id):
                self._edges.remove_node(node.id)

        self._record(undo)

    async def get_node(self, node_id: str) -> MemoryNode | None:
        node = self._nodes.get(node_id)
        return self._out(node) if node else None

    async def list_nodes(
        self,
        graph_id: str,
        modalities: list[Modality] | None = None,
        min_gravity: float | None = None,
        tags: list[str] | None = None,
        limit: int | None = None,
    ) -> list[MemoryNode]:
        wanted = set(tags or [])
        nodes = [
            n for n in self._nodes.values()
            if n.graph_id == graph_id
            and (not modalities or n.modality in modalities)
            and (min_gravity is None or n.gravity >= min_gravity)
            and (not wanted or wanted.intersection(n.tags))
        ]
        nodes.sort(key=lambda n: (-n.gravity, n.id))
        if limit is not None:
            nodes = nodes[:limit]
        return [self._out(n) for n in nodes]

    async def find_nodes_by_hash(self, graph_id: str, content_hash: str) -> list[MemoryNode]:
        return [
            self._out(n) for n in self._nodes.values()
            if n.graph_id == graph_id and n.content_hash == content_hash
        ]

    def _mutate(self, node_id: str, change: Callable[[MemoryNode], None]) -> MemoryNode | None:
        node = self._nodes.get(node_id)
        if node is None:
            return None

        before = _copy_node(node)
        change(node)
        # Undo puts back only what this change set, so writes made meanwhile
        # outside the transaction (access boosts) survive a rollback.
        changed = {
            name: getattr(before, name)
            for name in _NODE_FIELDS
            if getattr(before, name) != getattr(node, name)
        }

        def undo() -> None:
            current = self._nodes.get(node_id)
            if current is not None:
                for name, value in changed.items():
                    setattr(current, name, value)

        self._record(undo)
        return self._out(node)

    async def update_node_fields(self, node_id: str, fields: dict[str, Any]) -> MemoryNode | None:
        def change(node: MemoryNode) -> None:
            for name, value in fields.items():
                setattr(node, name, list(value) if name == "tags" else value)
            node.updated_at = time.time()

        return self._mutate(node_id, change)

    async def add_gravity(self, node_id: str, amount: float) -> MemoryNode | None:
        def change(node: MemoryNode) -> None:
            node.gravity = min(node.salience, node.gravity + amount)
            node.updated_at = time.time()

        return self._mutate(node_id, change)

    async def boost_access(self, node_id: str, factor: float, now: float) -> MemoryNode | None:
        def change(node: MemoryNode) -> None:
            node.gravity = min(node.salience, node.gravity * factor)
            node.access_count += 1
            node.last_accessed = now

        return self._mutate(node_id, change)

    async def add_depth(self, node_id: str, amount: float) -> MemoryNode | None:
        def change(node: MemoryNode) -> None:
            node.depth = node.depth + amount
            node.updated_at = time.time()

        return self._mutate(node_id, change)

    async def delete_node(self, node_id: str) -> bool:
        node = self._nodes.pop(node_id, None)
        if node is None:
            return False

        had_vertex = self._edges.has_node(node_id)
        if had_vertex:
            self._edges.remove_node(node_id)

        def undo() -> None:
            self._nodes[node_id] = node
            if had_vertex and not self._edges.has_node(node_id):
                self._edges.add_node(node_id, graph_id=node.graph_id)

        self._record(undo)
        return True

    async def node_stats(self, graph_id: str, since: float) -> dict[str, Any]:
        nodes = [n for n in self._nodes.values() if n.graph_id == graph_id]
        count = len(nodes)
        return {
            "count": count,
            "avg_depth": sum(n.depth for n in nodes) / count if count else 0.0,
            "avg_gravity": sum(n.gravity for n in nodes) / count if count else 0.0,
            "created_since": sum(1 for n in nodes if n.created_at >= since),
            "accessed_since": sum(
                1 for n in nodes if n.access_count > 0 and n.last_accessed >= since
            ),
        }

    # ==================== Edges ====================

    async def put_edge(self, edge: Edge) -> None:
        self._edges.add_edge(edge.source_id, edge.target_id, key=edge.id, edge=replace(edge))

        def undo() -> None:
            if self._edges.has_edge(edge.source_id, edge.target_id, key=edge.id):
                self._edges.remove_edge(edge.source_id, edge.target_id, key=edge.id)

        self._record(undo)

    async def find_edge(
        self, source_id: str, target_id: str, relation_type: RelationType
    ) -> Edge | None:
        parallel = self._edges.get_edge_data(source_id, target_id) or {}
        matches = sorted(
            (attrs["edge"] for attrs in parallel.values() if attrs["edge"].relation_type == relation_type),
            key=lambda e: (e.created_at, e.id),
        )
        return replace(matches[0]) if matches else None

    async def strengthen_edge(self, edge_id: str, amount: float, now: float) -> Edge | None:
        edge = next((e for _, _, k, e in self._edges.edges(keys=True, data="edge") if k == edge_id), None)
        if edge is None:
            return None

        before = (edge.weight, edge.strengthened_count, edge.last_strengthened)
        edge.weight = min(1.0, edge.weight + amount)
        edge.strengthened_count += 1
        edge.last_strengthened = now

        def undo() -> None:
            edge.weight, edge.strengthened_count, edge.last_strengthened = before

        self._record(undo)
        return replace(edge)

    async def list_edges_for_node(self, node_id: str, direction: str = "out") -> list[Edge]:
        if not self._edges.has_node(node_id):
            return []

        found: dict[str, Edge] = {}
        if direction in ("out", "both"):
            for _, _, edge in self._edges.out_edges(node_id, data="edge"):
                found[edge.id] = edge
        if direction in ("in", "both"):
            for _, _, edge in self._edges.in_edges(node_id, data="edge"):
                found[edge.id] = edge

        edges = sorted(found.values(), key=lambda e: (e.created_at, e.id))
        return [replace(e) for e in edges]

    async def list_graph_edges(self, graph_id: str, limit: int | None = None) -> list[Edge]:
        edges = sorted(
            (e for _, _, e in self._edges.edges(data="edge") if e.graph_id == graph_id),
            key=lambda e: (e.created_at, e.id),
        )
        if limit is not None:
            edges = edges[:limit]
        return [replace(e) for e in edges]

    async def delete_edges_for_node(self, node_id: str) -> int:
        if not self._edges.has_node(node_id):
            return 0

        removed = [
            e for _, _, e in list(self._edges.out_edges(node_id, data="edge"))
            + list(self._edges.in_edges(node_id, data="edge"))
        ]
        unique = {e.id: e for e in removed}
        for edge in unique.values():
            self._edges.remove_edge(edge.source_id, edge.target_id, key=edge.id)

        def undo() -> None:
            for edge in unique.values():
                self._edges.add_edge(edge.source_id, edge.target_id, key=edge.id, edge=edge)

        self._record(undo)
        return len(unique)

    # ==================== Embeddings ====================

    async def get_embeddings(self, node_ids: list[str]) -> dict[str, list[float]]:
        return {
            node_id: list(self._embeddings[node_id][0])
            for node_id in node_ids
            if node_id in self._embeddings
        }

    def _restore_embedding(self, node_id: str, previous: tuple[list[float], str] | None) -> None:
        if previous is None:
            self._embeddings.pop(node_id, None)
        else:
            self._embeddings[node_id] = previous

    async def put_embedding(self, node_id: str, vector: list[float], model: str) -> None:
        previous = self._embeddings.get(node_id)
        self._embeddings[node_id] = (list(vector), model)
        self._record(lambda: self._restore_embedding(node_id, previous))

    async def delete_embedding(self, node_id: str) -> None:
        previous = self._embeddings.pop(node_id, None)
        self._record(lambda: self._restore_embedding(node_id, previous))

    # ==================== Ledger & audit ====================

    async def append_ledger(self, entry: LedgerEntry) -> None:
        self._ledger.append(entry)
        self._record(lambda: self._ledger.remove(entry))

    async def list_ledger(
        self,
        subject_id: str,
        limit: int = 10,
        entry_type: LedgerEntryType | None = None,
    ) -> list[LedgerEntry]:
        entries = [
            e for e in reversed(self._ledger)
            if e.subject_id == subject_id
            and (entry_type is None or e.entry_type == entry_type)
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    async def count_ledger(self, subject_id: str, since: float | None = None) -> int:
        return sum(
            1 for e in self._ledger
            if e.subject_id == subject_id and (since is None or e.created_at >= since)
        )

    async def append_audit(self, entry: AuditEntry) -> None:
        self._audit.append(entry)
        self._record(lambda: self._audit.remove(entry))

    async def list_audit(self, subject_id: str, limit: int = 50) -> list[AuditEntry]:
        entries = [e for e in reversed(self._audit) if e.subject_id == subject_id]
        return entries[:limit]

    # ==================== Cube position ====================

    async def get_cube_position(self, subject_id: str) -> CubePosition | None:
        position = self._cube.get(subject_id)
        return replace(position) if position else None

    async def put_cube_position(self, position: CubePosition) -> None:
        previous = self._cube.get(position.subject_id)
        self._cube[position.subject_id] = replace(position)

        def undo() -> None:
            if previous is None:
                self._cube.pop(position.subject_id, None)
            else:
                self._cube[position.subject_id] = previous

        self._record(undo)
