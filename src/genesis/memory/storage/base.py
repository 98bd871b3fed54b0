"""Abstract base class for graph storage backends.

A backend offers storage primitives only: point reads and writes by id,
scans by graph or subject with ordering and a limit, and atomic numeric updates
on named fields. Counting rules, validation and auditing live one layer up, in
the stores.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager

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


class GraphStorageBackend(ABC):
    """Storage interface for graphs, nodes, edges, embeddings and the ledger."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the storage."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the storage."""
        pass

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """Group every call made inside the block into one unit of work.

        On exception all writes made inside the block are undone. Nested
        blocks join the outermost one.
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove everything."""
        pass

    # ==================== Graphs ====================

    @abstractmethod
    async def get_graph(self, graph_id: str) -> Graph | None:
        pass

    @abstractmethod
    async def get_graph_by_subject(self, subject_id: str) -> Graph | None:
        pass

    @abstractmethod
    async def create_graph(self, graph: Graph) -> Graph:
        """Insert a graph unless the subject already has one.

        Returns whichever graph the subject owns afterwards.
        """
        pass

    @abstractmethod
    async def bump_graph(
        self,
        graph_id: str,
        node_delta: int = 0,
        edge_delta: int = 0,
        memory_at: float | None = None,
    ) -> Graph | None:
        """Atomically adjust counters and increment the version.

        Counts never drop below zero. `memory_at` sets the newest-memory
        timestamp and, if unset, the oldest one.
        """
        pass

    # ==================== Nodes ====================

    @abstractmethod
    async def put_node(self, node: MemoryNode) -> None:
        pass

    @abstractmethod
    async def get_node(self, node_id: str) -> MemoryNode | None:
        pass

    @abstractmethod
    async def list_nodes(
        self,
        graph_id: str,
        modalities: list[Modality] | None = None,
        min_gravity: float | None = None,
        tags: list[str] | None = None,
        limit: int | None = None,
    ) -> list[MemoryNode]:
        """Nodes ordered by gravity descending, then id.

        `tags` matches nodes carrying at least one of the given tags.
        """
        pass

    @abstractmethod
    async def find_nodes_by_hash(self, graph_id: str, content_hash: str) -> list[MemoryNode]:
        pass

    @abstractmethod
    async def update_node_fields(self, node_id: str, fields: dict[str, Any]) -> MemoryNode | None:
        """Overwrite the given columns and return the updated node."""
        pass

    @abstractmethod
    async def add_gravity(self, node_id: str, amount: float) -> MemoryNode | None:
        """Atomic `gravity = min(salience, gravity + amount)`."""
        pass

    @abstractmethod
    async def boost_access(self, node_id: str, factor: float, now: float) -> MemoryNode | None:
        """Atomic `gravity = min(salience, gravity * factor)` plus access bookkeeping."""
        pass

    @abstractmethod
    async def add_depth(self, node_id: str, amount: float) -> MemoryNode | None:
        """Atomic `depth = depth + amount`."""
        pass

    @abstractmethod
    async def delete_node(self, node_id: str) -> bool:
        pass

    @abstractmethod
    async def node_stats(self, graph_id: str, since: float) -> dict[str, Any]:
        """Aggregates: count, avg_depth, avg_gravity, created_since, accessed_since."""
        pass

    # ==================== Edges ====================

    @abstractmethod
    async def put_edge(self, edge: Edge) -> None:
        pass

    @abstractmethod
    async def find_edge(
        self, source_id: str, target_id: str, relation_type: RelationType
    ) -> Edge | None:
        """The edge source -> target of the given type, if one exists."""
        pass

    @abstractmethod
    async def strengthen_edge(self, edge_id: str, amount: float, now: float) -> Edge | None:
        """Atomic `weight = min(1, weight + amount)`, count and timestamp the strengthening."""
        pass

    @abstractmethod
    async def list_edges_for_node(self, node_id: str, direction: str = "out") -> list[Edge]:
        """Edges touching a node. direction: "out", "in" or "both"."""
        pass

    @abstractmethod
    async def list_graph_edges(self, graph_id: str, limit: int | None = None) -> list[Edge]:
        pass

    @abstractmethod
    async def delete_edges_for_node(self, node_id: str) -> int:
        """Delete every edge with the node as either endpoint. Returns the count."""
        pass

    # ==================== Embeddings ====================

    @abstractmethod
    async def get_embeddings(self, node_ids: list[str]) -> dict[str, list[float]]:
        """Stored vectors for the ids that have one."""
        pass

    @abstractmethod
    async def put_embedding(self, node_id: str, vector: list[float], model: str) -> None:
        pass

    @abstractmethod
    async def delete_embedding(self, node_id: str) -> None:
        pass

    # ==================== Ledger & audit ====================

    @abstractmethod
    async def append_ledger(self, entry: LedgerEntry) -> None:
        pass

    @abstractmethod
    async def list_ledger(
        self,
        subject_id: str,
        limit: int = 10,
        entry_type: LedgerEntryType | None = None,
    ) -> list[LedgerEntry]:
        """Most recent first."""
        pass

    @abstractmethod
    async def count_ledger(self, subject_id: str, since: float | None = None) -> int:
        pass

    @abstractmethod
    async def append_audit(self, entry: AuditEntry) -> None:
        pass

    @abstractmethod
    async def list_audit(self, subject_id: str, limit: int = 50) -> list[AuditEntry]:
        """Most recent first."""
        pass

    # ==================== Cube position ====================

    @abstractmethod
    async def get_cube_position(self, subject_id: str) -> CubePosition | None:
        pass

    @abstractmethod
    async def put_cube_position(self, position: CubePosition) -> None:
        pass
