"""PostgreSQL storage backend.

Persistent storage for graphs, nodes, edges, embeddings, the ledger and the
audit log, using asyncpg. Every numeric mutation is a single UPDATE so
concurrent writers never lose an increment.
"""

from __future__ import annotations

import json
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, AsyncIterator

import asyncpg
from loguru import logger

from src.genesis.errors import StorageError
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
class PostgresConfig:
    """Configuration for PostgreSQL connection."""
    host: str = "localhost"
    port: int = 5432
    database: str = "genesis"
    user: str = ""       # Empty = use current system user
    password: str = ""
    min_connections: int = 2
    max_connections: int = 10


# SQL for creating tables
CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS genesis_graphs (
    id TEXT PRIMARY KEY,
    subject_id TEXT NOT NULL UNIQUE,
    node_count INTEGER NOT NULL DEFAULT 0,
    edge_count INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 1,
    created_at DOUBLE PRECISION NOT NULL,
    updated_at DOUBLE PRECISION NOT NULL,
    oldest_memory_at DOUBLE PRECISION,
    newest_memory_at DOUBLE PRECISION
);

CREATE TABLE IF NOT EXISTS genesis_nodes (
    id TEXT PRIMARY KEY,
    graph_id TEXT NOT NULL REFERENCES genesis_graphs(id),
    content TEXT NOT NULL,
    content_hash VARCHAR(64) NOT NULL,
    modality VARCHAR(32) NOT NULL,
    gravity DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    salience DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    depth DOUBLE PRECISION NOT NULL DEFAULT 0.5,
    confidence DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    strength DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    tags TEXT[] NOT NULL DEFAULT '{}',
    source_type TEXT,
    source_id TEXT,
    access_count INTEGER NOT NULL DEFAULT 0,
    created_at DOUBLE PRECISION NOT NULL,
    updated_at DOUBLE PRECISION NOT NULL,
    last_accessed DOUBLE PRECISION NOT NULL
);

CREATE TABLE IF NOT EXISTS genesis_edges (
    id TEXT PRIMARY KEY,
    graph_id TEXT NOT NULL REFERENCES genesis_graphs(id),
    source_id TEXT NOT NULL,
    target_id TEXT NOT NULL,
    relation_type VARCHAR(32) NOT NULL,
    weight DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    context TEXT,
    created_at DOUBLE PRECISION NOT NULL,
    strengthened_count INTEGER NOT NULL DEFAULT 0,
    last_strengthened DOUBLE PRECISION
);

CREATE TABLE IF NOT EXISTS genesis_embeddings (
    node_id TEXT PRIMARY KEY,
    model TEXT NOT NULL,
    vector DOUBLE PRECISION[] NOT NULL,
    created_at DOUBLE PRECISION NOT NULL
);

CREATE TABLE IF NOT EXISTS genesis_ledger (
    id TEXT PRIMARY KEY,
    subject_id TEXT NOT NULL,
    entry_type VARCHAR(32) NOT NULL,
    content TEXT NOT NULL,
    confidence DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    node_id TEXT,
    actor TEXT NOT NULL,
    created_at DOUBLE PRECISION NOT NULL
);

CREATE TABLE IF NOT EXISTS genesis_audit_log (
    id TEXT PRIMARY KEY,
    subject_id TEXT NOT NULL,
    operation VARCHAR(64) NOT NULL,
    entity_id TEXT NOT NULL,
    actor TEXT NOT NULL,
    details JSONB NOT NULL DEFAULT '{}',
    timestamp DOUBLE PRECISION NOT NULL
);

CREATE TABLE IF NOT EXISTS genesis_cube_positions (
    subject_id TEXT PRIMARY KEY,
    trust_level DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    access_depth DOUBLE PRECISION NOT NULL DEFAULT 1.0,
    role_clarity DOUBLE PRECISION NOT NULL DEFAULT 2.0,
    updated_at DOUBLE PRECISION NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_genesis_nodes_graph ON genesis_nodes(graph_id, gravity DESC);
CREATE INDEX IF NOT EXISTS idx_genesis_nodes_hash ON genesis_nodes(graph_id, content_hash);
CREATE INDEX IF NOT EXISTS idx_genesis_edges_source ON genesis_edges(source_id);
CREATE INDEX IF NOT EXISTS idx_genesis_edges_target ON genesis_edges(target_id);
CREATE INDEX IF NOT EXISTS idx_genesis_edges_pair ON genesis_edges(source_id, target_id, relation_type);
CREATE INDEX IF NOT EXISTS idx_genesis_ledger_subject ON genesis_ledger(subject_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_genesis_audit_subject ON genesis_audit_log(subject_id, timestamp DESC);
"""

DROP_TABLES_SQL = """
DROP TABLE IF EXISTS genesis_edges CASCADE;
DROP TABLE IF EXISTS genesis_embeddings CASCADE;
DROP TABLE IF EXISTS genesis_nodes CASCADE;
DROP TABLE IF EXISTS genesis_graphs CASCADE;
DROP TABLE IF EXISTS genesis_ledger CASCADE;
DROP TABLE IF EXISTS genesis_audit_log CASCADE;
DROP TABLE IF EXISTS genesis_cube_positions CASCADE;
"""

# Columns update_node_fields may touch
_UPDATABLE_NODE_COLUMNS = {
    "gravity", "salience", "depth", "confidence", "strength", "tags",
    "source_type", "source_id",
}


class PostgresBackend(GraphStorageBackend):
    """asyncpg-backed storage.

    `transaction()` binds one pooled connection to a context variable; every
    call made inside the block runs on that connection.
    """

    def __init__(self, config: PostgresConfig | None = None):
        self.config = config or PostgresConfig()
        self._pool: asyncpg.Pool | None = None
        self._tx: ContextVar[asyncpg.Connection | None] = ContextVar(
            f"genesis_pg_tx_{id(self)}", default=None
        )
        self._connected = False

    async def connect(self) -> None:
        """Establish connection pool and ensure tables exist."""
        # Build connection kwargs (empty user = use system user)
        conn_kwargs = {
            "host": self.config.host,
            "port": self.config.port,
            "database": self.config.database,
            "min_size": self.config.min_connections,
            "max_size": self.config.max_connections,
        }
        if self.config.user:
            conn_kwargs["user"] = self.config.user
        if self.config.password:
            conn_kwargs["password"] = self.config.password

        try:
            self._pool = await asyncpg.create_pool(**conn_kwargs)
            async with self._pool.acquire() as conn:
                await conn.execute(CREATE_TABLES_SQL)
        except (asyncpg.PostgresError, OSError) as e:
            raise StorageError(f"Cannot connect to PostgreSQL: {e}") from e

        self._connected = True
        logger.info(
            f"[Storage] Connected to PostgreSQL "
            f"{self.config.host}:{self.config.port}/{self.config.database}"
        )

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
        self._pool = None
        self._connected = False

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        bound = self._tx.get()
        try:
            if bound is not None:
                yield bound
            else:
                if self._pool is None:
                    raise StorageError("PostgreSQL backend is not connected")
                async with self._pool.acquire() as conn:
                    yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise StorageError(
                f"PostgreSQL operation failed: {e}",
                {"sqlstate": getattr(e, "sqlstate", None)},
            ) from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._tx.get() is not None:
            yield
            return

        async with self._connection() as conn:
            async with conn.transaction():
                token = self._tx.set(conn)
                try:
                    yield
                finally:
                    self._tx.reset(token)

    async def clear(self) -> None:
        async with self._connection() as conn:
            await conn.execute(
                "TRUNCATE genesis_edges, genesis_embeddings, genesis_nodes, genesis_graphs, "
                "genesis_ledger, genesis_audit_log, genesis_cube_positions"
            )

    # ==================== Graphs ====================

    async def get_graph(self, graph_id: str) -> Graph | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM genesis_graphs WHERE id = $1", graph_id)
            return self._row_to_graph(row) if row else None

    async def get_graph_by_subject(self, subject_id: str) -> Graph | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM genesis_graphs WHERE subject_id = $1", subject_id
            )
            return self._row_to_graph(row) if row else None

    async def create_graph(self, graph: Graph) -> Graph:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO genesis_graphs (id, subject_id, node_count, edge_count, version,
                                            created_at, updated_at, oldest_memory_at, newest_memory_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                ON CONFLICT (subject_id) DO NOTHING
                """,
                graph.id, graph.subject_id, graph.node_count, graph.edge_count, graph.version,
                graph.created_at, graph.updated_at, graph.oldest_memory_at, graph.newest_memory_at,
            )
            row = await conn.fetchrow(
                "SELECT * FROM genesis_graphs WHERE subject_id = $1", graph.subject_id
            )
            return self._row_to_graph(row)

    async def bump_graph(
        self,
        graph_id: str,
        node_delta: int = 0,
        edge_delta: int = 0,
        memory_at: float | None = None,
    ) -> Graph | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE genesis_graphs
                SET node_count = GREATEST(0, node_count + $2),
                    edge_count = GREATEST(0, edge_count + $3),
                    version = version + 1,
                    updated_at = $4,
                    newest_memory_at = COALESCE($5, newest_memory_at),
                    oldest_memory_at = COALESCE(oldest_memory_at, $5)
                WHERE id = $1
                RETURNING *
                """,
                graph_id, node_delta, edge_delta, time.time(), memory_at,
            )
            return self._row_to_graph(row) if row else None

    # ==================== Nodes ====================

    async def put_node(self, node: MemoryNode) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO genesis_nodes (id, graph_id, content, content_hash, modality, gravity,
                                           salience, depth, confidence, strength, tags, source_type,
                                           source_id, access_count, created_at, updated_at, last_accessed)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
                """,
                node.id, node.graph_id, node.content, node.content_hash, node.modality.value,
                node.gravity, node.salience, node.depth, node.confidence, node.strength,
                list(node.tags), node.source_type, node.source_id, node.access_count,
                node.created_at, node.updated_at, node.last_accessed,
            )

    async def get_node(self, node_id: str) -> MemoryNode | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM genesis_nodes WHERE id = $1", node_id)
            return self._row_to_node(row) if row else None

    async def list_nodes(
        self,
        graph_id: str,
        modalities: list[Modality] | None = None,
        min_gravity: float | None = None,
        tags: list[str] | None = None,
        limit: int | None = None,
    ) -> list[MemoryNode]:
        clauses = ["graph_id = $1"]
        params: list[Any] = [graph_id]

        if modalities:
            params.append([m.value for m in modalities])
            clauses.append(f"modality = ANY(${len(params)}::text[])")
        if min_gravity is not None:
            params.append(min_gravity)
            clauses.append(f"gravity >= ${len(params)}")
        if tags:
            params.append(list(tags))
            clauses.append(f"tags && ${len(params)}::text[]")

        sql = f"SELECT * FROM genesis_nodes WHERE {' AND '.join(clauses)} ORDER BY gravity DESC, id"
        if limit is not None:
            params.append(limit)
            sql += f" LIMIT ${len(params)}"

        async with self._connection() as conn:
            rows = await conn.fetch(sql, *params)
            return [self._row_to_node(row) for row in rows]

    async def find_nodes_by_hash(self, graph_id: str, content_hash: str) -> list[MemoryNode]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT * FROM genesis_nodes WHERE graph_id = $1 AND content_hash = $2 ORDER BY created_at",
                graph_id, content_hash,
            )
            return [self._row_to_node(row) for row in rows]

    async def update_node_fields(self, node_id: str, fields: dict[str, Any]) -> MemoryNode | None:
        unknown = set(fields) - _UPDATABLE_NODE_COLUMNS
        if unknown:
            raise StorageError(f"Cannot update node columns: {sorted(unknown)}")

        assignments = []
        params: list[Any] = [node_id]
        for name, value in fields.items():
            params.append(list(value) if name == "tags" else value)
            assignments.append(f"{name} = ${len(params)}")
        params.append(time.time())
        assignments.append(f"updated_at = ${len(params)}")

        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"UPDATE genesis_nodes SET {', '.join(assignments)} WHERE id = $1 RETURNING *",
                *params,
            )
            return self._row_to_node(row) if row else None

    async def add_gravity(self, node_id: str, amount: float) -> MemoryNode | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE genesis_nodes
                SET gravity = LEAST(salience, gravity + $2), updated_at = $3
                WHERE id = $1
                RETURNING *
                """,
                node_id, amount, time.time(),
            )
            return self._row_to_node(row) if row else None

    async def boost_access(self, node_id: str, factor: float, now: float) -> MemoryNode | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE genesis_nodes
                SET gravity = LEAST(salience, gravity * $2),
                    access_count = access_count + 1,
                    last_accessed = $3
                WHERE id = $1
                RETURNING *
                """,
                node_id, factor, now,
            )
            return self._row_to_node(row) if row else None

    async def add_depth(self, node_id: str, amount: float) -> MemoryNode | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE genesis_nodes
                SET depth = depth + $2, updated_at = $3
                WHERE id = $1
                RETURNING *
                """,
                node_id, amount, time.time(),
            )
            return self._row_to_node(row) if row else None

    async def delete_node(self, node_id: str) -> bool:
        async with self._connection() as conn:
            result = await conn.execute("DELETE FROM genesis_nodes WHERE id = $1", node_id)
            return result == "DELETE 1"

    async def node_stats(self, graph_id: str, since: float) -> dict[str, Any]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT COUNT(*) AS count,
                       COALESCE(AVG(depth), 0) AS avg_depth,
                       COALESCE(AVG(gravity), 0) AS avg_gravity,
                       COUNT(*) FILTER (WHERE created_at >= $2) AS created_since,
                       COUNT(*) FILTER (WHERE access_count > 0 AND last_accessed >= $2) AS accessed_since
                FROM genesis_nodes
                WHERE graph_id = $1
                """,
                graph_id, since,
            )
            return {
                "count": row["count"],
                "avg_depth": float(row["avg_depth"]),
                "avg_gravity": float(row["avg_gravity"]),
                "created_since": row["created_since"],
                "accessed_since": row["accessed_since"],
            }

    # ==================== Edges ====================

    async def put_edge(self, edge: Edge) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO genesis_edges (id, graph_id, source_id, target_id, relation_type,
                                           weight, context, created_at, strengthened_count,
                                           last_strengthened)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                """,
                edge.id, edge.graph_id, edge.source_id, edge.target_id,
                edge.relation_type.value, edge.weight, edge.context, edge.created_at,
                edge.strengthened_count, edge.last_strengthened,
            )

    async def find_edge(
        self, source_id: str, target_id: str, relation_type: RelationType
    ) -> Edge | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                SELECT * FROM genesis_edges
                WHERE source_id = $1 AND target_id = $2 AND relation_type = $3
                ORDER BY created_at, id
                LIMIT 1
                """,
                source_id, target_id, relation_type.value,
            )
            return self._row_to_edge(row) if row else None

    async def strengthen_edge(self, edge_id: str, amount: float, now: float) -> Edge | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                UPDATE genesis_edges
                SET weight = LEAST(1.0, weight + $2),
                    strengthened_count = strengthened_count + 1,
                    last_strengthened = $3
                WHERE id = $1
                RETURNING *
                """,
                edge_id, amount, now,
            )
            return self._row_to_edge(row) if row else None

    async def list_edges_for_node(self, node_id: str, direction: str = "out") -> list[Edge]:
        if direction == "out":
            where = "source_id = $1"
        elif direction == "in":
            where = "target_id = $1"
        else:
            where = "source_id = $1 OR target_id = $1"

        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT * FROM genesis_edges WHERE {where} ORDER BY created_at, id", node_id
            )
            return [self._row_to_edge(row) for row in rows]

    async def list_graph_edges(self, graph_id: str, limit: int | None = None) -> list[Edge]:
        sql = "SELECT * FROM genesis_edges WHERE graph_id = $1 ORDER BY created_at, id"
        params: list[Any] = [graph_id]
        if limit is not None:
            sql += " LIMIT $2"
            params.append(limit)

        async with self._connection() as conn:
            rows = await conn.fetch(sql, *params)
            return [self._row_to_edge(row) for row in rows]

    async def delete_edges_for_node(self, node_id: str) -> int:
        async with self._connection() as conn:
            result = await conn.execute(
                "DELETE FROM genesis_edges WHERE source_id = $1 OR target_id = $1", node_id
            )
            return int(result.split()[-1])

    # ==================== Embeddings ====================

    async def get_embeddings(self, node_ids: list[str]) -> dict[str, list[float]]:
        if not node_ids:
            return {}
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT node_id, vector FROM genesis_embeddings WHERE node_id = ANY($1::text[])",
                list(node_ids),
            )
            return {row["node_id"]: list(row["vector"]) for row in rows}

    async def put_embedding(self, node_id: str, vector: list[float], model: str) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO genesis_embeddings (node_id, model, vector, created_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (node_id) DO UPDATE
                SET model = EXCLUDED.model, vector = EXCLUDED.vector, created_at = EXCLUDED.created_at
                """,
                node_id, model, list(vector), time.time(),
            )

    async def delete_embedding(self, node_id: str) -> None:
        async with self._connection() as conn:
            await conn.execute("DELETE FROM genesis_embeddings WHERE node_id = $1", node_id)

    # ==================== Ledger & audit ====================

    async def append_ledger(self, entry: LedgerEntry) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO genesis_ledger (id, subject_id, entry_type, content, confidence,
                                            node_id, actor, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                """,
                entry.id, entry.subject_id, entry.entry_type.value, entry.content,
                entry.confidence, entry.node_id, entry.actor, entry.created_at,
            )

    async def list_ledger(
        self,
        subject_id: str,
        limit: int = 10,
        entry_type: LedgerEntryType | None = None,
    ) -> list[LedgerEntry]:
        async with self._connection() as conn:
            if entry_type is not None:
                rows = await conn.fetch(
                    """
                    SELECT * FROM genesis_ledger
                    WHERE subject_id = $1 AND entry_type = $3
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    subject_id, limit, entry_type.value,
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT * FROM genesis_ledger
                    WHERE subject_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2
                    """,
                    subject_id, limit,
                )
            return [self._row_to_ledger(row) for row in rows]

    async def count_ledger(self, subject_id: str, since: float | None = None) -> int:
        async with self._connection() as conn:
            return await conn.fetchval(
                """
                SELECT COUNT(*) FROM genesis_ledger
                WHERE subject_id = $1 AND ($2::double precision IS NULL OR created_at >= $2)
                """,
                subject_id, since,
            )

    async def append_audit(self, entry: AuditEntry) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO genesis_audit_log (id, subject_id, operation, entity_id, actor,
                                               details, timestamp)
                VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7)
                """,
                entry.id, entry.subject_id, entry.operation, entry.entity_id, entry.actor,
                json.dumps(entry.details), entry.timestamp,
            )

    async def list_audit(self, subject_id: str, limit: int = 50) -> list[AuditEntry]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM genesis_audit_log
                WHERE subject_id = $1
                ORDER BY timestamp DESC
                LIMIT $2
                """,
                subject_id, limit,
            )
            return [
                AuditEntry(
                    id=row["id"],
                    subject_id=row["subject_id"],
                    operation=row["operation"],
                    entity_id=row["entity_id"],
                    actor=row["actor"],
                    details=json.loads(row["details"]) if row["details"] else {},
                    timestamp=row["timestamp"],
                )
                for row in rows
            ]

    # ==================== Cube position ====================

    async def get_cube_position(self, subject_id: str) -> CubePosition | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM genesis_cube_positions WHERE subject_id = $1", subject_id
            )
            if not row:
                return None
            return CubePosition(
                subject_id=row["subject_id"],
                trust_level=row["trust_level"],
                access_depth=row["access_depth"],
                role_clarity=row["role_clarity"],
                updated_at=row["updated_at"],
            )

    async def put_cube_position(self, position: CubePosition) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO genesis_cube_positions (subject_id, trust_level, access_depth,
                                                    role_clarity, updated_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (subject_id) DO UPDATE
                SET trust_level = EXCLUDED.trust_level,
                    access_depth = EXCLUDED.access_depth,
                    role_clarity = EXCLUDED.role_clarity,
                    updated_at = EXCLUDED.updated_at
                """,
                position.subject_id, position.trust_level, position.access_depth,
                position.role_clarity, position.updated_at,
            )

    # ==================== Helpers ====================

    def _row_to_graph(self, row: asyncpg.Record) -> Graph:
        return Graph(
            id=row["id"],
            subject_id=row["subject_id"],
            node_count=row["node_count"],
            edge_count=row["edge_count"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            oldest_memory_at=row["oldest_memory_at"],
            newest_memory_at=row["newest_memory_at"],
        )

    def _row_to_node(self, row: asyncpg.Record) -> MemoryNode:
        return MemoryNode.from_dict(dict(row))

    def _row_to_edge(self, row: asyncpg.Record) -> Edge:
        return Edge.from_dict(dict(row))

    def _row_to_ledger(self, row: asyncpg.Record) -> LedgerEntry:
        return LedgerEntry.from_dict(dict(row))
