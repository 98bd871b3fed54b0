"""JSON shapes returned to operation callers."""

from __future__ import annotations

from typing import Any

from src.genesis.memory.models import CubePosition, Edge, LedgerEntry, MemoryNode


def node_view(node: MemoryNode, **extra: Any) -> dict[str, Any]:
    data = {
        "id": node.id,
        "content": node.content,
        "type": node.modality.value,
        "depth": node.depth,
        "gravity": node.gravity,
        "salience": node.salience,
        "confidence": node.confidence,
        "tags": list(node.tags),
        "source": node.source_type,
        "accessCount": node.access_count,
        "createdAt": node.created_at,
        "lastAccessed": node.last_accessed,
    }
    data.update(extra)
    return data


def node_brief(node: MemoryNode, max_length: int = 100) -> dict[str, Any]:
    """Short form used in aggregate views."""
    content = node.content if len(node.content) <= max_length else node.content[:max_length] + "..."
    return {
        "id": node.id,
        "content": content,
        "type": node.modality.value,
        "gravity": node.gravity,
        "depth": node.depth,
        "tags": list(node.tags),
    }


def edge_view(edge: Edge) -> dict[str, Any]:
    return {
        "id": edge.id,
        "source": edge.source_id,
        "target": edge.target_id,
        "type": edge.relation_type.value,
        "weight": edge.weight,
        "context": edge.context,
        "strengthenedCount": edge.strengthened_count,
    }


def ledger_view(entry: LedgerEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "type": entry.entry_type.value,
        "content": entry.content,
        "confidence": entry.confidence,
        "nodeId": entry.node_id,
        "actor": entry.actor,
        "createdAt": entry.created_at,
    }


def cube_view(cube: CubePosition) -> dict[str, Any]:
    return {
        "trustLevel": cube.trust_level,
        "accessDepth": cube.access_depth,
        "roleClarity": cube.role_clarity,
        "updatedAt": cube.updated_at,
    }
