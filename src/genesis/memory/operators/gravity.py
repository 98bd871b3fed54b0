"""GravityController - decay and reinforcement of memory nodes.

Two scalars move over a node's life:
- gravity (importance) rises through reinforcement and passive access, and
  never above the node's salience;
- depth (distance from core identity) rises through `forget` and is never
  lowered automatically.

The arithmetic lives in pure helpers below; the storage backend applies the
same rules as single atomic updates.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from src.genesis.errors import NotFoundError, ValidationError
from src.genesis.memory.models import MemoryNode
from src.genesis.memory.storage.base import GraphStorageBackend


@dataclass
class GravityConfig:
    """Configuration for gravity/depth operators."""
    access_boost: float = 1.1       # Multiplicative gravity boost per retrieval
    forget_amount: float = 0.1      # Default depth increase for forget
    reinforce_amount: float = 0.5   # Default gravity increase for reinforce


def boosted_gravity(gravity: float, salience: float, factor: float) -> float:
    """Gravity after one access: `min(salience, gravity * factor)`."""
    return min(salience, gravity * factor)


def reinforced_gravity(gravity: float, salience: float, amount: float) -> float:
    """Gravity after reinforcement: `min(salience, gravity + amount)`."""
    return min(salience, gravity + amount)


def deepened(depth: float, amount: float) -> float:
    return depth + amount


def _check_amount(amount: float) -> float:
    if amount < 0:
        raise ValidationError("amount must be >= 0", {"field": "amount", "value": amount})
    return float(amount)


@dataclass
class ReinforceOutcome:
    """Nodes reinforced plus explicitly requested ids that were not found."""
    nodes: list[MemoryNode]
    missing: list[str]

    @property
    def count(self) -> int:
        return len(self.nodes)


class GravityController:
    """Applies forget/reinforce to nodes of one graph."""

    def __init__(self, backend: GraphStorageBackend, config: GravityConfig | None = None):
        self.backend = backend
        self.config = config or GravityConfig()

    async def forget(self, node: MemoryNode, amount: float | None = None) -> MemoryNode:
        """Push a node away from core: `depth += amount`. Content is untouched."""
        amount = _check_amount(self.config.forget_amount if amount is None else amount)

        updated = await self.backend.add_depth(node.id, amount)
        if updated is None:
            raise NotFoundError(f"Node not found: {node.id}", {"node_id": node.id})
        await self.backend.bump_graph(node.graph_id)

        logger.debug(f"[Gravity] forget {node.id}: depth {node.depth:.3f} -> {updated.depth:.3f}")
        return updated

    async def reinforce(
        self,
        graph_id: str,
        tags: list[str] | None = None,
        node_ids: list[str] | None = None,
        amount: float | None = None,
    ) -> ReinforceOutcome:
        """Raise gravity of every node matching any tag or listed id.

        Selection is the union of both selectors. Ids that do not exist in the
        graph are reported, not raised. Matching nothing is a no-op.
        """
        amount = _check_amount(self.config.reinforce_amount if amount is None else amount)

        selected: dict[str, None] = {}
        if tags:
            for node in await self.backend.list_nodes(graph_id, tags=tags):
                selected[node.id] = None

        missing: list[str] = []
        for node_id in node_ids or []:
            if node_id in selected:
                continue
            node = await self.backend.get_node(node_id)
            if node is None or node.graph_id != graph_id:
                missing.append(node_id)
            else:
                selected[node_id] = None

        reinforced: list[MemoryNode] = []
        for node_id in selected:
            updated = await self.backend.add_gravity(node_id, amount)
            if updated is not None:
                reinforced.append(updated)

        if reinforced:
            await self.backend.bump_graph(graph_id)

        logger.debug(
            f"[Gravity] reinforce +{amount}: {len(reinforced)} nodes, {len(missing)} missing"
        )
        return ReinforceOutcome(nodes=reinforced, missing=missing)
