"""Graph operations: remember, recall, relate, forget, reinforce."""

from __future__ import annotations

from typing import Any

from src.genesis.memory.models import Modality, RelationType
from src.genesis.protocol.base import BaseOperation, OperationName
from src.genesis.protocol.schemas import (
    ForgetPayload,
    RecallPayload,
    ReinforcePayload,
    RelatePayload,
    RememberPayload,
)
from src.genesis.protocol.views import edge_view, node_view

MODALITY_VALUES = [m.value for m in Modality]
RELATION_VALUES = [r.value for r in RelationType]


class RememberOperation(BaseOperation):
    """Store a memory node, creating the subject's graph on first write."""

    payload_model = RememberPayload

    @property
    def name(self) -> OperationName:
        return OperationName.REMEMBER

    @property
    def description(self) -> str:
        return """Store a memory node in the Genesis graph. Use for decisions, insights, patterns, or important context that should persist across sessions.
Do NOT store conversation noise - only load-bearing information."""

    @property
    def input_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "content": {
                    "type": "string",
                    "description": "The memory content - capture the decision or insight, not the discussion",
                },
                "nodeType": {
                    "type": "string",
                    "enum": MODALITY_VALUES,
                    "description": "Type of memory node",
                },
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Tags for cross-session gravity bumping",
                },
                "depth": {
                    "type": "number",
                    "description": "Distance from core: 0 = core identity, 1 = periphery. Default 0.5",
                },
                "gravity": {
                    "type": "number",
                    "description": "Starting importance. Defaults to salience and never exceeds it",
                },
                "salience": {
                    "type": "number",
                    "description": "Importance ceiling. Default 1.0",
                },
                "confidence": {
                    "type": "number",
                    "description": "0-1. Default 1.0",
                },
                "relatedTo": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Node IDs to create 'references' edges to",
                },
                "sourceType": {
                    "type": "string",
                    "description": "Provenance, e.g. the session type that produced this memory",
                },
                "sourceId": {
                    "type": "string",
                    "description": "Provenance identifier",
                },
            },
            "required": ["content", "nodeType"],
        }

    async def execute(self, subject_id: str, payload: RememberPayload) -> dict[str, Any]:
        created = await self.manager.remember(
            subject_id,
            payload.content,
            modality=payload.node_type,
            tags=payload.tags,
            depth=payload.depth,
            gravity=payload.gravity,
            salience=payload.salience,
            confidence=payload.confidence,
            related_to=payload.related_to,
            source_type=payload.source_type,
            source_id=payload.source_id,
        )
        node = created["node"]
        return node_view(
            node,
            nodeType=node.modality.value,
            edges=len(created["edges"]),
            edgeIds=[e.id for e in created["edges"]],
            embedded=created["embedded"],
            duplicateOf=created["duplicateOf"],
        )


class RecallOperation(BaseOperation):
    """Rank nodes by similarity, gravity and depth; boost what is returned."""

    payload_model = RecallPayload

    @property
    def name(self) -> OperationName:
        return OperationName.RECALL

    @property
    def description(self) -> str:
        return "Search the Genesis graph semantically. Returns nodes ranked by embedding similarity weighted by gravity and depth."

    @property
    def input_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Semantic search query"},
                "maxResults": {"type": "integer", "description": "Max nodes to return. Default 10"},
                "nodeType": {"type": "string", "enum": MODALITY_VALUES, "description": "Filter by type"},
                "nodeTypes": {
                    "type": "array",
                    "items": {"type": "string", "enum": MODALITY_VALUES},
                    "description": "Filter by any of these types",
                },
                "tags": {"type": "array", "items": {"type": "string"}, "description": "Filter by tags"},
                "minGravity": {"type": "number", "description": "Minimum gravity threshold"},
                "includeEdges": {"type": "boolean", "description": "Include connected nodes. Default true"},
            },
            "required": ["query"],
        }

    async def execute(self, subject_id: str, payload: RecallPayload) -> dict[str, Any]:
        result = await self.manager.recall(
            subject_id,
            payload.query,
            max_results=payload.max_results,
            modalities=payload.modalities,
            tags=payload.tags,
            min_gravity=payload.min_gravity,
            include_edges=payload.include_edges,
        )
        return {
            "nodes": [
                node_view(s.node, similarity=s.similarity, score=s.score)
                for s in result.nodes
            ],
            "context": [node_view(n) for n in result.context],
            "edges": [edge_view(e) for e in result.edges],
            "total": len(result.nodes),
        }


class RelateOperation(BaseOperation):
    payload_model = RelatePayload

    @property
    def name(self) -> OperationName:
        return OperationName.RELATE

    @property
    def description(self) -> str:
        return "Create a relationship edge between two memory nodes of the same graph."

    @property
    def input_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "sourceId": {"type": "string", "description": "Source node ID"},
                "targetId": {"type": "string", "description": "Target node ID"},
                "relationType": {"type": "string", "enum": RELATION_VALUES},
                "weight": {"type": "number", "description": "Strength 0-1. Default 1.0"},
                "context": {"type": "string", "description": "Why this connection exists"},
            },
            "required": ["sourceId", "targetId", "relationType"],
        }

    async def execute(self, subject_id: str, payload: RelatePayload) -> dict[str, Any]:
        edge = await self.manager.relate(
            subject_id,
            payload.source_id,
            payload.target_id,
            payload.relation_type,
            weight=payload.weight,
            context=payload.context,
        )
        return edge_view(edge)


class ForgetOperation(BaseOperation):
    payload_model = ForgetPayload

    @property
    def name(self) -> OperationName:
        return OperationName.FORGET

    @property
    def description(self) -> str:
        return "Push a node toward periphery by increasing its depth. Information fades but is never deleted."

    @property
    def input_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "nodeId": {"type": "string", "description": "Node to push toward periphery"},
                "amount": {"type": "number", "description": "How much to increase depth. Default 0.1"},
            },
            "required": ["nodeId"],
        }

    async def execute(self, subject_id: str, payload: ForgetPayload) -> dict[str, Any]:
        before, after = await self.manager.forget(subject_id, payload.node_id, payload.amount)
        return {
            "nodeId": after.id,
            "depthBefore": before.depth,
            "depth": after.depth,
            "depthIncreased": after.depth - before.depth,
        }


class ReinforceOperation(BaseOperation):
    payload_model = ReinforcePayload

    @property
    def name(self) -> OperationName:
        return OperationName.REINFORCE

    @property
    def description(self) -> str:
        return """Bump gravity on nodes matching tags or IDs, capped at each node's salience.
Use when a topic comes up repeatedly across sessions - the more it recurs, the heavier it gets."""

    @property
    def input_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "tags": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Bump all nodes with any of these tags",
                },
                "nodeIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Specific node IDs to bump",
                },
                "amount": {"type": "number", "description": "Gravity increase. Default 0.5"},
            },
        }

    async def execute(self, subject_id: str, payload: ReinforcePayload) -> dict[str, Any]:
        outcome = await self.manager.reinforce(
            subject_id,
            tags=payload.tags,
            node_ids=payload.node_ids,
            amount=payload.amount,
        )
        return {
            "bumped": outcome.count,
            "nodes": [{"id": n.id, "gravity": n.gravity, "salience": n.salience} for n in outcome.nodes],
            "missing": outcome.missing,
            "tags": payload.tags,
            "amount": (
                self.manager.gravity.config.reinforce_amount
                if payload.amount is None else payload.amount
            ),
        }

