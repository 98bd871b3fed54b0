"""Read-only composite views: who_am_i and status."""

from __future__ import annotations

from typing import Any

from src.genesis.protocol.base import BaseOperation, OperationName
from src.genesis.protocol.schemas import StatusPayload, WhoAmIPayload
from src.genesis.protocol.views import cube_view, ledger_view, node_brief


class WhoAmIOperation(BaseOperation):
    payload_model = WhoAmIPayload

    @property
    def name(self) -> OperationName:
        return OperationName.WHO_AM_I

    @property
    def description(self) -> str:
        return """Get current context: cube position, top memories, recent ledger entries and surfaced insights.
Call this at session start to understand who you are talking to."""

    @property
    def input_schema(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, subject_id: str, payload: WhoAmIPayload) -> dict[str, Any]:
        view = await self.manager.who_am_i(subject_id)
        return {
            "cubePosition": cube_view(view["cube"]),
            "topMemories": [node_brief(n, max_length=500) for n in view["top_nodes"]],
            "recentLedger": [ledger_view(e) for e in view["recent_ledger"]],
            "surfacedInsights": [e.content for e in view["surfaced"]],
        }


class StatusOperation(BaseOperation):
    payload_model = StatusPayload

    @property
    def name(self) -> OperationName:
        return OperationName.STATUS

    @property
    def description(self) -> str:
        return "Get graph statistics: total nodes, edges, average depth, top-gravity nodes, recent activity."

    @property
    def input_schema(self) -> dict:
        return {"type": "object", "properties": {}}

    async def execute(self, subject_id: str, payload: StatusPayload) -> dict[str, Any]:
        stats = await self.manager.status(subject_id)
        graph = stats["graph"]
        activity = stats["recent_activity"]
        return {
            "nodes": stats["node_count"],
            "edges": stats["edge_count"],
            "ledgerEntries": stats["ledger_count"],
            "avgDepth": stats["avg_depth"],
            "avgGravity": stats["avg_gravity"],
            "topNodes": [node_brief(n) for n in stats["top_nodes"]],
            "recentActivity": {
                "nodesCreated": activity["nodes_created"],
                "nodesAccessed": activity["nodes_accessed"],
                "ledgerEntries": activity["ledger_entries"],
            },
            "version": graph.version if graph else 0,
            "oldestMemoryAt": graph.oldest_memory_at if graph else None,
            "newestMemoryAt": graph.newest_memory_at if graph else None,
        }
