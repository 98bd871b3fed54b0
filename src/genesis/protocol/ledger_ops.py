"""Ledger operation: observe."""

from __future__ import annotations

from typing import Any

from src.genesis.memory.models import LedgerEntryType
from src.genesis.protocol.base import BaseOperation, OperationName
from src.genesis.protocol.schemas import ObservePayload
from src.genesis.protocol.views import ledger_view


class ObserveOperation(BaseOperation):
    """Append an entry to the subject's immutable ledger."""

    payload_model = ObservePayload

    @property
    def name(self) -> OperationName:
        return OperationName.OBSERVE

    @property
    def description(self) -> str:
        return """Record an observation, inference, or commitment to the immutable ledger.
This is the narrative layer - things that must never be lost or compressed."""

    @property
    def input_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "entryType": {
                    "type": "string",
                    "enum": [t.value for t in LedgerEntryType],
                },
                "content": {"type": "string"},
                "confidence": {"type": "number", "description": "0-1. How confident. Default 1.0"},
                "nodeId": {"type": "string", "description": "Related genesis node ID"},
                "actor": {"type": "string", "description": "Who recorded this. Default 'manual'"},
            },
            "required": ["entryType", "content"],
        }

    async def execute(self, subject_id: str, payload: ObservePayload) -> dict[str, Any]:
        entry = await self.manager.observe(
            subject_id,
            payload.entry_type,
            payload.content,
            confidence=payload.confidence,
            node_id=payload.node_id,
            actor=payload.actor,
        )
        return ledger_view(entry)
