"""Append-only narrative ledger.

Entries record what was observed, inferred, committed to or decided. There is
no update or delete path: the ledger is the source of truth that outlives the
decaying node graph.
"""

from __future__ import annotations

from src.genesis.errors import ValidationError
from src.genesis.memory.models import LedgerEntry, LedgerEntryType
from src.genesis.memory.storage.base import GraphStorageBackend
from src.genesis.memory.stores import coerce_enum


class Ledger:
    def __init__(self, backend: GraphStorageBackend):
        self.backend = backend

    async def append(
        self,
        subject_id: str,
        entry_type: LedgerEntryType | str,
        content: str,
        confidence: float = 1.0,
        node_id: str | None = None,
        actor: str = "manual",
    ) -> LedgerEntry:
        if not content or not content.strip():
            raise ValidationError("content is required", {"field": "content"})
        if not 0.0 <= confidence <= 1.0:
            raise ValidationError(
                "confidence must be between 0 and 1",
                {"field": "confidence", "value": confidence},
            )

        entry = LedgerEntry(
            subject_id=subject_id,
            entry_type=coerce_enum(LedgerEntryType, entry_type, "entryType"),
            content=content,
            confidence=float(confidence),
            node_id=node_id,
            actor=actor or "manual",
        )
        await self.backend.append_ledger(entry)
        return entry

    async def list_recent(
        self,
        subject_id: str,
        limit: int = 10,
        entry_type: LedgerEntryType | str | None = None,
    ) -> list[LedgerEntry]:
        """Entries newest first."""
        kind = coerce_enum(LedgerEntryType, entry_type, "entryType") if entry_type else None
        return await self.backend.list_ledger(subject_id, limit, kind)

    async def count(self, subject_id: str, since: float | None = None) -> int:
        return await self.backend.count_ledger(subject_id, since)
