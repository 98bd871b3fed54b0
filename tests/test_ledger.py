"""Tests for the append-only ledger."""

import dataclasses

import pytest

from src.genesis.errors import ValidationError
from src.genesis.memory.ledger import Ledger
from src.genesis.memory.models import LedgerEntryType
from src.genesis.memory.storage import InMemoryBackend


@pytest.fixture
def ledger():
    return Ledger(InMemoryBackend())


class TestLedger:
    @pytest.mark.asyncio
    async def test_append_defaults(self, ledger):
        entry = await ledger.append("s1", "observation", "Prefers mornings")

        assert entry.entry_type == LedgerEntryType.OBSERVATION
        assert entry.confidence == 1.0
        assert entry.actor == "manual"
        assert entry.node_id is None

    @pytest.mark.asyncio
    async def test_entries_are_immutable(self, ledger):
        entry = await ledger.append("s1", "decision", "Use weekly check-ins")
        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.content = "edited"

    @pytest.mark.asyncio
    async def test_no_update_or_delete_path(self, ledger):
        assert not hasattr(ledger, "update")
        assert not hasattr(ledger, "delete")

    @pytest.mark.asyncio
    async def test_list_newest_first_and_filter(self, ledger):
        await ledger.append("s1", "observation", "first")
        await ledger.append("s1", "surfaced", "second")
        await ledger.append("s1", "observation", "third")
        await ledger.append("s2", "observation", "elsewhere")

        recent = await ledger.list_recent("s1")
        assert [e.content for e in recent] == ["third", "second", "first"]

        surfaced = await ledger.list_recent("s1", entry_type="surfaced")
        assert [e.content for e in surfaced] == ["second"]

        assert [e.content for e in await ledger.list_recent("s1", limit=1)] == ["third"]

    @pytest.mark.asyncio
    async def test_count(self, ledger):
        first = await ledger.append("s1", "observation", "first")
        await ledger.append("s1", "inference", "second")

        assert await ledger.count("s1") == 2
        assert await ledger.count("s2") == 0
        assert await ledger.count("s1", since=first.created_at + 3600) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("entry_type, content, confidence", [
        ("rumour", "x", 1.0),
        ("observation", "  ", 1.0),
        ("observation", "x", 1.2),
        ("observation", "x", -0.1),
    ])
    async def test_validation(self, ledger, entry_type, content, confidence):
        with pytest.raises(ValidationError):
            await ledger.append("s1", entry_type, content, confidence=confidence)
