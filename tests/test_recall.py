"""Tests for recall ranking, filters, context and access boost."""

import pytest

from src.genesis.errors import StorageError, UpstreamError, ValidationError
from src.genesis.memory.models import MemoryNode
from src.genesis.memory.operators import RecallConfig, ScoredNode
from src.genesis.memory.operators.recall import rank, score_node


def scored(node_id: str, score: float, last_accessed: float) -> ScoredNode:
    node = MemoryNode(graph_id="g", content=node_id, id=node_id, last_accessed=last_accessed)
    return ScoredNode(node=node, score=score, similarity=0.0)


class TestScoring:
    def test_similarity_dominates_at_equal_gravity_and_depth(self):
        config = RecallConfig()
        assert score_node(0.9, 1.0, 0.5, config) > score_node(0.5, 1.0, 0.5, config)

    def test_gravity_and_depth_monotone(self):
        config = RecallConfig()
        assert score_node(0.5, 2.0, 0.5, config) > score_node(0.5, 1.0, 0.5, config)
        assert score_node(0.5, 1.0, 0.1, config) > score_node(0.5, 1.0, 2.0, config)

    def test_rank_tie_breaks(self):
        items = [
            scored("b", 0.5, 100.0),
            scored("a", 0.5, 100.0),
            scored("c", 0.5, 200.0),
            scored("d", 0.9, 1.0),
        ]
        assert [s.node.id for s in rank(items)] == ["d", "c", "a", "b"]


class TestRecall:
    @pytest.mark.asyncio
    async def test_empty_graph(self, manager):
        result = await manager.recall("nobody", "anything")
        assert result.is_empty
        assert result.to_dict()["count"] == 0

    @pytest.mark.asyncio
    async def test_query_required(self, manager):
        with pytest.raises(ValidationError):
            await manager.recall("s1", "  ")

    @pytest.mark.asyncio
    async def test_closest_content_first(self, manager):
        await manager.remember("s1", "weekly planning meeting notes")
        target = (await manager.remember("s1", "prefers async written communication"))["node"]
        await manager.remember("s1", "favourite colour is green")

        result = await manager.recall("s1", "async written communication")

        assert result.nodes[0].node.id == target.id
        assert result.nodes[0].similarity > result.nodes[1].similarity

    @pytest.mark.asyncio
    async def test_max_results_and_access_boost(self, manager):
        created = [
            (await manager.remember("s1", f"note {i} about planning", gravity=0.5, salience=2.0))["node"]
            for i in range(4)
        ]

        result = await manager.recall("s1", "planning", max_results=2)

        assert len(result.nodes) == 2
        returned = {s.node.id for s in result.nodes}
        for node in created:
            stored = await manager.get_node("s1", node.id)
            if node.id in returned:
                assert stored.access_count == 1
                assert stored.gravity == pytest.approx(0.55)
                assert stored.last_accessed >= node.last_accessed
            else:
                assert stored.access_count == 0
                assert stored.gravity == 0.5

    @pytest.mark.asyncio
    async def test_filters(self, manager):
        decision = (await manager.remember(
            "s1", "ship on fridays", modality="decision", tags=["release"], gravity=1.0
        ))["node"]
        await manager.remember("s1", "ship on mondays", modality="insight", tags=["release"])
        await manager.remember("s1", "ship light", modality="decision", tags=["travel"], gravity=0.1)

        by_type = await manager.recall("s1", "ship", modalities=["decision"], tags=["release"])
        assert [s.node.id for s in by_type.nodes] == [decision.id]

        heavy = await manager.recall("s1", "ship", min_gravity=0.5)
        assert all(s.node.gravity >= 0.5 for s in heavy.nodes)
        assert len(heavy.nodes) == 2

    @pytest.mark.asyncio
    async def test_invalid_modality_filter(self, manager):
        with pytest.raises(ValidationError):
            await manager.recall("s1", "x", modalities=["dream"])

    @pytest.mark.asyncio
    async def test_one_hop_context_follows_outgoing_edges(self, manager):
        hub = (await manager.remember("s1", "quarterly roadmap review"))["node"]
        linked = (await manager.remember("s1", "budget spreadsheet"))["node"]
        pointing_in = (await manager.remember("s1", "hiring plan draft"))["node"]
        await manager.relate("s1", hub.id, linked.id, "references")
        await manager.relate("s1", pointing_in.id, hub.id, "develops")

        result = await manager.recall("s1", "quarterly roadmap review", max_results=1)

        assert result.nodes[0].node.id == hub.id
        assert [n.id for n in result.context] == [linked.id]
        assert [e.target_id for e in result.edges] == [linked.id]

    @pytest.mark.asyncio
    async def test_context_can_be_disabled(self, manager):
        hub = (await manager.remember("s1", "roadmap"))["node"]
        other = (await manager.remember("s1", "budget"))["node"]
        await manager.relate("s1", hub.id, other.id, "supports")

        result = await manager.recall("s1", "roadmap", max_results=1, include_edges=False)
        assert result.context == []
        assert result.edges == []

    @pytest.mark.asyncio
    async def test_lazy_embeddings_persisted(self, make_manager, embedder):
        manager = make_manager(eager_embedding=False)
        node = (await manager.remember("s1", "lazy node"))["node"]
        assert await manager.backend.get_embeddings([node.id]) == {}

        await manager.recall("s1", "lazy")
        assert node.id in await manager.backend.get_embeddings([node.id])

        calls_before = len(embedder.calls)
        await manager.recall("s1", "lazy")
        assert len(embedder.calls) == calls_before

    @pytest.mark.asyncio
    async def test_access_boost_failure_is_not_fatal(self, manager, monkeypatch):
        node = (await manager.remember("s1", "sturdy memory"))["node"]

        async def broken(node_id, boost_factor=1.1):
            raise StorageError("write failed")

        monkeypatch.setattr(manager.nodes, "touch_access", broken)
        result = await manager.recall("s1", "sturdy memory")

        assert result.nodes[0].node.id == node.id
        assert result.nodes[0].node.access_count == 0

    @pytest.mark.asyncio
    async def test_embedding_failure_propagates(self, manager, embedder):
        await manager.remember("s1", "some memory")
        embedder.error = ConnectionError("ollama down")

        with pytest.raises(UpstreamError):
            await manager.recall("s1", "a brand new query")
