"""Tests for the operation registry and the eight operations."""

import math

import pytest

from src.genesis.protocol import OperationCall, OperationName


async def remember(registry, subject="s1", **params):
    params.setdefault("nodeType", "insight")
    result = await registry.execute(subject, "remember", params)
    assert result.success, result.error
    return result.output


class TestRegistry:
    def test_all_operations_registered(self, registry):
        assert sorted(registry.list_operations()) == sorted(n.value for n in OperationName)

    def test_definitions_in_openai_format(self, registry):
        definitions = registry.get_definitions()
        assert len(definitions) == 8
        remember_def = next(d for d in definitions if d["function"]["name"] == "remember")
        assert remember_def["type"] == "function"
        assert remember_def["function"]["parameters"]["required"] == ["content", "nodeType"]

    def test_summary_lists_operations(self, registry):
        summary = registry.get_operations_summary()
        assert summary.startswith("Available Operations:")
        assert "- who_am_i:" in summary

    @pytest.mark.asyncio
    async def test_unknown_operation(self, registry):
        result = await registry.execute("s1", "teleport", {})
        assert not result.success
        assert result.error_code == "validation_error"
        assert "teleport" in result.error["message"]

    @pytest.mark.asyncio
    async def test_missing_subject(self, registry):
        result = await registry.execute("", "status", {})
        assert result.error_code == "validation_error"

    @pytest.mark.asyncio
    async def test_result_carries_duration(self, registry):
        result = await registry.execute("s1", "status", {})
        assert result.success
        assert "duration_ms" in result.metadata
        assert result.to_dict()["status"] == "success"


class TestRememberOperation:
    @pytest.mark.asyncio
    async def test_remember_with_related(self, registry):
        first = await remember(registry, content="Team uses Slack", tags=["comms"])
        second = await remember(
            registry,
            content="Standups are async",
            nodeType="decision",
            relatedTo=[first["id"]],
            sourceSessionType="planning",
        )

        assert second["type"] == "decision"
        assert second["edges"] == 1
        assert second["source"] == "planning"
        assert second["gravity"] == 1.0
        assert second["depth"] == 0.5
        assert second["embedded"] is True
        assert second["duplicateOf"] == []

    @pytest.mark.asyncio
    async def test_duplicate_reported(self, registry):
        first = await remember(registry, content="same words")
        second = await remember(registry, content="same words")
        assert second["duplicateOf"] == [first["id"]]
        assert second["id"] != first["id"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("params", [
        {"nodeType": "insight"},
        {"content": "", "nodeType": "insight"},
        {"content": "   ", "nodeType": "insight"},
        {"content": "x", "nodeType": "daydream"},
        {"content": "x", "nodeType": "insight", "confidence": 2},
        {"content": "x", "nodeType": "insight", "depth": -1},
        {"content": "x", "nodeType": "insight", "colour": "blue"},
    ])
    async def test_invalid_payloads(self, registry, params):
        result = await registry.execute("s1", "remember", params)
        assert result.error_code == "validation_error"
        assert result.error["details"]["operation"] == "remember"

    @pytest.mark.asyncio
    async def test_related_to_missing_node(self, registry):
        result = await registry.execute(
            "s1", "remember", {"content": "x", "nodeType": "insight", "relatedTo": ["nope"]}
        )
        assert result.error_code == "not_found"

    @pytest.mark.asyncio
    async def test_params_must_be_object(self, registry):
        result = await registry.execute("s1", "remember", ["content"])
        assert result.error_code == "validation_error"


class TestGraphOperations:
    @pytest.mark.asyncio
    async def test_recall(self, registry):
        node = await remember(registry, content="prefers async communication")
        result = await registry.execute("s1", "recall", {"query": "async communication"})

        assert result.success
        assert result.output["total"] == 1
        hit = result.output["nodes"][0]
        assert hit["id"] == node["id"]
        assert hit["accessCount"] == 1
        assert 0 < hit["similarity"] <= 1
        assert "score" in hit

    @pytest.mark.asyncio
    async def test_recall_node_type_filter(self, registry):
        await remember(registry, content="plan A", nodeType="decision")
        await remember(registry, content="plan B", nodeType="insight")
        result = await registry.execute("s1", "recall", {"query": "plan", "nodeType": "decision"})
        assert [n["type"] for n in result.output["nodes"]] == ["decision"]

    @pytest.mark.asyncio
    async def test_relate(self, registry):
        a = await remember(registry, content="a")
        b = await remember(registry, content="b")
        result = await registry.execute("s1", "relate", {
            "sourceId": a["id"], "targetId": b["id"], "relationType": "supports", "weight": 0.4,
        })
        assert result.success
        assert result.output["type"] == "supports"
        assert result.output["weight"] == 0.4

    @pytest.mark.asyncio
    async def test_relate_twice_strengthens(self, registry):
        a = await remember(registry, content="a")
        b = await remember(registry, content="b")
        params = {"sourceId": a["id"], "targetId": b["id"], "relationType": "supports", "weight": 0.4}

        first = await registry.execute("s1", "relate", params)
        second = await registry.execute("s1", "relate", params)

        assert second.output["id"] == first.output["id"]
        assert second.output["weight"] == pytest.approx(0.5)
        assert second.output["strengthenedCount"] == 1
        status = await registry.execute("s1", "status", {})
        assert status.output["edges"] == 1

    @pytest.mark.asyncio
    async def test_relate_errors(self, registry):
        a = await remember(registry, content="a")
        other = await remember(registry, subject="s2", content="elsewhere")

        missing = await registry.execute("s1", "relate", {
            "sourceId": a["id"], "targetId": "ghost", "relationType": "supports",
        })
        assert missing.error_code == "not_found"

        foreign = await registry.execute("s1", "relate", {
            "sourceId": a["id"], "targetId": other["id"], "relationType": "supports",
        })
        assert foreign.error_code == "conflict"

        bad_type = await registry.execute("s1", "relate", {
            "sourceId": a["id"], "targetId": a["id"], "relationType": "loves",
        })
        assert bad_type.error_code == "validation_error"

    @pytest.mark.asyncio
    async def test_forget(self, registry):
        node = await remember(registry, content="fading", depth=0.5)
        result = await registry.execute("s1", "forget", {"nodeId": node["id"], "amount": 0.3})
        assert result.output["depthBefore"] == 0.5
        assert result.output["depth"] == pytest.approx(0.8)
        assert result.output["depthIncreased"] == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_forget_unknown_node(self, registry):
        await remember(registry, content="something")
        result = await registry.execute("s1", "forget", {"nodeId": "ghost"})
        assert result.error_code == "not_found"

    @pytest.mark.asyncio
    async def test_reinforce(self, registry):
        node = await remember(registry, content="heavy", tags=["t"], gravity=1.0, salience=3.0)
        result = await registry.execute("s1", "reinforce", {"tags": ["t"], "nodeIds": ["ghost"]})

        assert result.output["bumped"] == 1
        assert result.output["nodes"] == [{"id": node["id"], "gravity": 1.5, "salience": 3.0}]
        assert result.output["missing"] == ["ghost"]
        assert result.output["amount"] == 0.5

    @pytest.mark.asyncio
    async def test_reinforce_needs_selector(self, registry):
        result = await registry.execute("s1", "reinforce", {"amount": 1.0})
        assert result.error_code == "validation_error"


class TestLedgerAndViews:
    @pytest.mark.asyncio
    async def test_observe(self, registry):
        node = await remember(registry, content="a node")
        result = await registry.execute("s1", "observe", {
            "entryType": "commitment", "content": "Will send notes", "nodeId": node["id"],
            "confidence": 0.7,
        })
        assert result.success
        assert result.output["type"] == "commitment"
        assert result.output["nodeId"] == node["id"]
        assert result.output["actor"] == "manual"

    @pytest.mark.asyncio
    async def test_observe_unknown_node(self, registry):
        await remember(registry, content="a node")
        result = await registry.execute("s1", "observe", {
            "entryType": "observation", "content": "x", "nodeId": "ghost",
        })
        assert result.error_code == "not_found"

    @pytest.mark.asyncio
    async def test_who_am_i(self, registry):
        await remember(registry, content="core value", depth=0.0)
        await registry.execute("s1", "observe", {"entryType": "surfaced", "content": "Raise hiring"})

        result = await registry.execute("s1", "who_am_i", {})

        view = result.output
        assert view["cubePosition"]["trustLevel"] == 1.0
        assert view["cubePosition"]["roleClarity"] == 2.0
        assert [m["content"] for m in view["topMemories"]] == ["core value"]
        assert view["surfacedInsights"] == ["Raise hiring"]
        assert len(view["recentLedger"]) == 1

    @pytest.mark.asyncio
    async def test_who_am_i_does_not_touch(self, registry, manager):
        node = await remember(registry, content="quiet")
        await registry.execute("s1", "who_am_i", {})
        assert (await manager.get_node("s1", node["id"])).access_count == 0

    @pytest.mark.asyncio
    async def test_status_is_read_only(self, registry):
        await remember(registry, content="one")
        await remember(registry, content="two")

        first = await registry.execute("s1", "status", {})
        second = await registry.execute("s1", "status", {})

        assert first.output == second.output
        assert first.output["nodes"] == 2
        assert first.output["recentActivity"]["nodesCreated"] == 2

    @pytest.mark.asyncio
    async def test_status_unknown_subject(self, registry):
        result = await registry.execute("nobody", "status", {})
        assert result.output["nodes"] == 0
        assert result.output["version"] == 0

    @pytest.mark.asyncio
    async def test_views_reject_parameters(self, registry):
        result = await registry.execute("s1", "status", {"verbose": True})
        assert result.error_code == "validation_error"


class TestBatches:
    @pytest.mark.asyncio
    async def test_apply_resolves_refs(self, registry, manager):
        calls = [
            OperationCall("remember", {"content": "root", "nodeType": "concept"}, ref="a"),
            OperationCall("remember", {"content": "leaf", "nodeType": "insight", "relatedTo": ["@a"]}, ref="b"),
            OperationCall("relate", {"sourceId": "@a", "targetId": "@b", "relationType": "develops"}),
            OperationCall("observe", {"entryType": "inference", "content": "linked", "nodeId": "@b"}),
        ]

        batch = await registry.apply("s1", calls)

        assert batch.success
        assert batch.counts == {"remember": 2, "relate": 1, "observe": 1}
        assert set(batch.refs) == {"a", "b"}
        edges = await manager.list_edges("s1")
        assert len(edges) == 2
        assert batch.to_dict()["applied"] == 4

    @pytest.mark.asyncio
    async def test_failure_rolls_back_everything(self, registry, manager):
        calls = [
            OperationCall("remember", {"content": "kept?", "nodeType": "insight"}, ref="a"),
            OperationCall("observe", {"entryType": "observation", "content": "note"}),
            OperationCall("forget", {"nodeId": "ghost"}),
        ]

        batch = await registry.apply("s1", calls)

        assert not batch.success
        assert batch.failed_index == 2
        assert batch.error["code"] == "not_found"
        assert batch.counts == {}
        assert await manager.graphs.find_graph("s1") is None
        assert await manager.ledger.count("s1") == 0
        assert batch.to_dict()["failedIndex"] == 2

    @pytest.mark.asyncio
    async def test_unresolved_ref(self, registry, manager):
        calls = [
            OperationCall("remember", {"content": "x", "nodeType": "insight"}, ref="a"),
            OperationCall("reinforce", {"nodeIds": ["@missing"]}),
        ]
        batch = await registry.apply("s1", calls)

        assert batch.failed_index == 1
        assert batch.error["code"] == "validation_error"
        assert await manager.list_nodes("s1") == []


class TestNonFiniteNumbers:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    @pytest.mark.parametrize("field", ["gravity", "salience", "depth", "confidence"])
    async def test_remember_rejects(self, registry, manager, field, value):
        result = await registry.execute("s1", "remember", {"content": "x", "nodeType": "insight", field: value})

        assert result.error_code == "validation_error"
        assert result.error["details"]["errors"][0]["field"] == field
        assert await manager.graphs.find_graph("s1") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [float("inf"), float("nan")])
    async def test_graph_operations_reject(self, registry, value):
        a = await remember(registry, content="a", tags=["t"], gravity=1.0, salience=2.0)
        b = await remember(registry, content="b")

        calls = [
            ("forget", {"nodeId": a["id"], "amount": value}),
            ("reinforce", {"tags": ["t"], "amount": value}),
            ("relate", {"sourceId": a["id"], "targetId": b["id"], "relationType": "supports", "weight": value}),
            ("observe", {"entryType": "inference", "content": "c", "confidence": value}),
        ]
        for name, params in calls:
            result = await registry.execute("s1", name, params)
            assert result.error_code == "validation_error", name

        status = await registry.execute("s1", "status", {})
        assert status.output["edges"] == 0
        recalled = await registry.execute("s1", "recall", {"query": "a"})
        assert all(math.isfinite(n["score"]) for n in recalled.output["nodes"])
