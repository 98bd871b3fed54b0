"""Tests for the subconscious processor: parsing, heuristic, planning, applying."""

import pytest

from src.genesis.errors import UpstreamError
from src.genesis.llm import LLMConfig, LLMProvider, LLMResponse
from src.genesis.memory.models import GraphSnapshot, MemoryNode
from src.genesis.protocol import OperationName
from src.genesis.subconscious import (
    SessionEvent,
    SubconsciousConfig,
    SubconsciousProcessor,
    SubconsciousProposal,
    build_prompt,
    heuristic_proposal,
    parse_proposal,
    plan_operations,
)


def make_snapshot(*nodes: MemoryNode) -> GraphSnapshot:
    return GraphSnapshot(subject_id="s1", nodes=tuple(nodes), version=3)


def slack_node(**overrides) -> MemoryNode:
    fields = {"graph_id": "g", "id": "n1", "content": "Team uses Slack", "tags": ["comms"], "gravity": 2.0}
    fields.update(overrides)
    return MemoryNode(**fields)


class FakeLLM:
    def __init__(self, reply: str | None = None, error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, messages):
        self.prompts.append(messages[-1]["content"])
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.reply)


class TestParsing:
    def test_fenced_json(self):
        text = 'Sure:\n```json\n{"createNodes": [{"content": "x"}], "surfaceNextSession": ["look"]}\n```'
        proposal = parse_proposal(text)
        assert proposal.create_nodes == [{"content": "x"}]
        assert proposal.surface_next_session == ["look"]
        assert proposal.create_edges == []

    @pytest.mark.parametrize("text", [None, "", "no json here", "{not: valid}", "[1, 2]"])
    def test_unusable_replies(self, text):
        assert parse_proposal(text) is None

    def test_non_dict_items_dropped(self):
        proposal = SubconsciousProposal.from_dict({"createNodes": ["oops", {"content": "ok"}]})
        assert proposal.create_nodes == [{"content": "ok"}]
        assert not proposal.is_empty

    def test_session_event_aliases(self):
        event = SessionEvent.from_dict({
            "sessionSummary": "hi", "sourceSessionType": "coaching", "tags": "comms", "decisions": [1, "Ship it"],
        })
        assert event.summary == "hi"
        assert event.actor == "coaching"
        assert event.tags == ["comms"]
        assert event.decisions == ["Ship it"]

    def test_prompt_includes_graph_and_event(self):
        prompt = build_prompt(make_snapshot(slack_node()), SessionEvent("Talked comms", ["comms"]))
        assert "Team uses Slack" in prompt
        assert "Summary: Talked comms" in prompt
        assert '"createNodes"' in prompt


class TestHeuristic:
    def test_decisions_tags_and_summary(self):
        snapshot = make_snapshot(slack_node(), slack_node(id="n2", content="Lighter", gravity=0.5))
        event = SessionEvent(
            summary="Discussed comms", tags=["comms", "new-tag"], decisions=["Move standups to async"]
        )

        proposal = heuristic_proposal(snapshot, event)

        assert proposal.create_nodes[0]["content"] == "Move standups to async"
        assert proposal.create_nodes[0]["nodeType"] == "decision"
        assert proposal.create_edges == [{
            "sourceContent": "Move standups to async",
            "targetContent": "Team uses Slack",
            "relationType": "develops",
            "weight": 0.5,
        }]
        assert proposal.reinforce_tags == [{"tag": "comms", "amount": 0.5}]
        assert proposal.ledger_entries[0]["content"] == "Discussed comms"

    def test_empty_event(self):
        assert heuristic_proposal(make_snapshot(), SessionEvent(summary="  ")).is_empty


class TestPlanning:
    def test_order_and_refs(self):
        proposal = SubconsciousProposal(
            create_nodes=[{"content": "Adopt async standups", "nodeType": "decision", "tags": ["comms"]}],
            create_edges=[{
                "sourceContent": "Adopt async standups",
                "targetContent": "team uses slack",
                "relationType": "develops",
                "weight": 0.7,
            }],
            reinforce_tags=[{"tag": "comms", "amount": 1.0}],
            surface_next_session=["Ask about standups"],
            ledger_entries=[{"entryType": "inference", "content": "Prefers async", "confidence": 0.8}],
        )

        calls = plan_operations(make_snapshot(slack_node()), SessionEvent("s"), proposal)

        assert [c.name for c in calls] == [
            OperationName.REMEMBER,
            OperationName.RELATE,
            OperationName.REINFORCE,
            OperationName.OBSERVE,
            OperationName.OBSERVE,
        ]
        assert calls[0].ref == "new0"
        assert calls[0].params["sourceType"] == "subconscious"
        assert calls[1].params["sourceId"] == "@new0"
        assert calls[1].params["targetId"] == "n1"
        assert calls[3].params["entryType"] == "surfaced"
        assert calls[4].params["entryType"] == "inference"

    def test_existing_content_reinforced_not_recreated(self):
        proposal = SubconsciousProposal(
            create_nodes=[{"content": "Team uses Slack", "tags": ["comms", "tools"]}]
        )
        calls = plan_operations(make_snapshot(slack_node()), SessionEvent("s"), proposal)

        assert all(c.name != OperationName.REMEMBER for c in calls)
        assert [c.params["tags"] for c in calls] == [["comms"], ["tools"]]

    def test_unresolved_and_self_edges_dropped(self):
        proposal = SubconsciousProposal(create_edges=[
            {"sourceContent": "Team uses Slack", "targetContent": "something unknown"},
            {"sourceContent": "Team uses Slack", "targetContent": "team uses slack"},
        ])
        assert plan_operations(make_snapshot(slack_node()), SessionEvent("s"), proposal) == []

    @pytest.mark.parametrize("tags, expected", [
        ("comms", ["comms"]),
        (["comms", " comms ", "", 7, None, ["x"]], ["comms"]),
        ({"tag": "comms"}, []),
        (42, []),
    ])
    def test_tags_cleaned(self, tags, expected):
        proposal = SubconsciousProposal(create_nodes=[{"content": "new", "tags": tags}])
        (call,) = plan_operations(make_snapshot(), SessionEvent("s"), proposal)
        assert call.params["tags"] == expected

    def test_string_tags_on_existing_node_reinforce_whole_tag(self):
        proposal = SubconsciousProposal(create_nodes=[{"content": "Team uses Slack", "tags": "comms"}])
        calls = plan_operations(make_snapshot(slack_node()), SessionEvent("s"), proposal)
        assert [c.params["tags"] for c in calls] == [["comms"]]

    def test_non_finite_numbers_fall_back(self):
        proposal = SubconsciousProposal(
            create_nodes=[{"content": "A", "gravity": float("nan"), "depth": float("inf")}],
            reinforce_tags=[{"tag": "x", "amount": float("inf")}],
        )
        remember_call, reinforce_call = plan_operations(make_snapshot(), SessionEvent("s"), proposal)

        assert remember_call.params["gravity"] == 1.0
        assert remember_call.params["depth"] == SubconsciousConfig().default_depth
        assert reinforce_call.params["amount"] == SubconsciousConfig().reinforce_amount

    def test_values_sanitized(self):
        proposal = SubconsciousProposal(
            create_nodes=[
                {"content": "A", "nodeType": "dream", "gravity": 50, "depth": -2},
                {"content": "B", "gravity": "heavy"},
            ],
            create_edges=[{"sourceContent": "A", "targetContent": "B", "relationType": "hates", "weight": 3}],
            reinforce_tags=[{"tag": "x", "amount": 9}],
            ledger_entries=[{"entryType": "rumour", "content": "c", "confidence": -1}],
        )

        calls = plan_operations(make_snapshot(), SessionEvent("s"), proposal, SubconsciousConfig())
        a, b, edge, reinforce, observe = calls

        assert a.params["nodeType"] == "insight"
        assert a.params["gravity"] == 10.0
        assert a.params["salience"] == 10.0
        assert a.params["depth"] == 0.0
        assert b.params["gravity"] == 1.0
        assert b.params["salience"] == 1.0
        assert edge.params["relationType"] == "references"
        assert edge.params["weight"] == 1.0
        assert reinforce.params["amount"] == 2.0
        assert observe.params["entryType"] == "observation"
        assert observe.params["confidence"] == 0.0


class TestProcessor:
    @pytest.mark.asyncio
    async def test_heuristic_run_applies_batch(self, registry, manager):
        seed = await registry.execute("s1", "remember", {
            "content": "Team uses Slack", "nodeType": "fact", "tags": ["comms"],
            "gravity": 1.0, "salience": 5.0,
        })
        processor = SubconsciousProcessor(registry)

        run = await processor.process("s1", SessionEvent(
            summary="Discussed comms", tags=["comms"], decisions=["Move standups to async"]
        ))

        assert run.source == "heuristic"
        assert run.batch.success
        assert run.nodes_created == 1
        assert run.edges_created == 1
        assert (await manager.get_node("s1", seed.output["id"])).gravity == 1.5

        created = next(n for n in await manager.list_nodes("s1") if n.content == "Move standups to async")
        assert created.source_type == "subconscious"
        assert created.modality.value == "decision"
        assert run.to_dict()["nodesCreated"] == 1

    @pytest.mark.asyncio
    async def test_llm_proposal_used(self, registry, manager):
        llm = FakeLLM(reply='```json\n{"createNodes": [{"content": "Likes mornings", "nodeType": "pattern"}],'
                            ' "surfaceNextSession": ["Schedule early"]}\n```')
        processor = SubconsciousProcessor(registry, llm=llm)

        run = await processor.process("s1", SessionEvent(summary="Talked schedules"))

        assert run.source == "llm"
        assert len(llm.prompts) == 1
        assert run.nodes_created == 1
        view = await manager.who_am_i("s1")
        assert [e.content for e in view["surfaced"]] == ["Schedule early"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("llm", [
        FakeLLM(error=UpstreamError("LLM completion failed")),
        FakeLLM(reply="I could not decide."),
    ])
    async def test_falls_back_to_heuristic(self, registry, llm):
        processor = SubconsciousProcessor(registry, llm=llm)
        run = await processor.process("s1", SessionEvent(summary="Quiet session", decisions=["Pause hiring"]))

        assert run.source == "heuristic"
        assert run.nodes_created == 1

    @pytest.mark.asyncio
    async def test_empty_proposal_changes_nothing(self, registry, manager):
        processor = SubconsciousProcessor(registry, llm=FakeLLM(reply="{}"))
        run = await processor.process("s1", SessionEvent(summary="nothing"))

        assert run.source == "llm"
        assert run.calls == []
        assert await manager.graphs.find_graph("s1") is None


class TestLLMProvider:
    def test_provider_detection(self, monkeypatch):
        monkeypatch.setenv("DASHSCOPE_API_KEY", "sk-test")
        provider = LLMProvider(LLMConfig(model="qwen-max"))

        assert provider.provider == "dashscope"
        assert provider.model_name == "openai/qwen-max"
        assert provider.get_provider_info()["has_api_key"] is True

    def test_unknown_model_defaults_to_openai(self):
        assert LLMProvider(LLMConfig(model="mystery-model", api_key="k")).provider == "openai"

    @pytest.mark.asyncio
    async def test_failure_is_upstream_error(self, monkeypatch):
        async def refuse(**params):
            raise ConnectionError("no route")

        monkeypatch.setattr("src.genesis.llm.provider.acompletion", refuse)
        provider = LLMProvider(LLMConfig(api_key="k"))

        with pytest.raises(UpstreamError) as exc:
            await provider.complete([{"role": "user", "content": "hi"}])
        assert isinstance(exc.value.__cause__, ConnectionError)
        assert exc.value.details["provider"] == "anthropic"
