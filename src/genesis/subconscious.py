"""Subconscious processor - stateless batch driver over a graph snapshot.

Receives a frozen snapshot of a subject's graph plus one session event and
proposes what to create, link, reinforce and surface. The proposal comes from
an LLM when one is configured, otherwise from a deterministic heuristic. The
proposal is turned into protocol calls by `plan_operations`, a pure function,
and those calls are applied through the registry as one batch, so every
numeric rule stays in the operators.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from src.genesis.errors import UpstreamError
from src.genesis.llm import LLMConfig, LLMProvider
from src.genesis.memory.models import (
    GraphSnapshot,
    LedgerEntryType,
    MemoryNode,
    Modality,
    RelationType,
    content_hash,
)
from src.genesis.protocol import BatchResult, OperationCall, OperationName, OperationRegistry

SUBCONSCIOUS_ACTOR = "subconscious"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class SessionEvent:
    """What happened in one session, as reported by its caller."""
    summary: str
    tags: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    actor: str = "manual"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionEvent:
        return cls(
            summary=data.get("summary") or data.get("sessionSummary") or "",
            tags=_string_list(data.get("tags")),
            decisions=_string_list(data.get("decisions")),
            actor=data.get("actor") or data.get("sourceSessionType") or "manual",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "tags": list(self.tags),
            "decisions": list(self.decisions),
            "actor": self.actor,
        }


@dataclass
class SubconsciousProposal:
    """Proposed graph changes, in the processor's JSON shape."""
    create_nodes: list[dict[str, Any]] = field(default_factory=list)
    create_edges: list[dict[str, Any]] = field(default_factory=list)
    reinforce_tags: list[dict[str, Any]] = field(default_factory=list)
    surface_next_session: list[str] = field(default_factory=list)
    ledger_entries: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubconsciousProposal:
        def dicts(key: str) -> list[dict[str, Any]]:
            return [item for item in data.get(key) or [] if isinstance(item, dict)]

        return cls(
            create_nodes=dicts("createNodes"),
            create_edges=dicts("createEdges"),
            reinforce_tags=dicts("reinforceTags"),
            surface_next_session=[
                s for s in data.get("surfaceNextSession") or [] if isinstance(s, str) and s.strip()
            ],
            ledger_entries=dicts("ledgerEntries"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "createNodes": self.create_nodes,
            "createEdges": self.create_edges,
            "reinforceTags": self.reinforce_tags,
            "surfaceNextSession": self.surface_next_session,
            "ledgerEntries": self.ledger_entries,
        }

    @property
    def is_empty(self) -> bool:
        return not (
            self.create_nodes or self.create_edges or self.reinforce_tags
            or self.surface_next_session or self.ledger_entries
        )


@dataclass
class SubconsciousConfig:
    """Configuration for the subconscious processor."""
    enable_llm: bool = False
    llm_config: LLMConfig | None = None

    # Bounds applied to proposed values
    max_gravity: float = 10.0
    max_reinforce: float = 2.0

    # Defaults for proposed nodes and reinforcement
    default_salience: float = 1.0
    default_depth: float = 0.5
    default_gravity: float = 1.0
    reinforce_amount: float = 0.5
    edge_weight: float = 0.5

    # Prompt excerpt length
    excerpt_length: int = 200


@dataclass
class SubconsciousRun:
    """What one processor invocation proposed and what was applied."""
    source: str
    proposal: SubconsciousProposal
    calls: list[OperationCall]
    batch: BatchResult

    @property
    def nodes_created(self) -> int:
        return self.batch.counts.get(OperationName.REMEMBER.value, 0)

    @property
    def edges_created(self) -> int:
        return self.batch.counts.get(OperationName.RELATE.value, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "applied": self.proposal.to_dict(),
            "calls": [c.to_dict() for c in self.calls],
            "nodesCreated": self.nodes_created,
            "edgesCreated": self.edges_created,
            "batch": self.batch.to_dict(),
        }


# ==================== Prompt ====================

def build_prompt(snapshot: GraphSnapshot, event: SessionEvent, excerpt_length: int = 200) -> str:
    nodes_context = [
        {
            "id": n.id,
            "content": n.content[:excerpt_length],
            "type": n.modality.value,
            "gravity": n.gravity,
            "depth": n.depth,
            "tags": list(n.tags),
        }
        for n in snapshot.nodes
    ]
    ledger_context = [
        {
            "type": e.entry_type.value,
            "content": e.content[:excerpt_length],
            "confidence": e.confidence,
        }
        for e in snapshot.ledger
    ]

    return f"""You are a subconscious memory processor. You have no identity, no preferences, no conversation history. You receive a memory graph state and a new session event. Your job: determine what nodes to create, what edges to form, what gravity to adjust.

CURRENT GRAPH (top {len(snapshot.nodes)} nodes by gravity):
{json.dumps(nodes_context, indent=2)}

RECENT LEDGER:
{json.dumps(ledger_context, indent=2)}

NEW SESSION EVENT:
Summary: {event.summary}
Tags: {json.dumps(event.tags)}
Decisions: {json.dumps(event.decisions)}
Source: {event.actor}

Return ONLY valid JSON with these arrays (all arrays can be empty):
{{
  "createNodes": [{{ "content": "...", "nodeType": "concept|insight|decision|pattern|question|contradiction", "tags": [...], "depth": 0.0-1.0, "gravity": 0.0-10.0 }}],
  "createEdges": [{{ "sourceContent": "matches existing node content", "targetContent": "matches existing or new node content", "relationType": "references|develops|contradicts|supports|causes|branches", "weight": 0.0-1.0 }}],
  "reinforceTags": [{{ "tag": "...", "amount": 0.0-2.0 }}],
  "surfaceNextSession": ["insight text to surface next time"],
  "ledgerEntries": [{{ "entryType": "observation|inference|pattern|decision", "content": "...", "confidence": 0.0-1.0 }}]
}}

Rules:
- MOST sessions produce 0-2 new nodes. Be aggressive about NOT creating nodes.
- Only create a node if it represents a genuinely new concept, decision, or pattern.
- If a decision was already recorded as a node, DO NOT duplicate it. Reinforce the tag instead.
- Edges connect to EXISTING nodes by matching their content. Use sourceContent/targetContent to match.
- surfaceNextSession: flag insights that the conscious layer should see next time. Use sparingly.
- Contradictions between existing nodes are valuable - always create contradiction edges."""


def parse_proposal(text: str | None) -> SubconsciousProposal | None:
    """Extract the JSON object from an LLM reply, tolerating code fences."""
    if not text:
        return None
    match = _JSON_OBJECT.search(text)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(f"[Subconscious] Unparseable proposal: {e}")
        return None
    if not isinstance(data, dict):
        return None
    return SubconsciousProposal.from_dict(data)


# ==================== Heuristic ====================

def heuristic_proposal(
    snapshot: GraphSnapshot,
    event: SessionEvent,
    config: SubconsciousConfig | None = None,
) -> SubconsciousProposal:
    """Deterministic proposal used when no LLM is available.

    Each decision becomes a decision node tagged with the event's tags and
    linked to the heaviest snapshot node sharing a tag. Event tags already
    present in the graph are reinforced. The summary is recorded as an
    observation.
    """
    config = config or SubconsciousConfig()
    proposal = SubconsciousProposal()
    event_tags = [t for t in dict.fromkeys(event.tags) if t]

    for decision in dict.fromkeys(d.strip() for d in event.decisions):
        if not decision:
            continue
        proposal.create_nodes.append({
            "content": decision,
            "nodeType": Modality.DECISION.value,
            "tags": event_tags,
            "depth": config.default_depth,
            "gravity": config.default_gravity,
        })
        anchor = _heaviest_with_tags(snapshot.nodes, event_tags)
        if anchor is not None and anchor.content != decision:
            proposal.create_edges.append({
                "sourceContent": decision,
                "targetContent": anchor.content,
                "relationType": RelationType.DEVELOPS.value,
                "weight": config.edge_weight,
            })

    known_tags = {tag for node in snapshot.nodes for tag in node.tags}
    for tag in event_tags:
        if tag in known_tags:
            proposal.reinforce_tags.append({"tag": tag, "amount": config.reinforce_amount})

    if event.summary.strip():
        proposal.ledger_entries.append({
            "entryType": LedgerEntryType.OBSERVATION.value,
            "content": event.summary.strip(),
            "confidence": 1.0,
        })
    return proposal


def _heaviest_with_tags(nodes: tuple[MemoryNode, ...], tags: list[str]) -> MemoryNode | None:
    wanted = set(tags)
    matches = [n for n in nodes if wanted.intersection(n.tags)]
    if not matches:
        return None
    return max(matches, key=lambda n: (n.gravity, -n.depth))


# ==================== Planning ====================

def _clamp(value: Any, low: float, high: float | None, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    number = max(low, number)
    return min(high, number) if high is not None else number


def _string_list(value: Any) -> list[str]:
    """Distinct non-blank strings. A bare string is one item; anything else is dropped."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    items = (v.strip() for v in value if isinstance(v, str))
    return [v for v in dict.fromkeys(items) if v]


def _choice(enum_cls, value: Any, default):
    try:
        return enum_cls(value).value
    except ValueError:
        logger.debug(f"[Subconscious] Replacing unknown {enum_cls.__name__} {value!r} with {default.value}")
        return default.value


def _match_snapshot(content: str, nodes: tuple[MemoryNode, ...]) -> str | None:
    needle = content.lower()
    for node in nodes:
        haystack = node.content.lower()
        if needle in haystack or haystack[:50] in needle:
            return node.id
    return None


def plan_operations(
    snapshot: GraphSnapshot,
    event: SessionEvent,
    proposal: SubconsciousProposal,
    config: SubconsciousConfig | None = None,
) -> list[OperationCall]:
    """Turn a proposal into ordered protocol calls. Pure: no I/O.

    Order: remember, relate, reinforce, observe(surfaced), observe. Nodes
    already in the snapshot are not recreated; their tags are reinforced
    instead. New nodes are referenced by "@ref" placeholders.
    """
    config = config or SubconsciousConfig()
    existing = snapshot.hashes()

    remembers: list[OperationCall] = []
    new_refs: dict[str, str] = {}
    reinforce: dict[str, float] = {}

    for item in proposal.create_nodes:
        content = str(item.get("content") or "").strip()
        if not content or content in new_refs:
            continue
        tags = _string_list(item.get("tags"))
        if content_hash(content) in existing:
            for tag in tags:
                reinforce.setdefault(tag, config.reinforce_amount)
            continue

        gravity = _clamp(item.get("gravity"), 0.0, config.max_gravity, config.default_gravity)
        ref = f"new{len(remembers)}"
        new_refs[content] = ref
        remembers.append(OperationCall(
            name=OperationName.REMEMBER,
            ref=ref,
            params={
                "content": content,
                "nodeType": _choice(Modality, item.get("nodeType"), Modality.INSIGHT),
                "tags": tags,
                "depth": _clamp(item.get("depth"), 0.0, None, config.default_depth),
                "gravity": gravity,
                "salience": max(config.default_salience, gravity),
                "sourceType": SUBCONSCIOUS_ACTOR,
            },
        ))

    def resolve(content: Any) -> str | None:
        text = str(content or "").strip()
        if not text:
            return None
        if text in new_refs:
            return f"@{new_refs[text]}"
        return _match_snapshot(text, snapshot.nodes)

    relates: list[OperationCall] = []
    for item in proposal.create_edges:
        source_id = resolve(item.get("sourceContent"))
        target_id = resolve(item.get("targetContent"))
        if not source_id or not target_id or source_id == target_id:
            logger.debug(f"[Subconscious] Dropping unresolved edge {item.get('sourceContent')!r} -> {item.get('targetContent')!r}")
            continue
        relates.append(OperationCall(
            name=OperationName.RELATE,
            params={
                "sourceId": source_id,
                "targetId": target_id,
                "relationType": _choice(RelationType, item.get("relationType"), RelationType.REFERENCES),
                "weight": _clamp(item.get("weight"), 0.0, 1.0, 1.0),
            },
        ))

    for item in proposal.reinforce_tags:
        tag = item.get("tag")
        tag = tag.strip() if isinstance(tag, str) else ""
        if tag:
            reinforce[tag] = _clamp(item.get("amount"), 0.0, config.max_reinforce, config.reinforce_amount)

    reinforces = [
        OperationCall(name=OperationName.REINFORCE, params={"tags": [tag], "amount": amount})
        for tag, amount in reinforce.items()
    ]

    observes = [
        OperationCall(
            name=OperationName.OBSERVE,
            params={
                "entryType": LedgerEntryType.SURFACED.value,
                "content": insight.strip(),
                "confidence": 1.0,
                "actor": SUBCONSCIOUS_ACTOR,
            },
        )
        for insight in proposal.surface_next_session
    ]
    for item in proposal.ledger_entries:
        content = str(item.get("content") or "").strip()
        if not content:
            continue
        observes.append(OperationCall(
            name=OperationName.OBSERVE,
            params={
                "entryType": _choice(LedgerEntryType, item.get("entryType"), LedgerEntryType.OBSERVATION),
                "content": content,
                "confidence": _clamp(item.get("confidence"), 0.0, 1.0, 1.0),
                "actor": SUBCONSCIOUS_ACTOR,
            },
        ))

    return remembers + relates + reinforces + observes


# ==================== Processor ====================

class SubconsciousProcessor:
    """Propose, plan and apply for one subject and one session event."""

    def __init__(
        self,
        registry: OperationRegistry,
        config: SubconsciousConfig | None = None,
        llm: LLMProvider | None = None,
    ):
        self.registry = registry
        self.config = config or SubconsciousConfig()
        self.llm = llm
        if self.llm is None and self.config.enable_llm:
            self.llm = LLMProvider(self.config.llm_config or LLMConfig())

    async def propose(self, snapshot: GraphSnapshot, event: SessionEvent) -> tuple[SubconsciousProposal, str]:
        """Returns the proposal and where it came from ("llm" or "heuristic")."""
        if self.llm is not None:
            prompt = build_prompt(snapshot, event, self.config.excerpt_length)
            try:
                response = await self.llm.complete([{"role": "user", "content": prompt}])
            except UpstreamError as e:
                logger.warning(f"[Subconscious] LLM unavailable, using heuristic: {e.message}")
            else:
                proposal = parse_proposal(response.content)
                if proposal is not None:
                    return proposal, "llm"
                logger.warning("[Subconscious] LLM reply had no usable JSON, using heuristic")

        return heuristic_proposal(snapshot, event, self.config), "heuristic"

    async def process(self, subject_id: str, event: SessionEvent) -> SubconsciousRun:
        snapshot = await self.registry.manager.snapshot(subject_id)
        proposal, source = await self.propose(snapshot, event)
        calls = plan_operations(snapshot, event, proposal, self.config)

        batch = await self.registry.apply(subject_id, calls)
        run = SubconsciousRun(source=source, proposal=proposal, calls=calls, batch=batch)
        logger.info(
            f"[Subconscious] {subject_id}: {len(calls)} calls from {source}, "
            f"{run.nodes_created} nodes, {run.edges_created} edges"
            + ("" if batch.success else f", rolled back at call {batch.failed_index}")
        )
        return run
