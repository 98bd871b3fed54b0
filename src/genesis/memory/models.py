"""Core data models for the Genesis memory graph."""

from __future__ import annotations

import hashlib
import time
import uuid
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any


def new_id() -> str:
    return uuid.uuid4().hex


def content_hash(content: str) -> str:
    """SHA-256 of the node content, used for integrity and dedup."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class Modality(str, Enum):
    """Kind of memory a node holds."""
    # Tool-oriented vocabulary
    CONVERSATION = "conversation"
    CONCEPT = "concept"
    INSIGHT = "insight"
    DECISION = "decision"
    PATTERN = "pattern"
    QUESTION = "question"
    CONTRADICTION = "contradiction"
    FACT = "fact"
    # Cognitive vocabulary
    EPISODIC = "episodic"
    SEMANTIC = "semantic"
    PROCEDURAL = "procedural"
    EMOTIONAL = "emotional"
    SENSORY = "sensory"


class RelationType(str, Enum):
    """Type of a directed edge between two nodes."""
    REFERENCES = "references"
    DEVELOPS = "develops"
    CONTRADICTS = "contradicts"
    BRANCHES = "branches"
    CAUSES = "causes"
    SUPPORTS = "supports"
    TEMPORAL = "temporal"
    SEMANTIC = "semantic"
    PRECEDES = "precedes"


class LedgerEntryType(str, Enum):
    """Narrative record kinds."""
    OBSERVATION = "observation"
    INFERENCE = "inference"
    COMMITMENT = "commitment"
    QUESTION = "question"
    DECISION = "decision"
    PATTERN = "pattern"
    SURFACED = "surfaced"


@dataclass
class Graph:
    """The single memory graph owned by a subject."""
    subject_id: str
    id: str = field(default_factory=new_id)
    node_count: int = 0
    edge_count: int = 0
    version: int = 1
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    oldest_memory_at: float | None = None
    newest_memory_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Graph:
        return cls(**data)


@dataclass
class MemoryNode:
    """A discrete memory.

    Content is immutable once written; gravity, depth and the access fields
    are the only things that change over a node's life.
    """
    graph_id: str
    content: str
    modality: Modality = Modality.INSIGHT
    id: str = field(default_factory=new_id)
    content_hash: str = ""
    gravity: float = 1.0        # Current importance, bounded by salience
    salience: float = 1.0       # Importance ceiling
    depth: float = 0.5          # 0 = core identity, larger = more peripheral
    confidence: float = 1.0
    strength: float = 1.0
    tags: list[str] = field(default_factory=list)
    source_type: str | None = None
    source_id: str | None = None
    access_count: int = 0
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    last_accessed: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = content_hash(self.content)
        if not isinstance(self.modality, Modality):
            self.modality = Modality(self.modality)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        data = asdict(self)
        data["modality"] = self.modality.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryNode:
        """Deserialize from dictionary."""
        return cls(
            id=data["id"],
            graph_id=data["graph_id"],
            content=data["content"],
            modality=Modality(data.get("modality", Modality.INSIGHT.value)),
            content_hash=data.get("content_hash", ""),
            gravity=data.get("gravity", 1.0),
            salience=data.get("salience", 1.0),
            depth=data.get("depth", 0.5),
            confidence=data.get("confidence", 1.0),
            strength=data.get("strength", 1.0),
            tags=list(data.get("tags") or []),
            source_type=data.get("source_type"),
            source_id=data.get("source_id"),
            access_count=data.get("access_count", 0),
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
            last_accessed=data.get("last_accessed", time.time()),
        )

    def summarize(self, max_length: int = 100) -> str:
        """Short display form."""
        preview = self.content[:max_length]
        if len(self.content) > max_length:
            preview += "..."
        return f"[G={self.gravity:.2f} D={self.depth:.2f}] {preview}"


@dataclass
class Edge:
    """Directed, typed relation between two nodes of the same graph."""
    graph_id: str
    source_id: str
    target_id: str
    relation_type: RelationType
    weight: float = 1.0
    context: str | None = None
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)
    strengthened_count: int = 0
    last_strengthened: float | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.relation_type, RelationType):
            self.relation_type = RelationType(self.relation_type)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["relation_type"] = self.relation_type.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        return cls(
            id=data["id"],
            graph_id=data["graph_id"],
            source_id=data["source_id"],
            target_id=data["target_id"],
            relation_type=RelationType(data["relation_type"]),
            weight=data.get("weight", 1.0),
            context=data.get("context"),
            created_at=data.get("created_at", time.time()),
            strengthened_count=data.get("strengthened_count", 0),
            last_strengthened=data.get("last_strengthened"),
        )


@dataclass(frozen=True)
class LedgerEntry:
    """Append-only narrative record. Frozen: never edited after insert."""
    subject_id: str
    entry_type: LedgerEntryType
    content: str
    confidence: float = 1.0
    node_id: str | None = None
    actor: str = "manual"
    id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not isinstance(self.entry_type, LedgerEntryType):
            object.__setattr__(self, "entry_type", LedgerEntryType(self.entry_type))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["entry_type"] = self.entry_type.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LedgerEntry:
        return cls(
            id=data["id"],
            subject_id=data["subject_id"],
            entry_type=LedgerEntryType(data["entry_type"]),
            content=data["content"],
            confidence=data.get("confidence", 1.0),
            node_id=data.get("node_id"),
            actor=data.get("actor", "manual"),
            created_at=data.get("created_at", time.time()),
        )


@dataclass(frozen=True)
class AuditEntry:
    """Forensic record of an out-of-band node mutation (update/delete)."""
    subject_id: str
    operation: str              # "node.updated" | "node.deleted"
    entity_id: str
    actor: str = "system"
    details: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CubePosition:
    """Subject's position in the trust cube (each axis 0-10)."""
    subject_id: str
    trust_level: float = 1.0
    access_depth: float = 1.0
    role_clarity: float = 2.0
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class GraphSnapshot:
    """Read-only view of a subject's graph handed to the subconscious processor."""
    subject_id: str
    nodes: tuple[MemoryNode, ...] = ()
    ledger: tuple[LedgerEntry, ...] = ()
    version: int = 0
    taken_at: float = field(default_factory=time.time)

    def hashes(self) -> dict[str, str]:
        """content_hash -> node id."""
        return {n.content_hash: n.id for n in self.nodes}

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "nodes": [n.to_dict() for n in self.nodes],
            "ledger": [e.to_dict() for e in self.ledger],
            "version": self.version,
            "taken_at": self.taken_at,
        }
