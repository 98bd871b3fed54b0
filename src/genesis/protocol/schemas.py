"""Typed payloads for the eight operations.

Field names are snake_case in Python and camelCase on the wire; both are
accepted. Unknown fields are rejected.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from src.genesis.memory.models import LedgerEntryType, Modality, RelationType


class Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        allow_inf_nan=False,
    )


class RememberPayload(Payload):
    content: str = Field(min_length=1)
    node_type: Modality
    tags: list[str] = Field(default_factory=list)
    depth: float | None = Field(default=None, ge=0)
    gravity: float | None = Field(default=None, ge=0)
    salience: float | None = Field(default=None, ge=0)
    confidence: float = Field(default=1.0, ge=0, le=1)
    related_to: list[str] = Field(default_factory=list)
    source_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("sourceType", "sourceSessionType", "source_type"),
    )
    source_id: str | None = None

    @model_validator(mode="after")
    def _content_not_blank(self) -> RememberPayload:
        if not self.content.strip():
            raise ValueError("content must not be blank")
        return self


class RecallPayload(Payload):
    query: str = Field(min_length=1)
    max_results: int | None = Field(default=None, ge=1)
    node_type: Modality | None = None
    node_types: list[Modality] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    min_gravity: float | None = Field(default=None, ge=0)
    include_edges: bool = True

    @property
    def modalities(self) -> list[Modality]:
        kinds = list(self.node_types)
        if self.node_type is not None and self.node_type not in kinds:
            kinds.append(self.node_type)
        return kinds


class RelatePayload(Payload):
    source_id: str = Field(min_length=1)
    target_id: str = Field(min_length=1)
    relation_type: RelationType
    weight: float | None = Field(default=None, ge=0, le=1)
    context: str | None = None


class ObservePayload(Payload):
    entry_type: LedgerEntryType
    content: str = Field(min_length=1)
    confidence: float = Field(default=1.0, ge=0, le=1)
    node_id: str | None = None
    actor: str = Field(
        default="manual",
        validation_alias=AliasChoices("actor", "sourceSessionType", "source_session_type"),
    )


class ForgetPayload(Payload):
    node_id: str = Field(min_length=1)
    amount: float | None = Field(default=None, ge=0)


class ReinforcePayload(Payload):
    tags: list[str] = Field(default_factory=list)
    node_ids: list[str] = Field(default_factory=list)
    amount: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _has_selector(self) -> ReinforcePayload:
        if not self.tags and not self.node_ids:
            raise ValueError("tags and/or nodeIds is required")
        return self


class WhoAmIPayload(Payload):
    pass


class StatusPayload(Payload):
    pass
