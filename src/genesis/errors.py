"""Typed error taxonomy shared by every Genesis component."""

from __future__ import annotations

from typing import Any


class GenesisError(Exception):
    """Base class for all structured Genesis failures."""

    code = "genesis_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(GenesisError):
    """Malformed or missing operation input."""

    code = "validation_error"


class DimensionMismatchError(ValidationError):
    """Two vectors of different length were combined."""

    def __init__(self, len_a: int, len_b: int):
        super().__init__(
            f"Vector dimension mismatch: {len_a} vs {len_b}",
            {"left": len_a, "right": len_b},
        )


class EmptyInputError(ValidationError):
    """An aggregate was requested over no vectors."""


class NotFoundError(GenesisError):
    """Graph, node or edge does not exist."""

    code = "not_found"


class ConflictError(GenesisError):
    """Cross-graph edge or duplicate content where uniqueness is enforced."""

    code = "conflict"


class RateLimitError(GenesisError):
    """Embedding request budget exhausted for the current window."""

    code = "rate_limited"

    def __init__(self, retry_after_ms: int):
        super().__init__(
            f"Embedding rate limit exceeded, retry after {retry_after_ms} ms",
            {"retry_after_ms": retry_after_ms},
        )
        self.retry_after_ms = retry_after_ms


class UpstreamError(GenesisError):
    """Embedding or LLM provider failure."""

    code = "upstream_error"


class StorageError(GenesisError):
    """Persistence failure."""

    code = "storage_error"
