"""Operation registry: dispatch by name, structured results, batches."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from src.genesis.errors import GenesisError, ValidationError
from src.genesis.protocol.base import (
    BaseOperation,
    OperationCall,
    OperationName,
    OperationResult,
    OperationResultStatus,
)
from src.genesis.protocol.introspection_ops import StatusOperation, WhoAmIOperation
from src.genesis.protocol.ledger_ops import ObserveOperation
from src.genesis.protocol.memory_ops import (
    ForgetOperation,
    RecallOperation,
    ReinforceOperation,
    RelateOperation,
    RememberOperation,
)

if TYPE_CHECKING:
    from src.genesis.memory.memory_manager import MemoryManager

# Codes that describe the caller's input rather than a broken system
CALLER_ERROR_CODES = {"validation_error", "not_found", "conflict", "rate_limited"}

# Parameters that may carry "@ref" placeholders inside a batch
REF_FIELDS = ("sourceId", "targetId", "nodeId", "nodeIds", "relatedTo")


def _log_failure(operation: str, subject_id: str, error: GenesisError) -> None:
    message = f"[Protocol] {operation} failed for {subject_id}: [{error.code}] {error.message}"
    if error.code in CALLER_ERROR_CODES:
        logger.info(message)
    else:
        logger.error(message)


@dataclass
class BatchResult:
    """Outcome of applying a list of calls as one unit."""
    results: list[OperationResult] = field(default_factory=list)
    failed_index: int | None = None
    error: dict[str, Any] | None = None
    refs: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.failed_index is None

    @property
    def counts(self) -> dict[str, int]:
        """Applied calls per operation name. Empty when the batch rolled back."""
        if not self.success:
            return {}
        counts: dict[str, int] = {}
        for result in self.results:
            counts[result.operation] = counts.get(result.operation, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "status": "success" if self.success else "error",
            "applied": len(self.results) if self.success else 0,
            "counts": self.counts,
            "refs": dict(self.refs),
            "results": [r.to_dict() for r in self.results],
        }
        if not self.success:
            data["failedIndex"] = self.failed_index
            data["error"] = self.error
        return data


class OperationRegistry:
    """Registry for managing and executing operations."""

    def __init__(self, manager: MemoryManager):
        self.manager = manager
        self._operations: dict[OperationName, BaseOperation] = {}

    def register(self, operation: BaseOperation) -> None:
        self._operations[operation.name] = operation

    def get(self, name: OperationName | str) -> BaseOperation | None:
        try:
            key = OperationName(name)
        except ValueError:
            return None
        return self._operations.get(key)

    def list_operations(self) -> list[str]:
        return [name.value for name in self._operations]

    def get_definitions(self) -> list[dict]:
        """Get all operation definitions in OpenAI format."""
        return [op.get_definition().to_openai_format() for op in self._operations.values()]

    def _resolve(self, name: OperationName | str) -> BaseOperation:
        operation = self.get(name)
        if operation is None:
            raise ValidationError(
                f"Unknown operation: {name}",
                {"operation": str(name), "allowed": self.list_operations()},
            )
        return operation

    async def run(self, subject_id: str, name: OperationName | str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Validate and execute; GenesisError propagates to the caller."""
        if not subject_id:
            raise ValidationError("subject id is required")
        operation = self._resolve(name)
        payload = operation.parse(params)
        return await operation.execute(subject_id, payload)

    async def execute(self, subject_id: str, name: OperationName | str, params: dict[str, Any] | None = None) -> OperationResult:
        """Execute an operation by name, reporting failures as structured results."""
        label = name.value if isinstance(name, OperationName) else str(name)
        start = time.perf_counter()
        try:
            output = await self.run(subject_id, name, params)
        except GenesisError as e:
            _log_failure(label, subject_id, e)
            return OperationResult(
                status=OperationResultStatus.ERROR,
                operation=label,
                error=e.to_dict(),
                metadata={"duration_ms": round((time.perf_counter() - start) * 1000, 2)},
            )

        return OperationResult(
            status=OperationResultStatus.SUCCESS,
            operation=label,
            output=output,
            metadata={"duration_ms": round((time.perf_counter() - start) * 1000, 2)},
        )

    async def apply(self, subject_id: str, calls: list[OperationCall]) -> BatchResult:
        """Apply calls in order as one unit for the subject.

        `remember` calls with a `ref` record the created node id; later calls
        may write "@<ref>" in any id parameter. The first failure rolls back
        every earlier call in the batch.
        """
        batch = BatchResult()
        current = -1
        try:
            async with self.manager.batch(subject_id):
                for current, call in enumerate(calls):
                    params = self._substitute_refs(call.params, batch.refs)
                    output = await self.run(subject_id, call.name, params)
                    if call.ref and call.name == OperationName.REMEMBER:
                        batch.refs[call.ref] = output["id"]
                    batch.results.append(OperationResult(
                        status=OperationResultStatus.SUCCESS,
                        operation=call.name.value,
                        output=output,
                    ))
        except GenesisError as e:
            name = calls[current].name.value if 0 <= current < len(calls) else "batch"
            _log_failure(name, subject_id, e)
            batch.failed_index = current
            batch.error = e.to_dict()
            batch.results.append(OperationResult(
                status=OperationResultStatus.ERROR,
                operation=name,
                error=e.to_dict(),
            ))
            return batch

        logger.info(f"[Protocol] Applied {len(calls)} calls for {subject_id}: {batch.counts}")
        return batch

    @staticmethod
    def _substitute_refs(params: dict[str, Any], refs: dict[str, str]) -> dict[str, Any]:
        def resolve(value: Any) -> Any:
            if isinstance(value, str) and value.startswith("@"):
                ref = value[1:]
                if ref not in refs:
                    raise ValidationError(f"Unresolved reference: {value}", {"ref": ref})
                return refs[ref]
            return value

        resolved = dict(params)
        for key in REF_FIELDS:
            if key not in resolved:
                continue
            value = resolved[key]
            resolved[key] = [resolve(v) for v in value] if isinstance(value, list) else resolve(value)
        return resolved

    def get_operations_summary(self) -> str:
        """Get a summary of all operations for a system prompt."""
        lines = ["Available Operations:"]
        for op in self._operations.values():
            lines.append(f"- {op.name.value}: {op.description.splitlines()[0]}")
        return "\n".join(lines)


def create_default_registry(manager: MemoryManager) -> OperationRegistry:
    """Registry with all eight operations. Fails loudly if one is missing."""
    registry = OperationRegistry(manager)
    for operation_cls in (
        RememberOperation,
        RecallOperation,
        RelateOperation,
        ObserveOperation,
        ForgetOperation,
        ReinforceOperation,
        WhoAmIOperation,
        StatusOperation,
    ):
        registry.register(operation_cls(manager))

    missing = set(OperationName) - set(registry._operations)
    if missing:
        raise RuntimeError(f"Operations without a handler: {sorted(m.value for m in missing)}")
    return registry
