"""Operation protocol: the eight named operations callers use on a subject's graph.

Usage:
    from src.genesis.memory import MemoryManager
    from src.genesis.protocol import create_default_registry

    manager = MemoryManager()
    await manager.initialize()
    registry = create_default_registry(manager)

    result = await registry.execute("s1", "remember", {"content": "...", "nodeType": "insight"})
"""

from src.genesis.protocol.base import (
    BaseOperation,
    OperationCall,
    OperationDefinition,
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
from src.genesis.protocol.registry import BatchResult, OperationRegistry, create_default_registry

__all__ = [
    "BaseOperation",
    "OperationCall",
    "OperationDefinition",
    "OperationName",
    "OperationResult",
    "OperationResultStatus",
    "RememberOperation",
    "RecallOperation",
    "RelateOperation",
    "ObserveOperation",
    "ForgetOperation",
    "ReinforceOperation",
    "WhoAmIOperation",
    "StatusOperation",
    "BatchResult",
    "OperationRegistry",
    "create_default_registry",
]
