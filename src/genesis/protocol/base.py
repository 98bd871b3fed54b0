"""Base classes for memory operations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.genesis.errors import ValidationError

if TYPE_CHECKING:
    from src.genesis.memory.memory_manager import MemoryManager


class OperationName(str, Enum):
    """The closed set of operations callers may invoke."""
    REMEMBER = "remember"
    RECALL = "recall"
    RELATE = "relate"
    OBSERVE = "observe"
    FORGET = "forget"
    REINFORCE = "reinforce"
    WHO_AM_I = "who_am_i"
    STATUS = "status"


class OperationResultStatus(Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class OperationResult:
    """Result from an operation execution."""
    status: OperationResultStatus
    operation: str
    output: dict[str, Any] | None = None
    error: dict[str, Any] | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == OperationResultStatus.SUCCESS

    @property
    def error_code(self) -> str | None:
        return self.error["code"] if self.error else None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": self.status.value, "operation": self.operation}
        if self.success:
            data["result"] = self.output
        else:
            data["error"] = self.error
        if self.metadata:
            data["metadata"] = self.metadata
        return data

    def to_message(self) -> str:
        """Convert result to a message for an LLM."""
        if self.success:
            return str(self.output) if self.output else "Operation completed successfully."
        return f"Error [{self.error['code']}]: {self.error['message']}"


@dataclass
class OperationDefinition:
    """Operation definition for LLM tool use."""
    name: str
    description: str
    input_schema: dict

    def to_openai_format(self) -> dict:
        """Convert to OpenAI function format."""
        schema = dict(self.input_schema)
        if "type" not in schema:
            schema["type"] = "object"
        if "properties" not in schema:
            schema["properties"] = {}
        if "required" not in schema:
            schema["required"] = []
        if "additionalProperties" not in schema:
            schema["additionalProperties"] = False

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }


@dataclass
class OperationCall:
    """One planned invocation.

    `ref` names the node a `remember` call creates; later calls may use
    "@<ref>" in place of that node's id.
    """
    name: OperationName
    params: dict[str, Any] = field(default_factory=dict)
    ref: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, OperationName):
            self.name = OperationName(self.name)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name.value, "params": self.params}
        if self.ref:
            data["ref"] = self.ref
        return data


def validation_error_from(e: PydanticValidationError, operation: str) -> ValidationError:
    """Flatten pydantic's error list into a JSON-safe ValidationError."""
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"]) or None,
            "message": err["msg"],
            "type": err["type"],
        }
        for err in e.errors()
    ]
    fields = ", ".join(err["field"] or "(payload)" for err in errors)
    return ValidationError(
        f"Invalid input for {operation}: {fields}",
        {"operation": operation, "errors": errors},
    )


class BaseOperation(ABC):
    """Base class for all operations."""

    payload_model: type[BaseModel]

    def __init__(self, manager: MemoryManager):
        self.manager = manager

    @property
    @abstractmethod
    def name(self) -> OperationName:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    @abstractmethod
    def input_schema(self) -> dict:
        """JSON schema for operation input."""
        pass

    @abstractmethod
    async def execute(self, subject_id: str, payload: BaseModel) -> dict[str, Any]:
        """Run the operation for an already-authenticated subject."""
        pass

    def parse(self, params: dict[str, Any] | None) -> BaseModel:
        """Validate raw parameters into the operation's payload model."""
        if params is not None and not isinstance(params, dict):
            raise ValidationError(
                f"Parameters for {self.name.value} must be an object",
                {"operation": self.name.value},
            )
        try:
            return self.payload_model.model_validate(params or {})
        except PydanticValidationError as e:
            raise validation_error_from(e, self.name.value) from None

    def get_definition(self) -> OperationDefinition:
        return OperationDefinition(
            name=self.name.value,
            description=self.description,
            input_schema=self.input_schema,
        )
