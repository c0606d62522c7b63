"""Pydantic models for response envelopes and tool descriptors."""

import logging
import time
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from polenta_mcp.errors import ErrorCategory, InternalError, PolentaError


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_execution_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Response envelopes
# =============================================================================


class _EnvelopeBase(BaseModel):
    """Fields stamped on every envelope for traceability."""

    message: str = Field(default="", description="Human-readable summary")
    user_message: str = Field(default="", description="Message safe to display to end users")
    execution_id: str = Field(default_factory=_new_execution_id)
    timestamp: int = Field(default_factory=_now_ms, description="Epoch milliseconds")

    @model_validator(mode="after")
    def default_user_message(self):
        if not self.user_message:
            self.user_message = self.message
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return self.model_dump(mode="json", exclude_none=True)


class SuccessEnvelope(_EnvelopeBase):
    """Successful result: a type tag plus operation-specific payload fields.

    Payload fields (``schemas``, ``tables``, ``columns``, ``data``,
    ``row_count``, ``matching_tables``, ``suggestions``, ...) are stored as
    extra attributes so each operation keeps its own shape.
    """

    model_config = ConfigDict(extra="allow")

    status: Literal["success"] = "success"
    type: str

    @property
    def ok(self) -> bool:
        return True

    @property
    def payload(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class ErrorEnvelope(_EnvelopeBase):
    """Failed result with the error category preserved for the protocol layer."""

    status: Literal["error"] = "error"
    type: Literal["error"] = "error"
    category: ErrorCategory = ErrorCategory.INTERNAL
    details: dict[str, Any] = Field(default_factory=dict)
    diagnostic_id: str | None = None

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_error(cls, error: PolentaError, diagnostic_id: str | None = None) -> "ErrorEnvelope":
        return cls(
            category=error.category,
            message=error.message,
            details=error.details,
            diagnostic_id=diagnostic_id,
        )


Envelope = SuccessEnvelope | ErrorEnvelope


def success(result_type: str, message: str, **payload: Any) -> SuccessEnvelope:
    """Build a success envelope."""
    return SuccessEnvelope(type=result_type, message=message, **payload)


# =============================================================================
# Tool descriptors
# =============================================================================


class PropertySchema(BaseModel):
    """JSON-Schema-like description of one tool argument."""

    model_config = ConfigDict(frozen=True)

    type: str = "string"
    description: str = ""
    examples: tuple[str, ...] = ()


class InputSchema(BaseModel):
    """Object schema with named properties and a required-field list."""

    model_config = ConfigDict(frozen=True)

    type: Literal["object"] = "object"
    properties: dict[str, PropertySchema] = Field(default_factory=dict)
    required: tuple[str, ...] = ()


class ToolMetadata(BaseModel):
    """Optional catalog metadata shown to clients."""

    model_config = ConfigDict(frozen=True)

    result_type: str
    fields: tuple[str, ...] = ()
    examples: tuple[dict[str, Any], ...] = ()
    usage_examples: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    version: str = "1.0"


class ToolDescriptor(BaseModel):
    """A named, schema-validated operation exposed through ``tools/call``."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: InputSchema = Field(
        default_factory=InputSchema, serialization_alias="inputSchema"
    )
    metadata: ToolMetadata | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def error_envelope(error: Exception, log: logging.Logger) -> ErrorEnvelope:
    """Convert any exception into an error envelope.

    Unanticipated exceptions are logged with their traceback under an opaque
    diagnostic id; only that id reaches the caller.
    """
    if isinstance(error, PolentaError):
        return ErrorEnvelope.from_error(error)
    diagnostic_id = uuid.uuid4().hex[:12]
    log.exception("Unexpected error [diagnostic_id=%s]: %s", diagnostic_id, error)
    return ErrorEnvelope.from_error(
        InternalError(f"Internal error (diagnostic id {diagnostic_id})"),
        diagnostic_id=diagnostic_id,
    )
