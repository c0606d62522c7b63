"""Error taxonomy shared by the dispatcher, engine and SQL client.

Every error carries a category and a message that is safe to show to the
caller verbatim. The protocol layer maps categories to JSON-RPC codes.
"""

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Distinguishable classes of failure."""

    UNKNOWN_OPERATION = "unknown_operation"
    INVALID_PARAMS = "invalid_params"
    STATE = "state"
    BACKEND = "backend"
    INTERNAL = "internal"


class PolentaError(Exception):
    """Base class for errors that reach the caller as an error envelope."""

    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UnknownOperationError(PolentaError):
    """Unrecognized method or tool name."""

    category = ErrorCategory.UNKNOWN_OPERATION


class InvalidParamsError(PolentaError):
    """Missing/mistyped argument or an unresolvable table, schema or entity."""

    category = ErrorCategory.INVALID_PARAMS


class SessionStateError(PolentaError):
    """Operation requires a precondition that is not met."""

    category = ErrorCategory.STATE


class BackendError(PolentaError):
    """SQL execution failed after retries, or no pooled connection was available."""

    category = ErrorCategory.BACKEND


class InternalError(PolentaError):
    """Anything unanticipated."""

    category = ErrorCategory.INTERNAL


# JSON-RPC 2.0 codes used at the protocol boundary
JSONRPC_INVALID_REQUEST = -32600
JSONRPC_CODES: dict[ErrorCategory, int] = {
    ErrorCategory.UNKNOWN_OPERATION: -32601,
    ErrorCategory.INVALID_PARAMS: -32602,
    ErrorCategory.INTERNAL: -32603,
    ErrorCategory.STATE: -32000,
    ErrorCategory.BACKEND: -32001,
}
