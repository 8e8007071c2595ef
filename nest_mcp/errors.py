"""
Error taxonomy for the tool server.

Tool errors are raised where they are detected and recovered at the
dispatcher boundary (tool-level) or the transport boundary (session-level).
Every error knows how to render itself as a structured payload.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ToolError(Exception):
    """Base class for every error that is reported back to a client."""

    code = "tool_error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(ToolError):
    """Arguments are well-shaped but break a tool-specific rule."""

    code = "validation_error"


class SchemaViolation(ToolError):
    """Arguments do not match the tool's declared input schema."""

    code = "schema_violation"


class ExecutionError(ToolError):
    """The engine rejected or failed a query."""

    code = "execution_error"


class SessionNotFound(ToolError):
    code = "session_not_found"


class SessionClosed(ToolError):
    """Pending invocation abandoned because its session went away."""

    code = "cancelled"


class TransportFault(ToolError):
    code = "transport_fault"


class DuplicateCorrelation(ValidationError):
    """A client reused a correlation id that is still pending."""

    code = "duplicate_correlation_id"


class MalformedMessage(ToolError):
    """A posted message is not valid JSON or misses envelope fields."""

    code = "malformed_message"
