"""
Tool dispatcher (the tool boundary).

Every invocation walks RECEIVED -> SCHEMA_VALIDATED -> EXECUTING and ends in
COMPLETED or FAILED. Nothing raised by a handler escapes dispatch(): errors
come back as structured payloads so one bad call cannot take down the task
serving other sessions.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import pydantic

from ..errors import ExecutionError, SchemaViolation, ToolError
from ..sql.executor import QueryResult
from .registry import ToolRegistry

logger = logging.getLogger(__name__)


class InvocationState(str, enum.Enum):
    RECEIVED = "received"
    SCHEMA_VALIDATED = "schema_validated"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ToolResponse:
    tool_name: str
    state: InvocationState
    result: Optional[QueryResult] = None
    error: Optional[ToolError] = None

    @property
    def ok(self) -> bool:
        return self.state is InvocationState.COMPLETED

    def to_payload(self) -> Dict[str, Any]:
        if self.ok and self.result is not None:
            return {"ok": True, **self.result.to_payload()}
        error = self.error or ExecutionError("query failed")
        return {"ok": False, "error": error.to_payload()}


def _schema_details(exc: pydantic.ValidationError) -> list:
    return [
        {
            "field": ".".join(str(p) for p in err["loc"]) or "<root>",
            "problem": err["type"],
            "message": err["msg"],
        }
        for err in exc.errors()
    ]


class Dispatcher:
    """Validates arguments against a tool's contract and runs its handler."""

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def dispatch(self, tool_name: str, arguments: Any) -> ToolResponse:
        state = InvocationState.RECEIVED
        started = time.perf_counter()

        def fail(error: ToolError) -> ToolResponse:
            logger.warning("%s failed in %s: [%s] %s", tool_name, state.value, error.code, error.message)
            return ToolResponse(tool_name, InvocationState.FAILED, error=error)

        tool = self.registry.get(tool_name)
        if tool is None:
            return fail(SchemaViolation(
                f"Unknown tool: {tool_name}",
                details={"available": sorted(t.name for t in self.registry)},
            ))

        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            return fail(SchemaViolation("Tool arguments must be a JSON object."))

        try:
            args = tool.arguments_model.model_validate(arguments)
        except pydantic.ValidationError as e:
            return fail(SchemaViolation(
                f"Arguments do not match the {tool_name} input schema.",
                details=_schema_details(e),
            ))
        state = InvocationState.SCHEMA_VALIDATED
        logger.debug("%s: %s", tool_name, state.value)

        state = InvocationState.EXECUTING
        try:
            result = await tool.handler(args)
        except ToolError as e:
            return fail(e)
        except Exception:
            logger.exception("Unhandled error in tool %s", tool_name)
            return fail(ExecutionError("query failed"))

        logger.info(
            "%s completed: %d rows%s in %.1f ms",
            tool_name,
            result.row_count,
            " (truncated)" if result.truncated else "",
            (time.perf_counter() - started) * 1000,
        )
        return ToolResponse(tool_name, InvocationState.COMPLETED, result=result)
