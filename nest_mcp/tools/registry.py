"""
Tool registry.

Each tool carries its published input schema next to the pydantic model that
enforces it, so validation and dispatch always agree on the contract.
Descriptors are built once at startup and shared read-only by all sessions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Type

from pydantic import BaseModel, ConfigDict

from ..sql.builder import COMPANY_TABLE, SearchRequest, build_company_search, capped_statement
from ..sql.executor import CompanyDatabase, QueryResult
from ..sql.safety import detect_sql_injection, safe_select_only

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[QueryResult]]


class RawSqlArguments(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    query: str


class NoArguments(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)


# =============================================================================
# Published input contracts
# =============================================================================
RAW_SQL_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "A single SELECT (or WITH ... SELECT) statement.",
        }
    },
    "required": ["query"],
    "additionalProperties": False,
}

COMPANY_SEARCH_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Case-insensitive substring of the company name"},
        "founded_after": {"type": "integer", "description": "Earliest founding year (inclusive)"},
        "founded_before": {"type": "integer", "description": "Latest founding year (inclusive)"},
        "nace_codes": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Industry (NACE) codes; matches companies with any of them",
        },
        "revenue_min": {"type": "integer", "description": "Minimum revenue"},
        "revenue_max": {"type": "integer", "description": "Maximum revenue"},
        "employees_min": {"type": "integer", "description": "Minimum number of employees"},
        "employees_max": {"type": "integer", "description": "Maximum number of employees"},
    },
    "minProperties": 1,
    "additionalProperties": False,
}

EMPTY_SCHEMA: Dict[str, Any] = {"type": "object", "properties": {}, "additionalProperties": False}


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    title: str
    description: str
    input_schema: Mapping[str, Any]
    arguments_model: Type[BaseModel]
    handler: Handler = field(compare=False)
    read_only: bool = True

    def describe(self) -> Dict[str, Any]:
        """MCP-style tool listing entry."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": dict(self.input_schema),
            "annotations": {"title": self.title, "readOnlyHint": self.read_only},
        }


class ToolRegistry:
    """Immutable name -> descriptor mapping."""

    def __init__(self, tools: List[ToolDescriptor]):
        names = [t.name for t in tools]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate tool names: {names}")
        self._tools = MappingProxyType({t.name: t for t in tools})

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def list_tools(self) -> List[Dict[str, Any]]:
        return [t.describe() for t in self]


def build_registry(database: CompanyDatabase, row_cap: int) -> ToolRegistry:
    """Wire every tool to the shared database handle."""

    async def raw_sql(args: RawSqlArguments) -> QueryResult:
        safe_select_only(args.query)
        return await database.fetch(capped_statement(args.query, row_cap), row_cap=row_cap)

    async def company_search(args: SearchRequest) -> QueryResult:
        if args.name and detect_sql_injection(args.name):
            # Bound as a parameter either way; noted for auditing.
            logger.warning("Suspicious company-search name value: %r", args.name)
        sql, params = build_company_search(args, row_cap)
        return await database.fetch(sql, params, row_cap=row_cap)

    async def company_schema(args: NoArguments) -> QueryResult:
        return await database.describe_table(COMPANY_TABLE)

    return ToolRegistry([
        ToolDescriptor(
            name="raw-sql",
            title="Companies (SQL)",
            description=(
                f"Execute a read-only SQL query against the company database "
                f"(table `{COMPANY_TABLE}`). At most {row_cap} rows are returned."
            ),
            input_schema=RAW_SQL_SCHEMA,
            arguments_model=RawSqlArguments,
            handler=raw_sql,
        ),
        ToolDescriptor(
            name="company-search",
            title="Company search",
            description=(
                "Search companies by name, founding year, industry (NACE) codes, "
                "revenue and number of employees. Filters are combined with AND; "
                f"at least one is required. At most {row_cap} rows are returned."
            ),
            input_schema=COMPANY_SEARCH_SCHEMA,
            arguments_model=SearchRequest,
            handler=company_search,
        ),
        ToolDescriptor(
            name="company-schema",
            title="Company table schema",
            description=f"Describe the columns of the `{COMPANY_TABLE}` table.",
            input_schema=EMPTY_SCHEMA,
            arguments_model=NoArguments,
            handler=company_schema,
        ),
    ])
