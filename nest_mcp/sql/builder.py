from __future__ import annotations

from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..errors import ValidationError

COMPANY_TABLE = "companies"

SEARCH_COLUMNS = (
    "company_id",
    "name",
    "organization_number",
    "company_type",
    "founded_year",
    "nace_codes",
    "revenue",
    "employees",
    "municipality",
    "homepage",
)

# (argument low, argument high, column)
RANGE_FILTERS = (
    ("founded_after", "founded_before", "founded_year"),
    ("revenue_min", "revenue_max", "revenue"),
    ("employees_min", "employees_max", "employees"),
)

LIKE_ESCAPE = "\\"


class SearchRequest(BaseModel):
    """Arguments of the company-search tool. Every field is optional."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    name: Optional[str] = None
    founded_after: Optional[int] = None
    founded_before: Optional[int] = None
    nace_codes: Optional[List[str]] = None
    revenue_min: Optional[int] = None
    revenue_max: Optional[int] = None
    employees_min: Optional[int] = None
    employees_max: Optional[int] = None


class QueryFragments:
    """
    Ordered (predicate, parameter) pairs joined with AND.

    Predicates are the fixed templates below; values only ever reach the
    parameter list.
    """

    _SUBSTRING = "{column} ILIKE '%' || ? || '%' ESCAPE '" + LIKE_ESCAPE + "'"
    _AT_LEAST = "{column} >= ?"
    _AT_MOST = "{column} <= ?"
    _HAS_ANY = "list_has_any({column}, ?)"

    def __init__(self) -> None:
        self._pairs: List[Tuple[str, Any]] = []

    def _add(self, template: str, column: str, value: Any) -> None:
        if column not in SEARCH_COLUMNS:
            raise ValueError(f"Unknown column: {column}")
        self._pairs.append((template.format(column=column), value))

    def substring(self, column: str, value: str) -> None:
        self._add(self._SUBSTRING, column, escape_like(value))

    def at_least(self, column: str, value: Any) -> None:
        self._add(self._AT_LEAST, column, value)

    def at_most(self, column: str, value: Any) -> None:
        self._add(self._AT_MOST, column, value)

    def has_any(self, column: str, values: List[str]) -> None:
        self._add(self._HAS_ANY, column, list(values))

    def __len__(self) -> int:
        return len(self._pairs)

    @property
    def predicates(self) -> List[str]:
        return [p for p, _ in self._pairs]

    @property
    def params(self) -> List[Any]:
        return [v for _, v in self._pairs]

    def where_clause(self) -> str:
        return " AND ".join(self.predicates)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value only ever matches literally."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _probe_limit(row_cap: int) -> int:
    # One row past the cap tells the executor the result was truncated.
    row_cap = int(row_cap)
    if row_cap < 1:
        raise ValueError("row_cap must be at least 1")
    return row_cap + 1


def search_fragments(request: SearchRequest) -> QueryFragments:
    fragments = QueryFragments()

    name = (request.name or "").strip()
    if name:
        fragments.substring("name", name)

    for low_field, high_field, column in RANGE_FILTERS:
        low = getattr(request, low_field)
        high = getattr(request, high_field)
        if low is not None and high is not None and low > high:
            raise ValidationError(
                f"{low_field} must not be greater than {high_field}",
                details={low_field: low, high_field: high},
            )
        if low is not None:
            fragments.at_least(column, low)
        if high is not None:
            fragments.at_most(column, high)

    codes = [c.strip() for c in (request.nace_codes or []) if c.strip()]
    if codes:
        fragments.has_any("nace_codes", codes)

    return fragments


def build_company_search(request: SearchRequest, row_cap: int) -> Tuple[str, List[Any]]:
    """Translate a search request into a parameterized, row-capped SELECT."""
    fragments = search_fragments(request)
    if not fragments:
        raise ValidationError("At least one search filter must be provided.")

    columns = ", ".join(SEARCH_COLUMNS)
    sql = f"""SELECT {columns}
FROM {COMPANY_TABLE}
WHERE {fragments.where_clause()}
ORDER BY name
LIMIT {_probe_limit(row_cap)}"""
    return sql, fragments.params


def capped_statement(sql: str, row_cap: int) -> str:
    """Wrap a caller-supplied statement in the row cap without editing it."""
    inner = (sql or "").strip().rstrip(";").strip()
    # Newlines keep a trailing line comment from swallowing the wrapper.
    return f"SELECT * FROM (\n{inner}\n) AS capped LIMIT {_probe_limit(row_cap)}"
