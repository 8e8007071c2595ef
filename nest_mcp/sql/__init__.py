"""SQL utilities: query construction, safety checks and the engine boundary."""
from .builder import SearchRequest, build_company_search, capped_statement
from .executor import CompanyDatabase, QueryResult, execute_sql_query
from .safety import detect_sql_injection, safe_select_only

__all__ = [
    "SearchRequest",
    "build_company_search",
    "capped_statement",
    "CompanyDatabase",
    "QueryResult",
    "execute_sql_query",
    "detect_sql_injection",
    "safe_select_only",
]
