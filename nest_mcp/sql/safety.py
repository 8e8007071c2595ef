from __future__ import annotations

import logging
import re

import duckdb

from ..errors import ExecutionError, ValidationError

logger = logging.getLogger(__name__)

SQL_INJECTION_PATTERNS = [
    r";\s*drop\s+", r";\s*delete\s+", r";\s*insert\s+", r";\s*update\s+",
    r";\s*alter\s+", r";\s*create\s+", r";\s*truncate\s+", r"--\s*$",
    r"'\s*;\s*", r"'\s*or\s+['\"1]", r"'\s*and\s+", r"union\s+select",
    r"exec\s*\(", r"execute\s*\(", r"0x[0-9a-f]+", r"char\s*\(",
]

# Table inspection commands; they read the catalog and can be wrapped as a subquery.
INSPECTION_COMMANDS = ("describe", "summarize")


def detect_sql_injection(user_input: str) -> bool:
    """Heuristic detection of common SQL injection patterns."""
    t = (user_input or "").lower()
    for pattern in SQL_INJECTION_PATTERNS:
        if re.search(pattern, t, re.IGNORECASE):
            return True
    return False


def _leading_keyword(sql: str) -> str:
    match = re.match(r"\s*([A-Za-z]+)", sql)
    return match.group(1).lower() if match else ""


def safe_select_only(sql: str) -> str:
    """
    Ensure SQL is a single read statement.

    The engine's parser splits and classifies the text, so string literals and
    comments never count as statement separators or keywords. Accepts SELECT
    (including WITH and VALUES queries) plus DESCRIBE and SUMMARIZE.
    """
    try:
        statements = duckdb.extract_statements(sql or "")
    except duckdb.Error as e:
        logger.error("Query failed to parse: %s | sql=%s", e, sql)
        raise ExecutionError("query failed") from e

    if not statements:
        raise ValidationError("Only SELECT queries are allowed.")
    if len(statements) > 1:
        raise ValidationError(
            "Only a single statement is allowed.", details={"statements": len(statements)}
        )

    statement = statements[0]
    if statement.type == duckdb.StatementType.SELECT:
        return sql
    if _leading_keyword(sql) in INSPECTION_COMMANDS:
        return sql
    raise ValidationError(
        "Only SELECT queries are allowed.", details={"statement_type": statement.type.name}
    )
