"""
Pytest configuration and shared fixtures.
"""
import asyncio

import duckdb
import pytest

from nest_mcp.sql.executor import CompanyDatabase, QueryResult
from nest_mcp.tools.registry import NoArguments, ToolDescriptor, ToolRegistry, build_registry

ROW_CAP = 3

COMPANIES = [
    ("c1", "Volvo Cars AB", "5560000001", "AB", 1927, ["29100", "46900"], 330000000, 40000, "Göteborg", "https://volvocars.com"),
    ("c2", "Volvo Personvagnar AB", "5560000002", "AB", 2019, ["29100"], 1000000, 50, "Göteborg", None),
    ("c3", "Nordic Data AB", "5560000003", "AB", 2020, ["62010"], 5000000, 12, "Stockholm", None),
    ("c4", "Svea Bygg HB", "5560000004", "HB", 2021, ["41200"], 800000, 4, "Uppsala", None),
    ("c5", "100% Konsult_AB", "5560000005", "AB", 2005, ["70220", "62020"], 2500000, 8, "Malmö", None),
    ("c6", "Fjäll Kök AB", "5560000006", "AB", 1999, ["56100"], 300000, 3, "Umeå", None),
    ("c7", "Okänd AB", "5560000007", "AB", None, None, None, None, None, None),
]


@pytest.fixture
def company_db_path(tmp_path):
    """Create a temporary DuckDB file with a small companies table."""
    db_path = tmp_path / "companies.db"
    conn = duckdb.connect(str(db_path))
    conn.execute("""
        CREATE TABLE companies (
            company_id VARCHAR,
            name VARCHAR,
            organization_number VARCHAR,
            company_type VARCHAR,
            founded_year INTEGER,
            nace_codes VARCHAR[],
            revenue BIGINT,
            employees INTEGER,
            municipality VARCHAR,
            homepage VARCHAR
        )
    """)
    conn.executemany("INSERT INTO companies VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)", COMPANIES)
    conn.close()
    return db_path


@pytest.fixture
def company_db(company_db_path):
    """Read-only database handle over the sample companies."""
    db = CompanyDatabase(company_db_path, query_timeout=10)
    yield db
    db.close()


@pytest.fixture
def registry(company_db):
    return build_registry(company_db, row_cap=ROW_CAP)


def marker_result(marker):
    return QueryResult(records=[{"marker": marker}], row_count=1, truncated=False, columns=["marker"])


class GatedTools:
    """
    Fake tools for transport tests.

    `slow` blocks until release() is called; `fast` answers immediately;
    `boom` raises an unexpected exception.
    """

    def __init__(self):
        self.gate = asyncio.Event()
        self.started = asyncio.Event()
        self.calls = []

    def release(self):
        self.gate.set()

    async def slow(self, args):
        self.calls.append("slow")
        self.started.set()
        await self.gate.wait()
        return marker_result("slow")

    async def fast(self, args):
        self.calls.append("fast")
        return marker_result("fast")

    async def boom(self, args):
        self.calls.append("boom")
        raise RuntimeError("internal detail: /secret/path")

    def registry(self):
        def tool(name, handler):
            return ToolDescriptor(
                name=name,
                title=name,
                description=f"test tool {name}",
                input_schema={"type": "object", "properties": {}, "additionalProperties": False},
                arguments_model=NoArguments,
                handler=handler,
            )

        return ToolRegistry([tool("slow", self.slow), tool("fast", self.fast), tool("boom", self.boom)])


# Markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "mcp: marks tests related to the MCP transport")


@pytest.fixture
def gated_tools():
    return GatedTools()
