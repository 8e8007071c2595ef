"""
Tests for the SQL executor module.
Covers the read-only DuckDB boundary, row capping and error mapping.
"""
import json

import duckdb
import pandas as pd
import pytest

from nest_mcp.errors import ExecutionError
from nest_mcp.sql.builder import SearchRequest, build_company_search, capped_statement
from nest_mcp.sql.executor import CompanyDatabase, QueryResult, execute_sql_query

CAP = 3


class TestExecuteSQLQuery:
    """Test the synchronous helper."""

    def test_executor_missing_db(self, tmp_path):
        """Test error when database doesn't exist."""
        with pytest.raises(FileNotFoundError):
            execute_sql_query("SELECT 1", db_path=tmp_path / "missing.db")

    def test_executor_returns_dataframe(self, company_db_path):
        """Test that executor returns a pandas DataFrame."""
        df = execute_sql_query("SELECT name FROM companies WHERE employees > ?", [100], db_path=company_db_path)

        assert isinstance(df, pd.DataFrame)
        assert list(df["name"]) == ["Volvo Cars AB"]

    def test_executor_is_read_only(self, company_db_path):
        """Test the connection refuses writes."""
        with pytest.raises(duckdb.Error):
            execute_sql_query("DELETE FROM companies", db_path=company_db_path)


class TestQueryResult:
    """Test result shaping."""

    def test_truncation_flag(self):
        """Test a look-ahead row marks the result truncated."""
        df = pd.DataFrame({"x": [1, 2, 3, 4]})
        result = QueryResult.from_frame(df, row_cap=3)

        assert result.row_count == 3
        assert result.truncated is True
        assert result.records == [{"x": 1}, {"x": 2}, {"x": 3}]

    def test_exactly_cap_not_truncated(self):
        """Test a result of exactly the cap is complete."""
        result = QueryResult.from_frame(pd.DataFrame({"x": [1, 2, 3]}), row_cap=3)
        assert result.truncated is False

    def test_payload_is_json(self):
        """Test missing values serialize as null."""
        df = pd.DataFrame({"x": [1.5, float("nan")], "s": ["a", None]})
        payload = QueryResult.from_frame(df, row_cap=10).to_payload()

        assert json.loads(json.dumps(payload)) == {
            "records": [{"x": 1.5, "s": "a"}, {"x": None, "s": None}],
            "row_count": 2,
            "truncated": False,
        }


@pytest.mark.integration
class TestCompanyDatabase:
    """Test queries against the sample companies."""

    @pytest.mark.asyncio
    async def test_name_search(self, company_db):
        """Test case-insensitive substring search."""
        sql, params = build_company_search(SearchRequest(name="volvo"), CAP)
        result = await company_db.fetch(sql, params, row_cap=CAP)

        assert [r["name"] for r in result.records] == ["Volvo Cars AB", "Volvo Personvagnar AB"]
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_year_range(self, company_db):
        """Test inclusive founding-year bounds."""
        sql, params = build_company_search(SearchRequest(founded_after=2019, founded_before=2021), CAP)
        result = await company_db.fetch(sql, params, row_cap=CAP)

        assert sorted(r["company_id"] for r in result.records) == ["c2", "c3", "c4"]
        assert result.row_count == 3
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_cap_truncates(self, company_db):
        """Test more matches than the cap returns exactly the cap."""
        sql, params = build_company_search(SearchRequest(founded_after=1900), CAP)
        result = await company_db.fetch(sql, params, row_cap=CAP)

        assert result.row_count == CAP
        assert len(result.records) == CAP
        assert result.truncated is True

    @pytest.mark.asyncio
    async def test_nace_any_of(self, company_db):
        """Test companies matching any of the codes are returned."""
        sql, params = build_company_search(SearchRequest(nace_codes=["62010", "62020"]), CAP)
        result = await company_db.fetch(sql, params, row_cap=CAP)

        assert sorted(r["company_id"] for r in result.records) == ["c3", "c5"]

    @pytest.mark.asyncio
    async def test_combined_filters(self, company_db):
        """Test filters narrow each other."""
        sql, params = build_company_search(
            SearchRequest(name="volvo", founded_after=2000, nace_codes=["29100"]), CAP
        )
        result = await company_db.fetch(sql, params, row_cap=CAP)

        assert [r["company_id"] for r in result.records] == ["c2"]

    @pytest.mark.asyncio
    async def test_wildcards_match_literally(self, company_db):
        """Test % and _ in a name only match themselves."""
        for name in ("%", "_", "100%", "t_A"):
            sql, params = build_company_search(SearchRequest(name=name), CAP)
            result = await company_db.fetch(sql, params, row_cap=CAP)
            assert [r["company_id"] for r in result.records] == ["c5"], name

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        "'; DROP TABLE companies; --",
        "' OR '1'='1",
        "Volvo' UNION SELECT 1 --",
    ])
    async def test_injection_payloads_are_inert(self, company_db, payload):
        """Test crafted names match nothing and leave the table intact."""
        sql, params = build_company_search(SearchRequest(name=payload), CAP)
        result = await company_db.fetch(sql, params, row_cap=CAP)
        assert result.records == []

        count = await company_db.fetch("SELECT COUNT(*) AS n FROM companies", row_cap=1)
        assert count.records == [{"n": 7}]

    @pytest.mark.asyncio
    async def test_raw_sql_capped(self, company_db):
        """Test wrapped raw SQL honours the cap."""
        result = await company_db.fetch(capped_statement("SELECT * FROM companies;", CAP), row_cap=CAP)

        assert result.row_count == CAP
        assert result.truncated is True

    @pytest.mark.asyncio
    async def test_nulls_and_ints(self, company_db):
        """Test NULL integers become null and ints stay ints."""
        result = await company_db.fetch(
            "SELECT company_id, founded_year FROM companies WHERE company_id IN ('c1', 'c7') ORDER BY company_id",
            row_cap=10,
        )

        assert result.records == [
            {"company_id": "c1", "founded_year": 1927},
            {"company_id": "c7", "founded_year": None},
        ]
        assert isinstance(result.records[0]["founded_year"], int)

    @pytest.mark.asyncio
    async def test_engine_error_is_generic(self, company_db):
        """Test engine diagnostics are not passed through."""
        with pytest.raises(ExecutionError) as exc:
            await company_db.fetch("SELECT no_such_column FROM companies", row_cap=CAP)

        assert exc.value.message == "query failed"
        assert "no_such_column" not in json.dumps(exc.value.to_payload())

    @pytest.mark.asyncio
    async def test_writes_rejected_by_engine(self, company_db):
        """Test the shared connection is read-only."""
        with pytest.raises(ExecutionError):
            await company_db.fetch("DELETE FROM companies", row_cap=CAP)

    @pytest.mark.asyncio
    async def test_describe_table(self, company_db):
        """Test the schema listing."""
        result = await company_db.describe_table("companies")
        columns = {r["column_name"]: r["column_type"] for r in result.records}

        assert columns["founded_year"] == "INTEGER"
        assert columns["nace_codes"] == "VARCHAR[]"
        assert result.truncated is False

    @pytest.mark.asyncio
    async def test_describe_rejects_bad_identifier(self, company_db):
        """Test table names are validated."""
        with pytest.raises(ValueError):
            await company_db.describe_table("companies; DROP TABLE x")

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_timeout_interrupts(self, company_db_path):
        """Test a long query is interrupted and reported as an execution error."""
        db = CompanyDatabase(company_db_path, query_timeout=0.2)
        try:
            with pytest.raises(ExecutionError, match="timed out"):
                await db.fetch(
                    "SELECT SUM(a.range * b.range) AS s FROM range(200000) a, range(200000) b",
                    row_cap=1,
                )
        finally:
            db.close()

    def test_missing_database(self, tmp_path):
        """Test startup fails loudly without a dataset."""
        with pytest.raises(FileNotFoundError):
            CompanyDatabase(tmp_path / "missing.db")
