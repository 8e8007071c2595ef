#!/usr/bin/env python
"""
Create a sample companies DuckDB database for local development.

Run with: python -m scripts.create_sample_db [path]
"""

import random
import sys
from pathlib import Path

import duckdb

NACE_CODES = ["62010", "62020", "29100", "46900", "70220", "41200", "56100", "47110"]
COMPANY_TYPES = ["AB", "HB", "EF", "KB"]
MUNICIPALITIES = ["Stockholm", "Göteborg", "Malmö", "Uppsala", "Linköping", "Umeå"]
NAME_PARTS = ["Nordic", "Volvo", "Svea", "Fjäll", "Bygg", "Data", "Konsult", "Handel", "Tech", "Kök"]


def create_sample_database(db_path=None, companies=5000):
    db_path = Path(db_path) if db_path else Path(__file__).resolve().parents[1] / "data" / "nest_mcp.db"
    db_path.parent.mkdir(parents=True, exist_ok=True)

    print(f"Creating sample database at: {db_path}")

    conn = duckdb.connect(str(db_path))
    conn.execute("DROP TABLE IF EXISTS companies")
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

    print("Generating sample companies...")

    rows = []
    for i in range(companies):
        name = f"{random.choice(NAME_PARTS)} {random.choice(NAME_PARTS)} {random.choice(COMPANY_TYPES)}"
        employees = random.randint(0, 2000)
        rows.append((
            f"c{i:06d}",
            name,
            f"55{random.randint(10000000, 99999999)}",
            name.rsplit(" ", 1)[-1],
            random.randint(1900, 2024),
            random.sample(NACE_CODES, random.randint(1, 3)),
            employees * random.randint(500_000, 2_000_000),
            employees,
            random.choice(MUNICIPALITIES),
            None if random.random() < 0.3 else f"https://example{i}.se",
        ))

    conn.executemany("INSERT INTO companies VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)", rows)

    count = conn.execute("SELECT COUNT(*) FROM companies").fetchone()[0]
    min_year, max_year = conn.execute("SELECT MIN(founded_year), MAX(founded_year) FROM companies").fetchone()
    conn.close()

    print(f"✅ Created {count:,} sample companies")
    print(f"   Founded: {min_year} to {max_year}")
    print(f"   Database: {db_path}")


if __name__ == "__main__":
    create_sample_database(sys.argv[1] if len(sys.argv) > 1 else None)
