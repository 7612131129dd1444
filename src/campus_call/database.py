"""Database startup: connection pool and schema migrations."""

from __future__ import annotations

import logging
import re
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"
_FILENAME_RE = re.compile(r"^(\d+)_.*\.sql$")

# One connection per notification subscriber stays parked on LISTEN
POOL_MIN_SIZE = 2
POOL_MAX_SIZE = 10

_SCHEMA_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version     INTEGER PRIMARY KEY,
        applied_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
        filename    TEXT NOT NULL
    )
"""


def is_blank_sql(sql: str) -> bool:
    """True for files holding only whitespace and ``--`` comments."""
    return all(
        line.strip().startswith("--") or not line.strip() for line in sql.splitlines()
    )


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> list[tuple[int, Path]]:
    """Return (version, path) pairs sorted by version."""
    found = [
        (int(m.group(1)), p)
        for p in directory.glob("*.sql")
        if (m := _FILENAME_RE.match(p.name))
    ]
    return sorted(found, key=lambda item: item[0])


async def _pending(
    conn: asyncpg.Connection, directory: Path
) -> list[tuple[int, str, str]]:
    """Migrations not yet recorded, as (version, filename, sql); blank files skipped."""
    await conn.execute(_SCHEMA_TABLE_DDL)
    applied = {r["version"] for r in await conn.fetch("SELECT version FROM schema_migrations")}
    pending = []
    for version, path in discover_migrations(directory):
        if version in applied:
            continue
        sql = path.read_text().strip()
        if sql and not is_blank_sql(sql):
            pending.append((version, path.name, sql))
    return pending


async def run_migrations(pool: asyncpg.Pool, directory: Path = MIGRATIONS_DIR) -> int:
    """Apply pending migrations, each in its own transaction; return how many ran."""
    async with pool.acquire() as conn:
        pending = await _pending(conn, directory)
        for version, filename, sql in pending:
            async with conn.transaction():
                await conn.execute(sql)
                await conn.execute(
                    "INSERT INTO schema_migrations (version, filename) VALUES ($1, $2)",
                    version,
                    filename,
                )
            logger.info("Applied migration %s", filename)

    if pending:
        logger.info("Schema at version %d", pending[-1][0])
    else:
        logger.info("Schema up to date")
    return len(pending)


async def open_database(
    database_url: str, *, migrations: Path | None = MIGRATIONS_DIR
) -> asyncpg.Pool:
    """Create the service pool and bring the schema up to date.

    Pass ``migrations=None`` to skip migrating (e.g. a read replica).
    """
    pool = await asyncpg.create_pool(
        database_url, min_size=POOL_MIN_SIZE, max_size=POOL_MAX_SIZE
    )
    assert pool is not None
    if migrations is not None:
        try:
            await run_migrations(pool, migrations)
        except Exception:
            await pool.close()
            raise
    return pool
