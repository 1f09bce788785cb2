# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
PostgreSQL table store backed by asyncpg.

Rows travel as JSON in both directions: reads use ``row_to_json`` and
writes go through ``jsonb_populate_recordset``, so PostgreSQL performs
the column type conversion. A backup taken from PostgreSQL therefore
holds the same JSON values the hosted REST layer would have returned.
"""

import json
from typing import Any, Dict, List, Sequence, Tuple
from urllib.parse import urlparse

import structlog

from storebackup.exceptions import StoreUnavailableError
from storebackup.manifest import Row
from storebackup.store.base import quote_identifier

logger = structlog.get_logger()


def _mask_password(url: str) -> str:
    """Mask password in connection URL for logging."""
    parsed = urlparse(url)
    if parsed.password:
        return url.replace(f":{parsed.password}@", ":***@")
    return url


def _is_connection_error(exc: BaseException) -> bool:
    import asyncpg

    return isinstance(
        exc,
        (
            OSError,
            asyncpg.exceptions.ConnectionDoesNotExistError,
            asyncpg.exceptions.CannotConnectNowError,
            asyncpg.exceptions.InterfaceError,
        ),
    )


class PostgresTableStore:
    """TableStore over an asyncpg connection pool."""

    def __init__(self, pool: Any):
        self.pool = pool

    @classmethod
    async def connect(cls, connection_url: str, **pool_kwargs: Any) -> "PostgresTableStore":
        """
        Create a pool for connection_url.

        Raises:
            StoreUnavailableError: If the database cannot be reached
        """
        import asyncpg

        try:
            pool = await asyncpg.create_pool(connection_url, **pool_kwargs)
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to connect to PostgreSQL: {e}",
                details={"connection_url": _mask_password(connection_url)},
            )
        logger.info("postgres_store_connected", connection_url=_mask_password(connection_url))
        return cls(pool)

    async def close(self) -> None:
        await self.pool.close()

    async def ping(self) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except Exception as e:
            raise StoreUnavailableError(f"PostgreSQL is not reachable: {e}")

    async def select_all(self, table: str) -> List[Row]:
        table_sql = quote_identifier(table)
        try:
            async with self.pool.acquire() as conn:
                records = await conn.fetch(f"SELECT row_to_json(t)::text FROM {table_sql} AS t")
        except Exception as e:
            if _is_connection_error(e):
                raise StoreUnavailableError(f"PostgreSQL connection lost: {e}")
            raise
        return [json.loads(record[0]) for record in records]

    async def delete_all(self, table: str) -> int:
        table_sql = quote_identifier(table)
        try:
            async with self.pool.acquire() as conn:
                status = await conn.execute(f"DELETE FROM {table_sql}")
        except Exception as e:
            if _is_connection_error(e):
                raise StoreUnavailableError(f"PostgreSQL connection lost: {e}")
            raise
        # asyncpg returns the command tag, e.g. "DELETE 3"
        return int(status.split()[-1])

    async def upsert_rows(self, table: str, rows: Sequence[Row], primary_key: str = "id") -> int:
        """
        Upsert rows in one transaction.

        Rows are grouped by their column set so a row that omits a column
        leaves that column's stored value alone instead of nulling it.
        """
        if not rows:
            return 0

        table_sql = quote_identifier(table)
        pk_sql = quote_identifier(primary_key)

        groups: Dict[Tuple[str, ...], List[Row]] = {}
        for row in rows:
            groups.setdefault(tuple(row), []).append(row)

        statements = []
        for columns, group in groups.items():
            column_sql = ", ".join(quote_identifier(c) for c in columns)
            updates = ", ".join(
                f"{quote_identifier(c)} = EXCLUDED.{quote_identifier(c)}"
                for c in columns
                if c != primary_key
            )
            conflict = f"DO UPDATE SET {updates}" if updates else "DO NOTHING"
            query = (
                f"INSERT INTO {table_sql} ({column_sql}) "
                f"SELECT {column_sql} FROM jsonb_populate_recordset(NULL::{table_sql}, $1::jsonb) "
                f"ON CONFLICT ({pk_sql}) {conflict}"
            )
            statements.append((query, json.dumps(group)))

        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    for query, payload in statements:
                        await conn.execute(query, payload)
        except Exception as e:
            if _is_connection_error(e):
                raise StoreUnavailableError(f"PostgreSQL connection lost: {e}")
            raise

        logger.debug(
            "postgres_rows_upserted", table=table, rows=len(rows), statements=len(statements)
        )
        return len(rows)
