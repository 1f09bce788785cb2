# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
SQLite table store backed by aiosqlite.

Nested JSON values (objects and arrays) are stored as JSON text and
returned as stored. Each upsert batch runs in a single transaction, so
a failing row leaves the table as it was before the batch.
"""

import json
import sqlite3
from pathlib import Path
from typing import Any, List, Sequence

import aiosqlite
import structlog

from storebackup.exceptions import StoreUnavailableError
from storebackup.manifest import Row
from storebackup.store.base import collect_columns, quote_identifier

logger = structlog.get_logger()


def _to_sqlite_value(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


class SQLiteTableStore:
    """TableStore over a SQLite database file."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)

    async def ping(self) -> None:
        if not self.db_path.parent.exists():
            raise StoreUnavailableError(
                "SQLite database directory does not exist",
                details={"db_path": str(self.db_path)},
            )
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("SELECT 1")
        except sqlite3.Error as e:
            raise StoreUnavailableError(
                f"SQLite database is not reachable: {e}",
                details={"db_path": str(self.db_path)},
            )

    async def select_all(self, table: str) -> List[Row]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(f"SELECT * FROM {quote_identifier(table)}") as cursor:
                return [dict(row) async for row in cursor]

    async def delete_all(self, table: str) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(f"DELETE FROM {quote_identifier(table)}")
            await db.commit()
            return cursor.rowcount

    async def upsert_rows(self, table: str, rows: Sequence[Row], primary_key: str = "id") -> int:
        if not rows:
            return 0

        table_sql = quote_identifier(table)
        pk_sql = quote_identifier(primary_key)

        async with aiosqlite.connect(self.db_path) as db:
            try:
                for row in rows:
                    columns = collect_columns([row])
                    column_sql = ", ".join(quote_identifier(c) for c in columns)
                    placeholders = ", ".join("?" for _ in columns)
                    updates = ", ".join(
                        f"{quote_identifier(c)} = excluded.{quote_identifier(c)}"
                        for c in columns
                        if c != primary_key
                    )
                    conflict = f"DO UPDATE SET {updates}" if updates else "DO NOTHING"
                    await db.execute(
                        f"INSERT INTO {table_sql} ({column_sql}) VALUES ({placeholders}) "
                        f"ON CONFLICT({pk_sql}) {conflict}",
                        [_to_sqlite_value(row[c]) for c in columns],
                    )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.debug("sqlite_rows_upserted", table=table, rows=len(rows))
        return len(rows)
