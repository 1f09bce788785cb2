# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Relational store contract used by the backup engine.
"""

import re
from typing import List, Protocol, Sequence

from storebackup.exceptions import ConfigurationError
from storebackup.manifest import Row

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class TableStore(Protocol):
    """The three table operations backup and restore need, plus a health check."""

    async def ping(self) -> None:
        """Raise StoreUnavailableError if the store cannot be reached."""
        ...

    async def select_all(self, table: str) -> List[Row]:
        ...

    async def delete_all(self, table: str) -> int:
        ...

    async def upsert_rows(self, table: str, rows: Sequence[Row], primary_key: str = "id") -> int:
        """Insert rows, overwriting existing rows that share the primary key."""
        ...


def quote_identifier(name: str) -> str:
    """
    Quote a table or column name for SQL.

    Names come from archives that may have been edited by hand, so only
    plain identifiers are accepted.
    """
    if not _IDENTIFIER_RE.match(name):
        raise ConfigurationError(
            f"Refusing unsafe SQL identifier: {name!r}",
            details={"identifier": name},
        )
    return f'"{name}"'


def collect_columns(rows: Sequence[Row]) -> List[str]:
    """Union of row keys in first-seen order."""
    columns: List[str] = []
    seen = set()
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns
