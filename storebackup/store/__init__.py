# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Relational store adapters.
"""

from storebackup.store.base import TableStore, collect_columns, quote_identifier
from storebackup.store.postgres import PostgresTableStore
from storebackup.store.sqlite import SQLiteTableStore

__all__ = [
    "TableStore",
    "collect_columns",
    "quote_identifier",
    "PostgresTableStore",
    "SQLiteTableStore",
]
