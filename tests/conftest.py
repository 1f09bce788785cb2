# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for storebackup tests.

Provides in-memory store and storage fakes, a SQLite-backed store and
test configuration helpers.
"""

import tempfile
from pathlib import Path
from typing import Dict, Generator, List, Sequence

import aiosqlite
import pytest
import pytest_asyncio

from storebackup.config import BackupConfig, TableKind
from storebackup.exceptions import StorageError, StoreUnavailableError
from storebackup.schema import SchemaRegistry, TableSpec
from storebackup.storage.base import StorageEntry


class MemoryTableStore:
    """In-memory TableStore that counts writes and can be told to fail."""

    def __init__(self, tables: Dict[str, List[dict]] | None = None):
        self.tables: Dict[str, List[dict]] = {
            name: [dict(r) for r in rows] for name, rows in (tables or {}).items()
        }
        self.fail_select: set = set()
        self.fail_upsert: set = set()
        self.unavailable = False
        self.writes: List[tuple] = []

    async def ping(self) -> None:
        if self.unavailable:
            raise StoreUnavailableError("store is down")

    async def select_all(self, table: str) -> List[dict]:
        if table in self.fail_select:
            raise RuntimeError(f"permission denied for table {table}")
        return [dict(r) for r in self.tables.get(table, [])]

    async def delete_all(self, table: str) -> int:
        self.writes.append(("delete", table))
        count = len(self.tables.get(table, []))
        self.tables[table] = []
        return count

    async def upsert_rows(self, table: str, rows: Sequence[dict], primary_key: str = "id") -> int:
        self.writes.append(("upsert", table))
        if table in self.fail_upsert:
            raise RuntimeError(f"insert into {table} violates a constraint")
        existing = self.tables.setdefault(table, [])
        for row in rows:
            for current in existing:
                if current.get(primary_key) == row.get(primary_key):
                    current.update(row)
                    break
            else:
                existing.append(dict(row))
        return len(rows)

    def rows_by_pk(self, table: str, primary_key: str = "id") -> Dict:
        return {r[primary_key]: r for r in self.tables.get(table, [])}


class MemoryObjectStorage:
    """In-memory ObjectStorage with folder semantics derived from '/' in paths."""

    def __init__(self, objects: Dict[str, Dict[str, bytes]] | None = None):
        self.objects: Dict[str, Dict[str, bytes]] = {
            bucket: dict(items) for bucket, items in (objects or {}).items()
        }
        self.fail_list: set = set()  # (bucket, prefix) pairs
        self.fail_download: set = set()  # (bucket, path) pairs
        self.fail_upload: set = set()  # (bucket, path) pairs
        self.uploads: List[tuple] = []

    async def list_children(self, bucket: str, prefix: str = "") -> List[StorageEntry]:
        if (bucket, prefix) in self.fail_list:
            raise StorageError(f"listing {bucket}/{prefix} timed out")
        folders: Dict[str, StorageEntry] = {}
        files: List[StorageEntry] = []
        for path in sorted(self.objects.get(bucket, {})):
            if not path.startswith(prefix):
                continue
            rest = path[len(prefix):]
            if "/" in rest:
                name = rest.split("/", 1)[0]
                folders.setdefault(name, StorageEntry(name, f"{prefix}{name}/", True))
            else:
                files.append(StorageEntry(rest, path, False))
        return list(folders.values()) + files

    async def download(self, bucket: str, path: str) -> bytes:
        if (bucket, path) in self.fail_download:
            raise StorageError(f"download of {path} failed")
        return self.objects[bucket][path]

    async def upload(self, bucket: str, path: str, data: bytes) -> None:
        if (bucket, path) in self.fail_upload:
            raise StorageError(f"upload of {path} failed")
        self.uploads.append((bucket, path))
        self.objects.setdefault(bucket, {})[path] = data


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def registry() -> SchemaRegistry:
    """A small registry: one configuration table, one transactional table."""
    return SchemaRegistry(
        tables=(
            TableSpec("colors", TableKind.CONFIGURATION, in_data_backup=True),
            TableSpec("system_settings", TableKind.CONFIGURATION, in_data_backup=True),
            TableSpec("orders", TableKind.TRANSACTIONAL),
        ),
        buckets=("shop-products", "site-assets"),
    )


@pytest.fixture
def test_config(temp_dir: Path) -> BackupConfig:
    """Create a test configuration."""
    return BackupConfig(
        archive_dir=temp_dir / "archives",
        compression_level=6,
        max_concurrent_ops=4,
    )


@pytest.fixture
def memory_store() -> MemoryTableStore:
    """The colors/orders store used across the scenarios."""
    return MemoryTableStore({
        "colors": [{"id": 1, "name": "Red"}],
        "orders": [{"id": "A", "status": "shipped"}],
    })


@pytest.fixture
def memory_storage() -> MemoryObjectStorage:
    return MemoryObjectStorage({
        "shop-products": {
            "logo.png": b"\x89PNG logo",
            "user-1/order-9/photo.jpg": b"jpeg bytes",
            "user-1/order-9/notes.txt": b"handle with care",
        },
        "site-assets": {
            "hero/banner.webp": b"banner",
        },
    })


@pytest_asyncio.fixture
async def sqlite_db_path(temp_dir: Path) -> Path:
    """SQLite database with colors, orders and system_settings tables."""
    db_path = temp_dir / "shop.db"
    async with aiosqlite.connect(db_path) as db:
        await db.execute("CREATE TABLE colors (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
        await db.execute("CREATE TABLE orders (id TEXT PRIMARY KEY, status TEXT NOT NULL)")
        await db.execute("""
            CREATE TABLE system_settings (
                id TEXT PRIMARY KEY,
                key TEXT UNIQUE NOT NULL,
                value TEXT,
                updated_at TEXT
            )
        """)
        await db.execute("INSERT INTO colors (id, name) VALUES (1, 'Red')")
        await db.execute("INSERT INTO orders (id, status) VALUES ('A', 'shipped')")
        await db.commit()
    return db_path
