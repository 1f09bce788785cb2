# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Integration Tests for storebackup.

These tests verify the integration between components:
- FastAPI endpoints
- SQLite and PostgreSQL table stores
- S3 object storage adapter
- Backup/restore orchestration and settings
"""

import asyncio
import json
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from botocore.exceptions import EndpointConnectionError
from fastapi import Depends, FastAPI, Header, HTTPException
from httpx import ASGITransport, AsyncClient

from storebackup.archive.codec import decode, encode
from storebackup.archive.files import list_archives
from storebackup.config import BackupConfig, BackupType
from storebackup.core import initialize_engine_state, run_backup, run_restore
from storebackup.exceptions import (
    ArchiveError,
    ConfigurationError,
    OperationInProgressError,
    StorageError,
    StoreUnavailableError,
)
from storebackup.integrations.fastapi import (
    backup_lifespan,
    get_backup_state,
    register_backup_routes,
)
from storebackup.manifest import Manifest
from storebackup.settings import SETTINGS_KEY, load_settings
from storebackup.storage.s3 import S3ObjectStorage, get_mime_type, open_s3_storage
from storebackup.storage.walker import list_all_objects
from storebackup.store.postgres import PostgresTableStore, _mask_password
from storebackup.store.sqlite import SQLiteTableStore

from conftest import MemoryTableStore


# ============================================================================
# FastAPI Integration Tests
# ============================================================================

def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def engine_state(test_config, registry, memory_store, memory_storage):
    return initialize_engine_state(test_config, memory_store, memory_storage, registry)


@pytest.fixture
def app(engine_state) -> FastAPI:
    app = FastAPI()
    register_backup_routes(app, engine_state)
    return app


@pytest.mark.asyncio
async def test_fastapi_full_backup_download(app: FastAPI):
    """Test that a full backup is returned as a zip download."""
    async with _client(app) as client:
        response = await client.post("/admin/backup/run", params={"type": "full"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert 'filename="backup-full-' in response.headers["content-disposition"]
    assert response.headers["x-backup-errors"] == "0"

    manifest, blobs = decode(response.content)
    assert manifest["type"] == "full"
    assert set(manifest["tables"]) == {"colors", "system_settings", "orders"}
    assert len(manifest["files"]) == 4
    assert blobs["storage/shop-products/logo.png"] == b"\x89PNG logo"


@pytest.mark.asyncio
async def test_fastapi_backup_defaults_to_data_only(app: FastAPI):
    async with _client(app) as client:
        response = await client.post("/admin/backup/run")

    assert response.status_code == 200
    manifest, blobs = decode(response.content)
    assert manifest["type"] == "data_only"
    assert "orders" not in manifest["tables"]
    assert blobs == {}


@pytest.mark.asyncio
async def test_fastapi_restore_upload(app: FastAPI, memory_store):
    """Test restoring an archive sent as the request body."""
    async with _client(app) as client:
        archive = (await client.post("/admin/backup/run", params={"type": "full"})).content
        memory_store.tables["colors"] = [{"id": 2, "name": "Green"}]

        response = await client.post("/admin/backup/restore", content=archive)

    assert response.status_code == 200
    data = response.json()
    assert data["summary"] == "restored 3/3 tables, 4/4 files"
    assert data["errors"] == []
    assert data["rows_restored"] == 2
    assert memory_store.tables["colors"] == [{"id": 1, "name": "Red"}]


@pytest.mark.asyncio
async def test_fastapi_restore_rejects_bad_input(app: FastAPI):
    unknown_version = encode(Manifest(type=BackupType.DATA_ONLY, tables={}, version="9.9"), {})

    async with _client(app) as client:
        empty = await client.post("/admin/backup/restore", content=b"")
        garbage = await client.post("/admin/backup/restore", content=b"not a zip")
        unsupported = await client.post("/admin/backup/restore", content=unknown_version)

    assert empty.status_code == 400
    assert garbage.status_code == 400
    assert unsupported.status_code == 422
    assert "9.9" in unsupported.json()["detail"]


@pytest.mark.asyncio
async def test_fastapi_conflict_while_operation_running(app: FastAPI, engine_state):
    """Test that a second operation is refused while one holds the engine."""
    async with engine_state["lock"]:
        engine_state["running"] = "restore"
        async with _client(app) as client:
            response = await client.post("/admin/backup/run")

    assert response.status_code == 409
    assert "restore" in response.json()["detail"]


@pytest.mark.asyncio
async def test_fastapi_store_unavailable(app: FastAPI, engine_state, memory_store):
    memory_store.unavailable = True

    async with _client(app) as client:
        response = await client.post("/admin/backup/run")
        status = await client.get("/admin/backup/status")

    assert response.status_code == 503
    assert status.json()["last_error"] == "store is down"
    assert status.json()["total_backups"] == 0


@pytest.mark.asyncio
async def test_fastapi_settings_endpoints(app: FastAPI, memory_store):
    """Test reading and updating the backup settings record."""
    async with _client(app) as client:
        defaults = await client.get("/admin/backup/settings")
        updated = await client.put(
            "/admin/backup/settings",
            json={"autoBackupEnabled": True, "frequency": "weekly", "retainCount": 3},
        )
        invalid = await client.put("/admin/backup/settings", json={"retainCount": 0})
        current = await client.get("/admin/backup/settings")

    assert defaults.json() == {
        "autoBackupEnabled": False,
        "frequency": "daily",
        "lastBackupAt": None,
        "retainCount": 5,
    }
    assert updated.status_code == 200
    assert invalid.status_code == 422
    assert current.json() == {
        "autoBackupEnabled": True,
        "frequency": "weekly",
        "lastBackupAt": None,
        "retainCount": 3,
    }
    assert memory_store.tables["system_settings"][0]["key"] == SETTINGS_KEY


@pytest.mark.asyncio
async def test_fastapi_status_endpoint(app: FastAPI):
    async with _client(app) as client:
        await client.post("/admin/backup/run")
        response = await client.get("/admin/backup/status")

    data = response.json()
    assert data["running"] is None
    assert data["total_backups"] == 1
    assert data["last_backup_at"] is not None
    assert data["object_storage"] is True


@pytest.mark.asyncio
async def test_fastapi_archives_endpoint(temp_dir: Path, registry, memory_store):
    config = BackupConfig(archive_dir=temp_dir / "archives", write_archives=True)
    app = FastAPI()
    register_backup_routes(app, initialize_engine_state(config, memory_store, None, registry))

    async with _client(app) as client:
        await client.post("/admin/backup/run")
        response = await client.get("/admin/backup/archives")

    archives = response.json()
    assert len(archives) == 1
    assert archives[0]["filename"].startswith("backup-data-")
    assert archives[0]["type"] == "data_only"


@pytest.mark.asyncio
async def test_fastapi_unauthorized_access(engine_state):
    """Test that application-supplied dependencies guard every endpoint."""

    async def require_admin(authorization: str | None = Header(default=None)) -> None:
        if authorization != "Bearer admin-token":
            raise HTTPException(status_code=401, detail="Unauthorized")

    app = FastAPI()
    register_backup_routes(app, engine_state, dependencies=[Depends(require_admin)])

    async with _client(app) as client:
        denied = await client.get("/admin/backup/status")
        allowed = await client.get(
            "/admin/backup/status",
            headers={"Authorization": "Bearer admin-token"},
        )

    assert denied.status_code == 401
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_backup_lifespan_wires_engine(monkeypatch, test_config, memory_store):
    """Test that the lifespan opens storage, registers routes and cleans up."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "test")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "test")
    app = FastAPI()

    async with backup_lifespan(app, test_config, memory_store):
        state = get_backup_state(app)
        assert isinstance(state["storage"], S3ObjectStorage)
        assert state["store"] is memory_store
        assert "/admin/backup/run" in {route.path for route in app.routes}

    with pytest.raises(RuntimeError):
        get_backup_state(app)


# ============================================================================
# Orchestration Tests
# ============================================================================

@pytest.mark.asyncio
async def test_backup_and_restore_against_sqlite(sqlite_db_path: Path, registry, temp_dir: Path):
    """Test a data backup and restore round trip on a real SQLite database."""
    config = BackupConfig(archive_dir=temp_dir / "archives", write_archives=True)
    store = SQLiteTableStore(sqlite_db_path)
    state = initialize_engine_state(config, store, None, registry)

    result = await run_backup(state, BackupType.DATA_ONLY)

    assert result.archive_path is not None and result.archive_path.exists()
    assert result.filename.startswith("backup-data-")
    assert result.tables_backed_up == 2
    assert result.rows_backed_up == 1
    assert (await load_settings(store)).last_backup_at is not None

    await store.upsert_rows("colors", [{"id": 1, "name": "Blue"}, {"id": 2, "name": "Green"}])
    await store.upsert_rows("orders", [{"id": "B", "status": "new"}])

    report = await run_restore(state, result.archive_bytes)

    assert report.errors == []
    assert await store.select_all("colors") == [{"id": 1, "name": "Red"}]
    assert len(await store.select_all("orders")) == 2
    # The settings row was written after the snapshot; an empty table is not wiped
    assert (await load_settings(store)).last_backup_at is not None
    assert state["total_backups"] == 1
    assert state["total_restores"] == 1


@pytest.mark.asyncio
async def test_operations_are_single_flight(engine_state):
    """Test that a backup cannot start while a restore holds the engine."""
    async with engine_state["lock"]:
        engine_state["running"] = "restore"

        with pytest.raises(OperationInProgressError) as exc_info:
            await run_backup(engine_state, BackupType.DATA_ONLY)

    assert exc_info.value.details["running"] == "restore"
    assert engine_state["total_backups"] == 0


@pytest.mark.asyncio
async def test_settings_update_failure_does_not_fail_backup(engine_state, memory_store):
    memory_store.fail_upsert.add("system_settings")

    result = await run_backup(engine_state, BackupType.DATA_ONLY)

    assert result.errors == []
    assert result.archive_bytes
    assert engine_state["total_backups"] == 1


@pytest.mark.asyncio
async def test_backup_prunes_to_retain_count_from_settings(temp_dir: Path, registry):
    store = MemoryTableStore({
        "system_settings": [
            {"id": "s1", "key": SETTINGS_KEY, "value": {"retainCount": 2, "frequency": "daily"}},
        ],
    })
    config = BackupConfig(archive_dir=temp_dir / "archives", write_archives=True)
    state = initialize_engine_state(config, store, None, registry)

    for _ in range(3):
        await run_backup(state, BackupType.DATA_ONLY)

    assert len(await list_archives(config.archive_dir)) == 2
    settings = await load_settings(store)
    assert settings.retain_count == 2
    assert settings.last_backup_at is not None


@pytest.mark.asyncio
async def test_backup_prunes_to_config_retain_count_without_settings(
    temp_dir: Path, registry
):
    store = MemoryTableStore()
    config = BackupConfig(archive_dir=temp_dir / "archives", write_archives=True, retain_count=2)
    state = initialize_engine_state(config, store, None, registry)

    assert (await load_settings(store, config.retain_count)).retain_count == 2

    for _ in range(3):
        await run_backup(state, BackupType.DATA_ONLY)

    assert len(await list_archives(config.archive_dir)) == 2
    assert (await load_settings(store)).retain_count == 2


@pytest.mark.asyncio
async def test_cancelled_backup_does_not_update_last_backup(engine_state, memory_store):
    cancel = asyncio.Event()
    cancel.set()

    result = await run_backup(engine_state, BackupType.FULL, cancel=cancel)

    assert result.cancelled is True
    assert result.tables_backed_up == 0
    assert engine_state["total_backups"] == 0
    assert (await load_settings(memory_store)).last_backup_at is None


@pytest.mark.asyncio
async def test_cancelled_restore_reports_partial_progress(engine_state, memory_store):
    archive = (await run_backup(engine_state, BackupType.FULL)).archive_bytes
    cancel = asyncio.Event()
    percents = []

    async def sink(label: str, percent: float) -> None:
        percents.append(percent)
        if label == "Restored table colors":
            cancel.set()

    report = await run_restore(engine_state, archive, progress=sink, cancel=cancel)

    assert report.cancelled is True
    assert report.tables_restored == 1
    assert report.files_restored == 0
    assert report.summary().endswith("cancelled")
    assert percents == sorted(percents)
    assert percents[-1] < 100


@pytest.mark.asyncio
async def test_restore_of_corrupt_archive_records_error(engine_state):
    with pytest.raises(ArchiveError):
        await run_restore(engine_state, b"PK\x03\x04 truncated")

    assert engine_state["last_error"] is not None
    assert engine_state["total_restores"] == 0
    assert engine_state["running"] is None


# ============================================================================
# SQLite Store Tests
# ============================================================================

@pytest.mark.asyncio
async def test_sqlite_upsert_merges_by_primary_key(sqlite_db_path: Path):
    store = SQLiteTableStore(sqlite_db_path)

    await store.upsert_rows(
        "orders", [{"id": "A", "status": "returned"}, {"id": "B", "status": "new"}]
    )

    rows = {r["id"]: r for r in await store.select_all("orders")}
    assert rows == {
        "A": {"id": "A", "status": "returned"},
        "B": {"id": "B", "status": "new"},
    }


@pytest.mark.asyncio
async def test_sqlite_failed_batch_leaves_table_unchanged(sqlite_db_path: Path):
    import sqlite3

    store = SQLiteTableStore(sqlite_db_path)

    with pytest.raises(sqlite3.IntegrityError):
        await store.upsert_rows("colors", [{"id": 3, "name": "Pink"}, {"id": 4, "name": None}])

    assert await store.select_all("colors") == [{"id": 1, "name": "Red"}]


@pytest.mark.asyncio
async def test_sqlite_delete_all_and_nested_values(sqlite_db_path: Path):
    store = SQLiteTableStore(sqlite_db_path)

    assert await store.delete_all("colors") == 1
    assert await store.select_all("colors") == []

    await store.upsert_rows(
        "system_settings",
        [{"id": "s1", "key": "k", "value": {"a": [1, 2]}, "updated_at": None}],
    )
    row = (await store.select_all("system_settings"))[0]
    assert json.loads(row["value"]) == {"a": [1, 2]}


@pytest.mark.asyncio
async def test_sqlite_rejects_unsafe_identifiers(sqlite_db_path: Path):
    store = SQLiteTableStore(sqlite_db_path)

    with pytest.raises(ConfigurationError):
        await store.select_all("colors; DROP TABLE orders")

    with pytest.raises(ConfigurationError):
        await store.upsert_rows("colors", [{"id": 5, "name) VALUES (1": "x"}])


@pytest.mark.asyncio
async def test_sqlite_ping_missing_directory(temp_dir: Path):
    store = SQLiteTableStore(temp_dir / "missing" / "shop.db")

    with pytest.raises(StoreUnavailableError):
        await store.ping()


# ============================================================================
# PostgreSQL Store Tests
# ============================================================================

class FakeConnection:
    def __init__(self, pool: "FakePool"):
        self.pool = pool

    @asynccontextmanager
    async def transaction(self):
        self.pool.transactions += 1
        yield

    async def fetchval(self, query: str):
        return 1

    async def fetch(self, query: str, *args):
        if self.pool.broken:
            raise ConnectionResetError("connection reset by peer")
        self.pool.queries.append((query, args))
        return [(json.dumps(row),) for row in self.pool.rows]

    async def execute(self, query: str, *args):
        if self.pool.broken:
            raise ConnectionResetError("connection reset by peer")
        self.pool.queries.append((query, args))
        return f"DELETE {len(self.pool.rows)}"


class FakePool:
    def __init__(self, rows=None):
        self.rows = rows or []
        self.queries = []
        self.broken = False
        self.transactions = 0

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self)


@pytest.mark.asyncio
async def test_postgres_select_and_delete():
    pool = FakePool(rows=[{"id": 1, "name": "Red", "tags": ["warm"]}])
    store = PostgresTableStore(pool)

    assert await store.select_all("available_colors") == [
        {"id": 1, "name": "Red", "tags": ["warm"]}
    ]
    assert await store.delete_all("available_colors") == 1
    assert pool.queries[0][0] == 'SELECT row_to_json(t)::text FROM "available_colors" AS t'


@pytest.mark.asyncio
async def test_postgres_upsert_uses_json_recordset():
    pool = FakePool()
    store = PostgresTableStore(pool)
    rows = [{"id": 1, "name": "Red"}, {"id": 2, "name": "Blue"}]

    assert await store.upsert_rows("available_colors", rows) == 2

    query, args = pool.queries[0]
    assert 'jsonb_populate_recordset(NULL::"available_colors", $1::jsonb)' in query
    assert 'ON CONFLICT ("id") DO UPDATE SET "name" = EXCLUDED."name"' in query
    assert json.loads(args[0]) == rows


@pytest.mark.asyncio
async def test_postgres_upsert_leaves_omitted_columns_alone():
    pool = FakePool()
    store = PostgresTableStore(pool)
    rows = [{"id": 1, "name": "Red"}, {"id": 2}, {"id": 3, "name": "Blue"}]

    assert await store.upsert_rows("available_colors", rows) == 3

    assert pool.transactions == 1
    assert len(pool.queries) == 2
    _, named_args = pool.queries[0]
    assert json.loads(named_args[0]) == [{"id": 1, "name": "Red"}, {"id": 3, "name": "Blue"}]
    id_only_query, id_only_args = pool.queries[1]
    assert '"name"' not in id_only_query
    assert id_only_query.endswith('ON CONFLICT ("id") DO NOTHING')
    assert json.loads(id_only_args[0]) == [{"id": 2}]


@pytest.mark.asyncio
async def test_postgres_lost_connection_is_unavailable():
    pool = FakePool()
    pool.broken = True
    store = PostgresTableStore(pool)

    with pytest.raises(StoreUnavailableError):
        await store.select_all("orders")


def test_mask_password():
    assert _mask_password("postgresql://app:s3cret@db:5432/shop") == (
        "postgresql://app:***@db:5432/shop"
    )
    assert _mask_password("postgresql://db/shop") == "postgresql://db/shop"


# ============================================================================
# S3 Object Storage Tests
# ============================================================================

class FakeBody:
    def __init__(self, data: bytes):
        self.data = data

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def read(self) -> bytes:
        return self.data


class FakePaginator:
    """list_objects_v2 paginator with delimiter semantics."""

    def __init__(self, client: "FakeS3Client"):
        self.client = client

    def paginate(self, Bucket, Prefix="", Delimiter="/", MaxKeys=1000):
        return self._pages(Bucket, Prefix, Delimiter, MaxKeys)

    async def _pages(self, bucket, prefix, delimiter, max_keys):
        if self.client.unreachable:
            raise EndpointConnectionError(endpoint_url="http://s3.test")
        self.client.list_calls.append((bucket, prefix))

        items = []
        seen = set()
        for key in sorted(self.client.objects.get(bucket, {})):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if delimiter in rest:
                common = prefix + rest.split(delimiter, 1)[0] + delimiter
                if common not in seen:
                    seen.add(common)
                    items.append(("CommonPrefixes", {"Prefix": common}))
            else:
                items.append(("Contents", {"Key": key}))

        for start in range(0, len(items), max_keys):
            page = {}
            for section, item in items[start:start + max_keys]:
                page.setdefault(section, []).append(item)
            yield page


class FakeS3Client:
    def __init__(self, objects=None):
        self.objects = objects or {}
        self.unreachable = False
        self.list_calls = []
        self.puts = []

    def get_paginator(self, operation: str) -> FakePaginator:
        assert operation == "list_objects_v2"
        return FakePaginator(self)

    async def get_object(self, Bucket, Key):
        if self.unreachable:
            raise EndpointConnectionError(endpoint_url="http://s3.test")
        return {"Body": FakeBody(self.objects[Bucket][Key])}

    async def put_object(self, Bucket, Key, Body, ContentType):
        self.puts.append({"Bucket": Bucket, "Key": Key, "ContentType": ContentType})
        self.objects.setdefault(Bucket, {})[Key] = Body


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client({
        "shop-products": {
            "logo.png": b"logo",
            "user-1/": b"",
            "user-1/order-9/photo.jpg": b"photo",
            "user-1/order-9/notes.txt": b"notes",
            "user-2/a.txt": b"a",
        },
    })


@pytest.mark.asyncio
async def test_s3_walk_across_pages_and_folders(s3_client: FakeS3Client):
    """Test recursive listing with small pages and a folder placeholder object."""
    storage = S3ObjectStorage(s3_client, page_size=1)

    paths = await list_all_objects(storage, "shop-products")

    assert sorted(paths) == [
        "logo.png",
        "user-1/order-9/notes.txt",
        "user-1/order-9/photo.jpg",
        "user-2/a.txt",
    ]
    assert ("shop-products", "user-1/order-9/") in s3_client.list_calls


@pytest.mark.asyncio
async def test_s3_walk_keys_with_leading_and_empty_segments():
    """Test that keys like '/x' and 'a//b' are listed once, without looping."""
    client = FakeS3Client({
        "shop-products": {
            "/leading.txt": b"lead",
            "a//b.txt": b"b",
            "ok.txt": b"ok",
        },
    })
    storage = S3ObjectStorage(client)
    failures = []

    paths = await list_all_objects(storage, "shop-products", failures=failures)

    assert sorted(paths) == ["/leading.txt", "a//b.txt", "ok.txt"]
    assert failures == []
    assert ("shop-products", "/") in client.list_calls
    assert ("shop-products", "a//") in client.list_calls
    assert len(client.list_calls) == 4


@pytest.mark.asyncio
async def test_s3_download_and_upload(s3_client: FakeS3Client):
    storage = S3ObjectStorage(s3_client)

    assert await storage.download("shop-products", "logo.png") == b"logo"

    await storage.upload("site-assets", "hero/banner.png", b"png")

    assert s3_client.objects["site-assets"]["hero/banner.png"] == b"png"
    assert s3_client.puts[0]["ContentType"] == "image/png"


@pytest.mark.asyncio
async def test_s3_errors_are_classified(s3_client: FakeS3Client):
    storage = S3ObjectStorage(s3_client)

    with pytest.raises(StorageError):
        await storage.download("shop-products", "missing.png")

    s3_client.unreachable = True
    with pytest.raises(StoreUnavailableError):
        await storage.list_children("shop-products")
    with pytest.raises(StoreUnavailableError):
        await storage.download("shop-products", "logo.png")


@pytest.mark.asyncio
async def test_open_s3_storage_uses_config():
    client = FakeS3Client()
    calls = []

    class FakeSession:
        @asynccontextmanager
        async def create_client(self, service, **kwargs):
            calls.append((service, kwargs))
            yield client

    config = BackupConfig(
        region="eu-central-1",
        endpoint_url="http://localhost:9000",
        list_page_size=50,
    )

    async with open_s3_storage(config, session=FakeSession()) as storage:
        assert storage.s3_client is client
        assert storage.page_size == 50

    assert calls == [
        ("s3", {"region_name": "eu-central-1", "endpoint_url": "http://localhost:9000"})
    ]


def test_mime_type_detection():
    assert get_mime_type("a/b/photo.jpg") == "image/jpeg"
    assert get_mime_type("notes.txt") == "text/plain"
    assert get_mime_type("blob.unknownext") == "application/octet-stream"
