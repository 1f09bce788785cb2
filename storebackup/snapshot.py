# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Builder - Reads tables and storage objects into a manifest.

A single table or object failing never aborts the snapshot: the table
is stored with no rows, the object is left out, and the failure is kept
as an ItemResult. Only an unreachable store or storage service is fatal.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import structlog

from storebackup.config import BackupConfig, BackupType
from storebackup.exceptions import BackupError, StoreUnavailableError
from storebackup.manifest import FileEntry, Manifest, archive_entry_name, is_safe_entry_name
from storebackup.progress import ProgressSink, ProgressTracker
from storebackup.results import ItemResult, error_messages
from storebackup.schema import SchemaRegistry, list_buckets, list_tables_for
from storebackup.storage.base import ObjectStorage
from storebackup.storage.walker import list_all_objects
from storebackup.store.base import TableStore

logger = structlog.get_logger()


@dataclass
class Snapshot:
    """A built manifest plus the object bytes it references."""

    manifest: Manifest
    blobs: Dict[str, bytes] = field(default_factory=dict)
    results: List[ItemResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def errors(self) -> List[str]:
        return error_messages(self.results)


def buckets_for(config: BackupConfig, registry: SchemaRegistry) -> List[str]:
    """Buckets of a full backup: the config override, else the registry's."""
    if config.buckets is not None:
        return list(config.buckets)
    return list_buckets(registry)


def _is_cancelled(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


async def build_snapshot(
    config: BackupConfig,
    registry: SchemaRegistry,
    store: TableStore,
    storage: ObjectStorage | None,
    backup_type: BackupType,
    progress: ProgressSink | None = None,
    cancel: asyncio.Event | None = None,
) -> Snapshot:
    """
    Build a snapshot of the live store (and storage, for full backups).

    Args:
        config: Backup configuration
        registry: Table and bucket declarations
        store: Relational store to read from
        storage: Object storage to read from (required for full backups)
        backup_type: data_only or full
        progress: Optional (label, percent) sink
        cancel: Optional event; when set, the snapshot stops between steps
            and the partial result is returned

    Returns:
        Snapshot with manifest, blobs and per-item results

    Raises:
        StoreUnavailableError: If the store or storage cannot be reached
        BackupError: If a full backup is requested without object storage
    """
    if backup_type == BackupType.FULL and storage is None:
        raise BackupError("Full backups need an object storage adapter")

    await store.ping()

    tables = list_tables_for(registry, backup_type)
    buckets = buckets_for(config, registry) if backup_type == BackupType.FULL else []
    tracker = ProgressTracker(progress, len(tables) + len(buckets))

    snapshot = Snapshot(manifest=Manifest(type=backup_type))
    manifest = snapshot.manifest

    logger.info(
        "snapshot_started",
        backup_type=backup_type.value,
        tables=len(tables),
        buckets=len(buckets),
    )
    await tracker.report("Starting backup", 0)

    for table in tables:
        if _is_cancelled(cancel):
            snapshot.cancelled = True
            break

        try:
            rows = await store.select_all(table)
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.error("table_fetch_failed", table=table, error=str(e))
            snapshot.results.append(ItemResult.failure("table", table, e))
            rows = []
        else:
            snapshot.results.append(ItemResult.success("table", table, len(rows)))
            logger.debug("table_fetched", table=table, rows=len(rows))

        manifest.tables[table] = rows
        await tracker.step(f"Backed up table {table}")

    for bucket in buckets:
        if _is_cancelled(cancel):
            snapshot.cancelled = True
            break

        paths = await list_all_objects(storage, bucket, failures=snapshot.results)
        paths = _archivable_paths(bucket, paths, snapshot.results)
        fetched = await _fetch_objects(
            storage, bucket, paths, config.max_concurrent_ops, snapshot.results
        )
        for path, data in fetched:
            entry_name = archive_entry_name(bucket, path)
            manifest.files.append(
                FileEntry(bucket=bucket, path=path, archive_entry_name=entry_name)
            )
            snapshot.blobs[entry_name] = data

        logger.info("bucket_backed_up", bucket=bucket, listed=len(paths), fetched=len(fetched))
        await tracker.step(f"Backed up bucket {bucket}")

    if not snapshot.cancelled:
        await tracker.finish("Backup snapshot complete")

    logger.info(
        "snapshot_completed",
        backup_type=backup_type.value,
        rows=manifest.row_count,
        files=len(manifest.files),
        errors=len(snapshot.errors),
        cancelled=snapshot.cancelled,
    )
    return snapshot


def _archivable_paths(
    bucket: str,
    paths: List[str],
    results: List[ItemResult],
) -> List[str]:
    """Drop keys that cannot be stored as a safe archive entry (e.g. with `..` segments)."""
    kept: List[str] = []
    for path in paths:
        if is_safe_entry_name(archive_entry_name(bucket, path)):
            kept.append(path)
            continue
        logger.warning("object_skipped_unsafe_key", bucket=bucket, path=path)
        results.append(
            ItemResult.failure(
                "file", f"{bucket}/{path}", "object key cannot be stored safely in an archive"
            )
        )
    return kept


async def _fetch_objects(
    storage: ObjectStorage,
    bucket: str,
    paths: List[str],
    max_concurrent_ops: int,
    results: List[ItemResult],
) -> List[Tuple[str, bytes]]:
    """
    Download objects with bounded concurrency.

    Results come back in the order of paths; failed downloads are
    recorded and left out.
    """
    semaphore = asyncio.Semaphore(max_concurrent_ops)

    async def fetch(path: str) -> bytes:
        async with semaphore:
            return await storage.download(bucket, path)

    outcomes = await asyncio.gather(*(fetch(p) for p in paths), return_exceptions=True)

    fetched: List[Tuple[str, bytes]] = []
    unavailable: StoreUnavailableError | None = None
    for path, outcome in zip(paths, outcomes):
        name = f"{bucket}/{path}"
        if isinstance(outcome, StoreUnavailableError):
            unavailable = unavailable or outcome
        elif isinstance(outcome, BaseException):
            logger.warning("object_fetch_failed", bucket=bucket, path=path, error=str(outcome))
            results.append(ItemResult.failure("file", name, outcome))
        else:
            results.append(ItemResult.success("file", name, len(outcome)))
            fetched.append((path, outcome))

    if unavailable is not None:
        raise unavailable
    return fetched
