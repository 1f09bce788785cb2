# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Restore Engine - Replays a manifest and its blobs onto the live system.

Configuration tables are wiped and refilled; every other table is only
merged into by primary key, so rows created after the backup survive.
Storage objects are uploaded back to their original bucket and path.
Restore is best effort and idempotent: failures are reported per item,
nothing is rolled back, and running it twice converges on the same state.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Dict, List

import structlog
from ulid import ULID

from storebackup.config import BackupType, TableKind
from storebackup.errors import explain_unsupported_manifest_version
from storebackup.exceptions import ManifestError, RestoreError, StoreUnavailableError
from storebackup.manifest import SUPPORTED_MANIFEST_VERSIONS, Manifest
from storebackup.progress import ProgressSink, ProgressTracker
from storebackup.results import ItemResult, error_messages
from storebackup.schema import SchemaRegistry, classify, primary_key_for
from storebackup.storage.base import ObjectStorage
from storebackup.store.base import TableStore

logger = structlog.get_logger()


@dataclass
class RestoreReport:
    """Outcome of a restore run."""

    operation_id: str
    tables_total: int = 0
    tables_restored: int = 0
    rows_restored: int = 0
    files_total: int = 0
    files_restored: int = 0
    errors: List[str] = field(default_factory=list)
    results: List[ItemResult] = field(default_factory=list)
    cancelled: bool = False
    duration_seconds: float = 0.0

    def summary(self) -> str:
        text = (
            f"restored {self.tables_restored}/{self.tables_total} tables, "
            f"{self.files_restored}/{self.files_total} files"
        )
        if self.errors:
            text += f"; see errors ({len(self.errors)})"
        if self.cancelled:
            text += "; cancelled"
        return text


def load_manifest(manifest: Manifest | Mapping[str, Any]) -> Manifest:
    """
    Validate a manifest before anything is written.

    Raises:
        ManifestError: On unknown version or missing/malformed fields
    """
    if isinstance(manifest, Manifest):
        if manifest.version not in SUPPORTED_MANIFEST_VERSIONS:
            raise ManifestError(
                explain_unsupported_manifest_version(
                    manifest.version, SUPPORTED_MANIFEST_VERSIONS
                ),
                details={"version": manifest.version},
            )
        return manifest
    return Manifest.from_dict(manifest)


def _is_cancelled(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


async def restore_snapshot(
    registry: SchemaRegistry,
    store: TableStore,
    storage: ObjectStorage | None,
    manifest: Manifest | Mapping[str, Any],
    blobs: Dict[str, bytes],
    progress: ProgressSink | None = None,
    cancel: asyncio.Event | None = None,
) -> RestoreReport:
    """
    Restore tables and files from a decoded archive.

    Args:
        registry: Table classification used to pick wipe vs. merge
        store: Relational store to write to
        storage: Object storage to upload to (needed when the manifest lists files)
        manifest: Manifest object, or the raw decoded manifest mapping
        blobs: Archive entry name -> bytes
        progress: Optional (label, percent) sink
        cancel: Optional event; when set, processing stops between items
            and the partial report is returned

    Returns:
        RestoreReport with counts and per-item errors

    Raises:
        ManifestError: If the manifest is invalid (nothing is written)
        RestoreError: If files must be restored but no storage was given
        StoreUnavailableError: If the store or storage cannot be reached
    """
    start_time = datetime.now(UTC)
    parsed = load_manifest(manifest)

    files = parsed.files if parsed.type == BackupType.FULL else []
    if files and storage is None:
        raise RestoreError(
            "Archive contains storage files but no object storage adapter was given",
            details={"files": len(files)},
        )

    await store.ping()

    report = RestoreReport(
        operation_id=str(ULID()),
        tables_total=len(parsed.tables),
        files_total=len(files),
    )
    tracker = ProgressTracker(progress, len(parsed.tables) + len(files))

    logger.info(
        "restore_started",
        operation_id=report.operation_id,
        manifest_version=parsed.version,
        backup_type=parsed.type.value,
        created_at=parsed.created_at,
        tables=report.tables_total,
        files=report.files_total,
    )
    await tracker.report("Starting restore", 0)

    for table, rows in parsed.tables.items():
        if _is_cancelled(cancel):
            report.cancelled = True
            break

        result = await _restore_table(registry, store, table, rows)
        report.results.append(result)
        if result.ok:
            report.tables_restored += 1
            report.rows_restored += result.count
        await tracker.step(f"Restored table {table}")

    for entry in files:
        if report.cancelled or _is_cancelled(cancel):
            report.cancelled = True
            break

        result = await _restore_file(
            storage, entry.bucket, entry.path, blobs.get(entry.archive_entry_name)
        )
        report.results.append(result)
        if result.ok:
            report.files_restored += 1
        await tracker.step(f"Restored file {entry.bucket}/{entry.path}")

    if not report.cancelled:
        await tracker.finish("Restore complete")

    report.errors = error_messages(report.results)
    report.duration_seconds = (datetime.now(UTC) - start_time).total_seconds()

    logger.info(
        "restore_completed",
        operation_id=report.operation_id,
        summary=report.summary(),
        rows=report.rows_restored,
        duration=report.duration_seconds,
    )
    return report


async def _restore_table(
    registry: SchemaRegistry,
    store: TableStore,
    table: str,
    rows: List[dict],
) -> ItemResult:
    if not rows:
        logger.debug("restore_table_empty", table=table)
        return ItemResult.success("table", table, 0)

    kind = classify(registry, table)
    try:
        if kind == TableKind.CONFIGURATION:
            deleted = await store.delete_all(table)
            logger.debug("restore_table_cleared", table=table, deleted=deleted)
        count = await store.upsert_rows(table, rows, primary_key_for(registry, table))
    except StoreUnavailableError:
        raise
    except Exception as e:
        logger.error(
            "restore_table_failed",
            table=table,
            kind=kind.value,
            error=str(e),
        )
        return ItemResult.failure("table", table, e)

    logger.info("table_restored", table=table, kind=kind.value, rows=count)
    return ItemResult.success("table", table, count)


async def _restore_file(
    storage: ObjectStorage,
    bucket: str,
    path: str,
    data: bytes | None,
) -> ItemResult:
    name = f"{bucket}/{path}"
    if data is None:
        logger.error("restore_file_missing_from_archive", bucket=bucket, path=path)
        return ItemResult.failure("file", name, "missing from archive")

    try:
        await storage.upload(bucket, path, data)
    except StoreUnavailableError:
        raise
    except Exception as e:
        logger.error("restore_file_failed", bucket=bucket, path=path, error=str(e))
        return ItemResult.failure("file", name, e)

    logger.debug("file_restored", bucket=bucket, path=path, size=len(data))
    return ItemResult.success("file", name, len(data))
