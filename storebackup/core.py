# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Store Backup Core - Orchestrates backup and restore runs.

This module ties the pieces together: snapshot, archive codec, archive
files, settings and restore. It also makes sure only one backup or
restore runs at a time per engine, so two restores can never interleave
their wipe and insert steps on the same configuration table.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, AsyncIterator, List, TypedDict

import structlog
from ulid import ULID

from storebackup.archive.codec import decode_archive, encode_archive
from storebackup.archive.files import archive_filename, prune_old_archives, write_archive_file
from storebackup.config import BackupConfig, BackupType
from storebackup.exceptions import OperationInProgressError
from storebackup.progress import ProgressSink
from storebackup.restore import RestoreReport, restore_snapshot
from storebackup.schema import DEFAULT_REGISTRY, SchemaRegistry
from storebackup.settings import mark_backup_completed
from storebackup.snapshot import build_snapshot
from storebackup.storage.base import ObjectStorage
from storebackup.store.base import TableStore

logger = structlog.get_logger()


@dataclass
class BackupResult:
    """Result of a backup run."""

    operation_id: str  # ULID
    backup_type: str
    filename: str
    archive_bytes: bytes = field(repr=False)
    archive_path: Path | None
    tables_backed_up: int
    rows_backed_up: int
    files_backed_up: int
    errors: List[str]
    cancelled: bool
    duration_seconds: float


class EngineState(TypedDict):
    """Runtime state for backup and restore operations."""

    config: BackupConfig
    registry: SchemaRegistry
    store: TableStore
    storage: Any  # ObjectStorage or None for data-only deployments
    lock: asyncio.Lock
    running: str | None  # "backup" / "restore" while an operation holds the lock
    last_backup_at: datetime | None
    last_restore_at: datetime | None
    total_backups: int
    total_restores: int
    last_error: str | None


def initialize_engine_state(
    config: BackupConfig,
    store: TableStore,
    storage: ObjectStorage | None = None,
    registry: SchemaRegistry = DEFAULT_REGISTRY,
) -> EngineState:
    """
    Create runtime state for an engine.

    Store and storage handles are passed in rather than looked up, so
    tests and callers decide which backends are used.
    """
    return EngineState(
        config=config,
        registry=registry,
        store=store,
        storage=storage,
        lock=asyncio.Lock(),
        running=None,
        last_backup_at=None,
        last_restore_at=None,
        total_backups=0,
        total_restores=0,
        last_error=None,
    )


@asynccontextmanager
async def _single_flight(state: EngineState, operation: str) -> AsyncIterator[None]:
    if state["lock"].locked():
        raise OperationInProgressError(
            f"Cannot start {operation}: a {state['running']} is already running",
            details={"running": state["running"]},
        )
    async with state["lock"]:
        state["running"] = operation
        try:
            yield
        finally:
            state["running"] = None


async def run_backup(
    state: EngineState,
    backup_type: BackupType,
    progress: ProgressSink | None = None,
    cancel: asyncio.Event | None = None,
) -> BackupResult:
    """
    Take a backup and return the archive.

    The archive is also written to the archive directory when the
    config enables it. lastBackupAt is updated only when the backup ran
    to completion (item errors do not count as failure, cancellation does).

    Raises:
        OperationInProgressError: If a backup or restore is already running
        StoreUnavailableError: If the store or storage cannot be reached
    """
    config = state["config"]
    operation_id = str(ULID())
    start_time = datetime.now(UTC)

    async with _single_flight(state, "backup"):
        logger.info("backup_started", operation_id=operation_id, backup_type=backup_type.value)
        try:
            snapshot = await build_snapshot(
                config,
                state["registry"],
                state["store"],
                state["storage"],
                backup_type,
                progress,
                cancel,
            )
            archive_bytes = await encode_archive(
                snapshot.manifest, snapshot.blobs, config.compression_level
            )
        except Exception as e:
            state["last_error"] = str(e)
            logger.error("backup_failed", operation_id=operation_id, error=str(e))
            raise

        filename = archive_filename(backup_type, start_time)
        archive_path = None
        if config.write_archives:
            archive_path = await write_archive_file(config.archive_dir, filename, archive_bytes)

        if not snapshot.cancelled:
            await _record_backup_completed(state, operation_id)

        duration = (datetime.now(UTC) - start_time).total_seconds()
        result = BackupResult(
            operation_id=operation_id,
            backup_type=backup_type.value,
            filename=archive_path.name if archive_path else filename,
            archive_bytes=archive_bytes,
            archive_path=archive_path,
            tables_backed_up=len(snapshot.manifest.tables),
            rows_backed_up=snapshot.manifest.row_count,
            files_backed_up=len(snapshot.manifest.files),
            errors=snapshot.errors,
            cancelled=snapshot.cancelled,
            duration_seconds=duration,
        )

        logger.info(
            "backup_completed",
            operation_id=operation_id,
            filename=result.filename,
            size=len(archive_bytes),
            errors=len(result.errors),
            cancelled=result.cancelled,
            duration=duration,
        )
        return result


async def _record_backup_completed(state: EngineState, operation_id: str) -> None:
    config = state["config"]
    state["last_backup_at"] = datetime.now(UTC)
    state["total_backups"] += 1

    # The settings record is owned by the admin screens; failing to
    # update it does not fail a backup that already produced its archive.
    try:
        settings = await mark_backup_completed(
            state["store"], state["last_backup_at"], config.retain_count
        )
    except Exception as e:
        logger.warning("backup_settings_update_failed", operation_id=operation_id, error=str(e))
        return

    if config.write_archives:
        await prune_old_archives(config.archive_dir, settings.retain_count)


async def run_restore(
    state: EngineState,
    archive_bytes: bytes,
    progress: ProgressSink | None = None,
    cancel: asyncio.Event | None = None,
) -> RestoreReport:
    """
    Restore from archive bytes.

    Raises:
        OperationInProgressError: If a backup or restore is already running
        ArchiveError: If the archive or its manifest cannot be decoded
        ManifestError: If the manifest version or shape is not understood
        StoreUnavailableError: If the store or storage cannot be reached
    """
    async with _single_flight(state, "restore"):
        try:
            manifest, blobs = await decode_archive(archive_bytes)
            report = await restore_snapshot(
                state["registry"],
                state["store"],
                state["storage"],
                manifest,
                blobs,
                progress,
                cancel,
            )
        except Exception as e:
            state["last_error"] = str(e)
            logger.error("restore_failed", error=str(e))
            raise

        state["last_restore_at"] = datetime.now(UTC)
        state["total_restores"] += 1
        return report
