# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Store Backup FastAPI Integration - Admin endpoints for FastAPI applications.

This module provides:
- Backup download and restore upload endpoints
- Backup settings read/update
- Archive listing and engine status
- A lifespan helper that opens object storage for the app's lifetime

Access control is left to the application: pass its auth dependencies
through ``dependencies``.
"""

from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, List, Sequence

import structlog
from fastapi import FastAPI, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from storebackup.archive.files import list_archives
from storebackup.config import BackupConfig, BackupFrequency, BackupType
from storebackup.core import EngineState, initialize_engine_state, run_backup, run_restore
from storebackup.exceptions import (
    ArchiveError,
    ManifestError,
    OperationInProgressError,
    RestoreError,
    StoreBackupError,
    StoreUnavailableError,
)
from storebackup.schema import DEFAULT_REGISTRY, SchemaRegistry
from storebackup.settings import load_settings, save_settings
from storebackup.storage.s3 import open_s3_storage
from storebackup.store.base import TableStore

logger = structlog.get_logger()


class SettingsUpdate(BaseModel):
    """Partial update of the backup settings record."""

    autoBackupEnabled: bool | None = None
    frequency: BackupFrequency | None = None
    retainCount: int | None = Field(default=None, ge=1)


def _http_error(exc: StoreBackupError) -> HTTPException:
    """Map engine errors to HTTP status codes."""
    if isinstance(exc, OperationInProgressError):
        status = 409
    elif isinstance(exc, StoreUnavailableError):
        status = 503
    elif isinstance(exc, ManifestError):
        status = 422
    elif isinstance(exc, (ArchiveError, RestoreError)):
        status = 400
    else:
        status = 500
    return HTTPException(status_code=status, detail=exc.message)


def register_backup_routes(
    app: FastAPI,
    state: EngineState,
    prefix: str = "/admin/backup",
    dependencies: Sequence[Any] | None = None,
) -> None:
    """
    Register backup admin endpoints on a FastAPI app.

    Args:
        app: FastAPI application
        state: Engine state from initialize_engine_state()
        prefix: URL prefix for endpoints (default: /admin/backup)
        dependencies: Dependencies applied to every endpoint, e.g.
            [Depends(require_admin)]
    """
    deps: List[Any] = list(dependencies or [])

    @app.post(f"{prefix}/run", dependencies=deps)
    async def trigger_backup(
        backup_type: BackupType = Query(BackupType.DATA_ONLY, alias="type"),
    ) -> Response:
        """
        Take a backup and download the archive.
        """
        try:
            result = await run_backup(state, backup_type)
        except StoreBackupError as e:
            raise _http_error(e)

        return Response(
            content=result.archive_bytes,
            media_type="application/zip",
            headers={
                "Content-Disposition": f'attachment; filename="{result.filename}"',
                "X-Backup-Operation-Id": result.operation_id,
                "X-Backup-Errors": str(len(result.errors)),
            },
        )

    @app.post(f"{prefix}/restore", dependencies=deps)
    async def restore_backup(request: Request) -> dict:
        """
        Restore from an archive sent as the raw request body.
        """
        archive_bytes = await request.body()
        if not archive_bytes:
            raise HTTPException(status_code=400, detail="Request body must be a backup archive")

        try:
            report = await run_restore(state, archive_bytes)
        except StoreBackupError as e:
            raise _http_error(e)

        data = asdict(report)
        data["summary"] = report.summary()
        return data

    @app.get(f"{prefix}/settings", dependencies=deps)
    async def get_settings() -> dict:
        """
        Get the backup settings record.
        """
        try:
            settings = await load_settings(state["store"], state["config"].retain_count)
        except StoreBackupError as e:
            raise _http_error(e)
        return settings.to_dict()

    @app.put(f"{prefix}/settings", dependencies=deps)
    async def update_settings(update: SettingsUpdate) -> dict:
        """
        Update automatic backup preferences (lastBackupAt is engine-owned).
        """
        try:
            settings = await load_settings(state["store"], state["config"].retain_count)
            if update.autoBackupEnabled is not None:
                settings.auto_backup_enabled = update.autoBackupEnabled
            if update.frequency is not None:
                settings.frequency = update.frequency
            if update.retainCount is not None:
                settings.retain_count = update.retainCount
            await save_settings(state["store"], settings)
        except StoreBackupError as e:
            raise _http_error(e)
        return settings.to_dict()

    @app.get(f"{prefix}/archives", dependencies=deps)
    async def get_archives() -> list:
        """
        List archives in the archive directory, newest first.
        """
        return await list_archives(state["config"].archive_dir)

    @app.get(f"{prefix}/status", dependencies=deps)
    async def get_status() -> dict:
        """
        Get engine status: running operation, counters, last error.
        """
        return {
            "running": state["running"],
            "last_backup_at": (
                state["last_backup_at"].isoformat() if state["last_backup_at"] else None
            ),
            "last_restore_at": (
                state["last_restore_at"].isoformat() if state["last_restore_at"] else None
            ),
            "total_backups": state["total_backups"],
            "total_restores": state["total_restores"],
            "last_error": state["last_error"],
            "object_storage": state["storage"] is not None,
        }


@asynccontextmanager
async def backup_lifespan(
    app: FastAPI,
    config: BackupConfig,
    store: TableStore,
    registry: SchemaRegistry = DEFAULT_REGISTRY,
    prefix: str = "/admin/backup",
    dependencies: Sequence[Any] | None = None,
):
    """
    Lifespan context manager wiring the backup engine into an app.

        app = FastAPI(lifespan=lambda app: backup_lifespan(app, config, store))

    An S3 client is opened for the app's lifetime and closed on shutdown.
    """
    logger.info("backup_lifespan_starting", region=config.region)

    async with open_s3_storage(config) as storage:
        state = initialize_engine_state(config, store, storage, registry)
        app.state.backup_state = state
        register_backup_routes(app, state, prefix, dependencies)

        logger.info("backup_lifespan_started")
        try:
            yield
        finally:
            logger.info("backup_lifespan_stopping")
            app.state.backup_state = None


def get_backup_state(app: FastAPI) -> EngineState:
    """
    Get the engine state from a FastAPI app.

    Raises:
        RuntimeError: If the backup engine is not initialized
    """
    state = getattr(app.state, "backup_state", None)
    if not state:
        raise RuntimeError("Backup engine not initialized. Use backup_lifespan first.")
    return state
