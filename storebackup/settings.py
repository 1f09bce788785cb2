# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup settings record.

Settings live in the ``system_settings`` table as the row whose key is
``backup_settings``, with the settings as a JSON value. The engine only
writes ``lastBackupAt``; the other fields belong to the admin screens.
"""

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any

import structlog

from storebackup.config import BackupFrequency
from storebackup.manifest import Row
from storebackup.store.base import TableStore

logger = structlog.get_logger()

SETTINGS_TABLE = "system_settings"
SETTINGS_KEY = "backup_settings"


@dataclass
class BackupSettings:
    """Automatic backup preferences and the last successful backup time."""

    auto_backup_enabled: bool = False
    frequency: BackupFrequency = BackupFrequency.DAILY
    last_backup_at: str | None = None
    retain_count: int = 5

    def to_dict(self) -> dict:
        return {
            "autoBackupEnabled": self.auto_backup_enabled,
            "frequency": self.frequency.value,
            "lastBackupAt": self.last_backup_at,
            "retainCount": self.retain_count,
        }

    @classmethod
    def from_dict(cls, value: Any, default_retain_count: int = 5) -> "BackupSettings":
        """Missing or unreadable fields fall back to their defaults."""
        settings = cls(retain_count=default_retain_count)
        if not isinstance(value, dict):
            return settings

        if isinstance(value.get("autoBackupEnabled"), bool):
            settings.auto_backup_enabled = value["autoBackupEnabled"]
        try:
            settings.frequency = BackupFrequency(value.get("frequency", "daily"))
        except ValueError:
            pass
        if isinstance(value.get("lastBackupAt"), str):
            settings.last_backup_at = value["lastBackupAt"]
        retain = value.get("retainCount")
        if isinstance(retain, int) and not isinstance(retain, bool) and retain > 0:
            settings.retain_count = retain
        return settings


async def _find_settings_row(store: TableStore) -> Row | None:
    for row in await store.select_all(SETTINGS_TABLE):
        if row.get("key") == SETTINGS_KEY:
            return row
    return None


def _decode_value(value: Any) -> Any:
    # Stores without a JSON column type hand the value back as text
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


async def load_settings(store: TableStore, default_retain_count: int = 5) -> BackupSettings:
    """
    Read the settings record, or defaults if there is none.

    default_retain_count applies when the record does not set retainCount
    (normally BackupConfig.retain_count).
    """
    row = await _find_settings_row(store)
    if row is None:
        return BackupSettings(retain_count=default_retain_count)
    return BackupSettings.from_dict(_decode_value(row.get("value")), default_retain_count)


async def save_settings(store: TableStore, settings: BackupSettings) -> BackupSettings:
    """Create or overwrite the settings record."""
    existing = await _find_settings_row(store)
    row_id = existing["id"] if existing and existing.get("id") is not None else str(uuid.uuid4())

    await store.upsert_rows(
        SETTINGS_TABLE,
        [{
            "id": row_id,
            "key": SETTINGS_KEY,
            "value": settings.to_dict(),
            "updated_at": datetime.now(UTC).isoformat(),
        }],
        primary_key="id",
    )
    logger.info("backup_settings_saved", **settings.to_dict())
    return settings


async def mark_backup_completed(
    store: TableStore,
    when: datetime | None = None,
    default_retain_count: int = 5,
) -> BackupSettings:
    """Set lastBackupAt, keeping every other field."""
    settings = await load_settings(store, default_retain_count)
    settings.last_backup_at = (when or datetime.now(UTC)).isoformat()
    return await save_settings(store, settings)
