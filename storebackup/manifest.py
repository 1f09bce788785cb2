# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Manifest - The self-describing index stored inside every archive.

The manifest records the format version, when and what kind of backup
was taken, every backed-up table's rows and, for full backups, where
each storage object lives inside the archive. Row contents are opaque
JSON values and are passed through untouched.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Dict, List, Union

from storebackup.config import BackupType
from storebackup.errors import explain_unsupported_manifest_version
from storebackup.exceptions import ManifestError

# Current manifest format. 1.0 archives (plain JSON, no storage content)
# are still accepted for restore.
MANIFEST_VERSION = "2.0"
SUPPORTED_MANIFEST_VERSIONS = ("1.0", "2.0")

MANIFEST_ENTRY_NAME = "manifest.json"
STORAGE_ENTRY_PREFIX = "storage"

JSONValue = Union[str, int, float, bool, None, List["JSONValue"], Dict[str, "JSONValue"]]
Row = Dict[str, JSONValue]


def archive_entry_name(bucket: str, path: str) -> str:
    """
    Archive entry name for an object: ``storage/<bucket>/<path>``.

    The path is kept verbatim, so distinct keys such as ``x`` and ``/x``
    map to distinct entries.
    """
    return f"{STORAGE_ENTRY_PREFIX}/{bucket}/{path}"


def is_safe_entry_name(name: str) -> bool:
    """False for names that could escape an extraction directory."""
    if name.startswith("/") or "\\" in name:
        return False
    return ".." not in name.split("/")


@dataclass(frozen=True)
class FileEntry:
    """A storage object captured in a full backup."""

    bucket: str
    path: str
    archive_entry_name: str

    def to_dict(self) -> dict:
        return {
            "bucket": self.bucket,
            "path": self.path,
            "archiveEntryName": self.archive_entry_name,
        }


@dataclass
class Manifest:
    """In-memory form of ``manifest.json``."""

    type: BackupType
    tables: Dict[str, List[Row]] = field(default_factory=dict)
    files: List[FileEntry] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    version: str = MANIFEST_VERSION

    def to_dict(self) -> dict:
        data: dict = {
            "version": self.version,
            "createdAt": self.created_at,
            "type": self.type.value,
            "tables": self.tables,
        }
        if self.type == BackupType.FULL:
            data["files"] = [f.to_dict() for f in self.files]
        return data

    @property
    def row_count(self) -> int:
        return sum(len(rows) for rows in self.tables.values())

    @classmethod
    def from_dict(cls, raw: Any) -> "Manifest":
        """
        Parse and validate a decoded manifest.

        Raises:
            ManifestError: If the manifest has an unknown version or a
                mandatory field is missing or malformed
        """
        if not isinstance(raw, Mapping):
            raise ManifestError(
                "Backup manifest must be a JSON object",
                details={"got": type(raw).__name__},
            )

        version = raw.get("version")
        if version is None:
            raise ManifestError("Backup manifest has no version field")
        if version not in SUPPORTED_MANIFEST_VERSIONS:
            raise ManifestError(
                explain_unsupported_manifest_version(version, SUPPORTED_MANIFEST_VERSIONS),
                details={"version": version},
            )

        tables = raw.get("tables")
        if tables is None:
            raise ManifestError("Backup manifest has no tables field")
        if not isinstance(tables, Mapping):
            raise ManifestError(
                "Backup manifest tables must be a mapping of table name to rows",
                details={"got": type(tables).__name__},
            )

        parsed_tables: Dict[str, List[Row]] = {}
        for table_name, rows in tables.items():
            if not isinstance(rows, list):
                raise ManifestError(
                    f"Rows for table {table_name!r} must be a list",
                    details={"table": table_name, "got": type(rows).__name__},
                )
            for row in rows:
                if not isinstance(row, Mapping):
                    raise ManifestError(
                        f"Row in table {table_name!r} is not an object",
                        details={"table": table_name},
                    )
            parsed_tables[str(table_name)] = [dict(row) for row in rows]

        raw_type = raw.get("type", BackupType.DATA_ONLY.value)
        try:
            backup_type = BackupType(raw_type)
        except ValueError as exc:
            raise ManifestError(
                f"Unknown backup type: {raw_type!r}",
                details={"type": raw_type},
            ) from exc

        files = _parse_files(raw.get("files")) if backup_type == BackupType.FULL else []

        created_at = raw.get("createdAt")
        if not isinstance(created_at, str):
            created_at = ""

        return cls(
            type=backup_type,
            tables=parsed_tables,
            files=files,
            created_at=created_at,
            version=version,
        )


def _parse_files(raw_files: Any) -> List[FileEntry]:
    if raw_files is None:
        return []
    if not isinstance(raw_files, list):
        raise ManifestError(
            "Backup manifest files must be a list",
            details={"got": type(raw_files).__name__},
        )

    files: List[FileEntry] = []
    for index, item in enumerate(raw_files):
        if not isinstance(item, Mapping):
            raise ManifestError(
                "File entry is not an object",
                details={"index": index},
            )
        bucket = item.get("bucket")
        path = item.get("path")
        entry_name = item.get("archiveEntryName")
        if not all(isinstance(v, str) and v for v in (bucket, path, entry_name)):
            raise ManifestError(
                "File entry needs bucket, path and archiveEntryName",
                details={"index": index},
            )
        files.append(FileEntry(bucket=bucket, path=path, archive_entry_name=entry_name))
    return files
