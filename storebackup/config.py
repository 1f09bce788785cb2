# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Store Backup Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so a running
backup or restore always sees the values it started with.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List
import re


class BackupType(str, Enum):
    """What a backup archive contains."""

    DATA_ONLY = "data_only"  # Reference/config tables only, no storage objects
    FULL = "full"  # Every known table plus every object in every bucket


class TableKind(str, Enum):
    """How a table is treated on restore."""

    CONFIGURATION = "configuration"  # Wiped and replaced
    TRANSACTIONAL = "transactional"  # Merged by primary key, never wiped


class BackupFrequency(str, Enum):
    """Automatic backup frequency kept in the settings record."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate a storage bucket name.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens, periods
    - Must start and end with letter or number
    - No consecutive periods
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    return True


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for backup and restore runs.

    Table layout and bucket membership live in the schema registry; this
    holds the operational knobs.
    """

    # Buckets to include in full backups (None means the registry's list)
    buckets: List[str] | None = None

    # Region and optional endpoint for the S3-compatible object storage
    region: str = "us-east-1"
    endpoint_url: str | None = None

    # Where produced archives are written (when write_archives is set)
    archive_dir: Path = field(default_factory=lambda: Path("./backups"))
    write_archives: bool = False

    # Deflate level for the zip container (0 = store, 9 = smallest)
    compression_level: int = 6

    # Maximum concurrent object downloads/uploads
    max_concurrent_ops: int = 8

    # Page size for storage listings
    list_page_size: int = 1000

    # Archives kept after each backup unless the settings record sets retainCount
    retain_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if self.buckets is not None:
            for bucket in self.buckets:
                if not _validate_bucket_name(bucket):
                    errors.append(f"Invalid bucket name: {bucket}")

        if not 0 <= self.compression_level <= 9:
            errors.append(
                f"compression_level must be between 0 and 9, got {self.compression_level}"
            )

        if self.max_concurrent_ops < 1:
            errors.append(f"max_concurrent_ops must be >= 1, got {self.max_concurrent_ops}")

        if not 1 <= self.list_page_size <= 1000:
            errors.append(
                f"list_page_size must be between 1 and 1000, got {self.list_page_size}"
            )

        if self.retain_count < 1:
            errors.append(f"retain_count must be >= 1, got {self.retain_count}")

        if errors:
            from storebackup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return BackupConfig(**current)
