# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

Builds a BackupConfig from a small set of well-known environment
variables, on top of the functional builder.
"""

from __future__ import annotations

import os
from typing import List

from storebackup.builder import (
    build_config,
    create_empty_config,
    retain_archives,
    with_archive_dir,
    with_buckets,
    with_compression_level,
    with_endpoint,
    with_region,
)
from storebackup.config import BackupConfig
from storebackup.errors import (
    explain_invalid_compression_level_env,
    explain_invalid_retain_count_env,
    explain_missing_buckets_env,
)
from storebackup.exceptions import ConfigurationError


def _parse_buckets(value: str | None) -> List[str] | None:
    if value is None:
        return None
    buckets = [b.strip() for b in value.split(",") if b.strip()]
    if not buckets:
        raise ConfigurationError(explain_missing_buckets_env())
    return buckets


def _parse_compression_level(value: str | None) -> int:
    if not value:
        return 6
    try:
        level = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_compression_level_env(value)) from exc
    if not 0 <= level <= 9:
        raise ConfigurationError(explain_invalid_compression_level_env(value))
    return level


def _parse_retain_count(value: str | None) -> int:
    if not value:
        return 5
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_retain_count_env(value)) from exc
    if count < 1:
        raise ConfigurationError(explain_invalid_retain_count_env(value))
    return count


def create_config_from_env() -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Optional environment variables:
        - BACKUP_BUCKETS: Comma-separated bucket names (default: registry buckets)
        - AWS_REGION: Object storage region (default: us-east-1)
        - S3_ENDPOINT_URL: S3-compatible endpoint URL
        - BACKUP_ARCHIVE_DIR: Directory archives are written to (enables writing)
        - BACKUP_COMPRESSION_LEVEL: 0-9 (default: 6)
        - BACKUP_RETAIN_COUNT: Archives kept when pruning (default: 5)
    """

    config = create_empty_config()

    buckets = _parse_buckets(os.getenv("BACKUP_BUCKETS"))
    if buckets is not None:
        config = with_buckets(config, buckets)

    config = with_region(config, os.getenv("AWS_REGION", "us-east-1"))

    endpoint_url = os.getenv("S3_ENDPOINT_URL")
    if endpoint_url:
        config = with_endpoint(config, endpoint_url)

    archive_dir = os.getenv("BACKUP_ARCHIVE_DIR")
    if archive_dir:
        config = with_archive_dir(config, archive_dir)

    config = with_compression_level(
        config, _parse_compression_level(os.getenv("BACKUP_COMPRESSION_LEVEL"))
    )
    config = retain_archives(config, _parse_retain_count(os.getenv("BACKUP_RETAIN_COUNT")))

    return build_config(config)
