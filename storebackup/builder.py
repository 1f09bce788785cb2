# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Store Backup Builder - Functional builder pattern for configuration.

This module provides pure functions for building BackupConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict, List

from storebackup.config import BackupConfig


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "buckets": None,
        "region": "us-east-1",
        "endpoint_url": None,
        "archive_dir": Path("./backups"),
        "write_archives": False,
        "compression_level": 6,
        "max_concurrent_ops": 8,
        "list_page_size": 1000,
        "retain_count": 5,
    }


def with_buckets(config: ConfigDict, buckets: List[str]) -> ConfigDict:
    """
    Override the buckets included in full backups.

    Args:
        config: Current configuration dictionary
        buckets: Bucket names, in backup order

    Returns:
        New configuration dictionary with buckets set
    """
    return {**config, "buckets": list(buckets)}


def with_region(config: ConfigDict, region: str) -> ConfigDict:
    """
    Set the object storage region.
    """
    return {**config, "region": region}


def with_endpoint(config: ConfigDict, endpoint_url: str) -> ConfigDict:
    """
    Point the object storage client at an S3-compatible endpoint.

    Args:
        config: Current configuration dictionary
        endpoint_url: e.g. 'https://<project>.supabase.co/storage/v1/s3'

    Returns:
        New configuration dictionary with endpoint set
    """
    return {**config, "endpoint_url": endpoint_url}


def with_archive_dir(config: ConfigDict, archive_dir: Path | str) -> ConfigDict:
    """
    Write every produced archive into archive_dir.
    """
    path = Path(archive_dir) if isinstance(archive_dir, str) else archive_dir
    return {**config, "archive_dir": path, "write_archives": True}


def with_compression_level(config: ConfigDict, level: int) -> ConfigDict:
    """
    Set the deflate level used for the archive container.

    Args:
        config: Current configuration dictionary
        level: 0 (store only) to 9 (smallest, slowest)

    Returns:
        New configuration dictionary with compression level set
    """
    if not 0 <= level <= 9:
        raise ValueError(f"compression_level must be 0-9, got {level}")
    return {**config, "compression_level": level}


def with_max_concurrent_ops(config: ConfigDict, max_ops: int) -> ConfigDict:
    """
    Set the maximum number of concurrent object downloads/uploads.
    """
    if max_ops < 1:
        raise ValueError(f"max_concurrent_ops must be >= 1, got {max_ops}")
    return {**config, "max_concurrent_ops": max_ops}


def retain_archives(config: ConfigDict, count: int) -> ConfigDict:
    """
    Set how many archives prune_old_archives() keeps.
    """
    if count < 1:
        raise ValueError(f"retain_count must be >= 1, got {count}")
    return {**config, "retain_count": count}


def build_config(config_dict: ConfigDict) -> BackupConfig:
    """
    Validate and build an immutable BackupConfig from a configuration dictionary.

    Raises:
        ConfigurationError: If validation fails
    """
    return BackupConfig(**config_dict)


def build_from_steps(*steps: BuilderFunc) -> BackupConfig:
    """
    Build config by applying a sequence of builder functions.

    Example:
        config = build_from_steps(
            lambda c: with_buckets(c, ["shop-products"]),
            lambda c: with_archive_dir(c, "/var/backups/shop"),
        )
    """
    config = create_empty_config()
    for step in steps:
        config = step(config)
    return build_config(config)
