# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Store Backup - Backup and restore for a relational store plus object storage.

Produces versioned zip archives of selected tables and storage buckets,
and replays them: configuration tables are replaced, transactional
tables are merged by primary key, and storage objects are re-uploaded.
Individual table or file failures are reported, never fatal.
Package name: storebackup.
"""

__version__ = "0.1.0"

# Configuration
from storebackup.builder import build_config, build_from_steps, create_empty_config
from storebackup.config import BackupConfig, BackupType, TableKind
from storebackup.env import create_config_from_env

# Orchestration
from storebackup.core import (
    BackupResult,
    EngineState,
    initialize_engine_state,
    run_backup,
    run_restore,
)

# Engine building blocks
from storebackup.archive.codec import decode, encode
from storebackup.manifest import MANIFEST_VERSION, FileEntry, Manifest
from storebackup.restore import RestoreReport, restore_snapshot
from storebackup.schema import (
    DEFAULT_REGISTRY,
    SchemaRegistry,
    TableSpec,
    classify,
    list_buckets,
    list_tables_for,
)
from storebackup.snapshot import Snapshot, build_snapshot
from storebackup.storage.walker import list_all_objects

__all__ = [
    # Version
    "__version__",
    # Configuration
    "BackupConfig",
    "BackupType",
    "TableKind",
    "build_config",
    "build_from_steps",
    "create_empty_config",
    "create_config_from_env",
    # Orchestration
    "BackupResult",
    "EngineState",
    "initialize_engine_state",
    "run_backup",
    "run_restore",
    # Engine building blocks
    "MANIFEST_VERSION",
    "FileEntry",
    "Manifest",
    "RestoreReport",
    "Snapshot",
    "SchemaRegistry",
    "TableSpec",
    "DEFAULT_REGISTRY",
    "build_snapshot",
    "restore_snapshot",
    "classify",
    "encode",
    "decode",
    "list_all_objects",
    "list_buckets",
    "list_tables_for",
]
