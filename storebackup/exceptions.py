# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Store Backup Exceptions - Custom exceptions for the storebackup package.
"""


class StoreBackupError(Exception):
    """Base exception for all storebackup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(StoreBackupError):
    """Raised when configuration is invalid."""

    pass


class BackupError(StoreBackupError):
    """Raised when a backup cannot be produced."""

    pass


class RestoreError(StoreBackupError):
    """Raised when a restore cannot be started."""

    pass


class ManifestError(RestoreError):
    """Raised when a manifest is missing fields or has an unknown version."""

    pass


class ArchiveError(StoreBackupError):
    """Raised when an archive cannot be encoded or decoded."""

    pass


class StoreUnavailableError(StoreBackupError):
    """Raised when the relational store or object storage is unreachable."""

    pass


class StorageError(StoreBackupError):
    """Raised when a single object storage call fails."""

    pass


class OperationInProgressError(StoreBackupError):
    """Raised when a backup or restore is already running."""

    pass
