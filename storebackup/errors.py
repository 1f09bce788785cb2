# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for storebackup.

These helpers centralize wording for common configuration and archive
errors so that all modules present consistent, actionable messages.
"""


def explain_missing_buckets_env() -> str:
    """
    Explain that no storage buckets are configured.
    """

    return (
        "No storage buckets are configured for full backups. "
        "Set BACKUP_BUCKETS (comma-separated) or pass buckets=[...] to build_config()."
    )


def explain_invalid_compression_level_env(value: str | None) -> str:
    """
    Explain that BACKUP_COMPRESSION_LEVEL is invalid.
    """

    return (
        f"Invalid BACKUP_COMPRESSION_LEVEL value: {value!r}. "
        "It must be an integer between 0 (store only) and 9 (smallest archive)."
    )


def explain_invalid_retain_count_env(value: str | None) -> str:
    """
    Explain that BACKUP_RETAIN_COUNT is invalid.
    """

    return (
        f"Invalid BACKUP_RETAIN_COUNT value: {value!r}. "
        "It must be a positive integer number of archives to keep."
    )


def explain_unsupported_manifest_version(version: object, supported: tuple) -> str:
    """
    Explain that an archive was produced by an unknown manifest format.
    """

    return (
        f"Unsupported backup manifest version: {version!r}. "
        f"This engine understands versions {', '.join(supported)}. "
        "The archive may come from a newer release; nothing was restored."
    )


def explain_missing_manifest_entry(entry_name: str) -> str:
    """
    Explain that an archive has no manifest entry.
    """

    return (
        f"Archive does not contain a '{entry_name}' entry. "
        "Without the manifest the archive contents cannot be interpreted safely."
    )
