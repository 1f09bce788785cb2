# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive file management - writing, listing and pruning archive files.

Archives are write-once: an existing file is never overwritten, a second
archive on the same day gets a numbered suffix instead.
"""

from datetime import datetime, UTC
from pathlib import Path
from typing import List, Tuple

import aiofiles
import structlog

from storebackup.config import BackupType
from storebackup.exceptions import BackupError

logger = structlog.get_logger()

ARCHIVE_GLOB = "backup-*.zip"


def archive_filename(backup_type: BackupType, when: datetime | None = None) -> str:
    """
    Archive filename: ``backup-<full|data>-<YYYY-MM-DD>.zip``.
    """
    when = when or datetime.now(UTC)
    label = "full" if backup_type == BackupType.FULL else "data"
    return f"backup-{label}-{when.date().isoformat()}.zip"


def _unique_path(archive_dir: Path, filename: str) -> Path:
    path = archive_dir / filename
    counter = 2
    while path.exists():
        path = archive_dir / f"{Path(filename).stem}-{counter}.zip"
        counter += 1
    return path


async def write_archive_file(
    archive_dir: Path,
    filename: str,
    archive_bytes: bytes,
) -> Path:
    """
    Write archive bytes into archive_dir.

    The file is written atomically (write to temp, then rename) so a
    crashed write never leaves a truncated archive behind.

    Returns:
        Path to the written archive
    """
    try:
        archive_dir.mkdir(parents=True, exist_ok=True)
        archive_path = _unique_path(archive_dir, filename)
        temp_path = archive_path.with_suffix(".zip.tmp")

        async with aiofiles.open(temp_path, "wb") as f:
            await f.write(archive_bytes)

        temp_path.rename(archive_path)

        logger.info(
            "archive_file_written",
            archive_path=str(archive_path),
            size=len(archive_bytes),
        )
        return archive_path

    except Exception as e:
        raise BackupError(
            f"Failed to write archive file: {e}",
            details={"archive_dir": str(archive_dir), "filename": filename},
        )


async def read_archive_file(archive_path: Path) -> bytes:
    """
    Read an archive file.
    """
    try:
        async with aiofiles.open(archive_path, "rb") as f:
            return await f.read()
    except FileNotFoundError:
        raise BackupError(
            f"Archive file not found: {archive_path}",
            details={"archive_path": str(archive_path)},
        )
    except Exception as e:
        raise BackupError(
            f"Failed to read archive file: {e}",
            details={"archive_path": str(archive_path)},
        )


def _archives_newest_first(archive_dir: Path) -> List[Path]:
    if not archive_dir.exists():
        return []
    archives = [p for p in archive_dir.glob(ARCHIVE_GLOB) if p.is_file()]
    return sorted(archives, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)


async def list_archives(archive_dir: Path) -> List[dict]:
    """
    List archive files, newest first.
    """
    archives = []
    for path in _archives_newest_first(archive_dir):
        stat = path.stat()
        archives.append({
            "filename": path.name,
            "path": str(path),
            "type": "full" if path.name.startswith("backup-full-") else "data_only",
            "size": stat.st_size,
            "created_at": datetime.fromtimestamp(stat.st_mtime, UTC).isoformat(),
        })
    return archives


async def prune_old_archives(
    archive_dir: Path,
    retain_count: int,
    dry_run: bool = False,
) -> Tuple[int, int]:
    """
    Delete all but the newest retain_count archives.

    Args:
        archive_dir: Directory holding the archives
        retain_count: Number of newest archives to keep
        dry_run: If True, only report what would be deleted

    Returns:
        Tuple of (files_deleted, bytes_freed)
    """
    files_deleted = 0
    bytes_freed = 0

    for path in _archives_newest_first(archive_dir)[retain_count:]:
        try:
            size = path.stat().st_size
            if not dry_run:
                path.unlink()
            files_deleted += 1
            bytes_freed += size
            logger.debug(
                "archive_pruned" if not dry_run else "archive_would_prune",
                path=str(path),
            )
        except OSError as e:
            logger.warning("archive_prune_failed", path=str(path), error=str(e))

    logger.info(
        "archive_pruning_complete",
        files_deleted=files_deleted,
        bytes_freed=bytes_freed,
        dry_run=dry_run,
    )
    return (files_deleted, bytes_freed)
