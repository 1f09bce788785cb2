# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Codec - Zip container for a manifest and its storage blobs.

Layout:
    manifest.json                  the Manifest as JSON
    storage/<bucket>/<path>        one entry per backed-up object

Compression is deflate at the container level. Entries carry a fixed
timestamp so encoding the same input twice gives the same entries.
Older 1.0 backups were a bare JSON manifest without a container; those
are decoded as a manifest with no blobs.
"""

import asyncio
import io
import json
import zipfile
import zlib
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Tuple

import structlog

from storebackup.errors import explain_missing_manifest_entry
from storebackup.exceptions import ArchiveError
from storebackup.manifest import MANIFEST_ENTRY_NAME, Manifest, is_safe_entry_name

logger = structlog.get_logger()

# Thread pool for CPU-bound (de)compression of large archives
_executor = ThreadPoolExecutor(max_workers=2)

DEFAULT_COMPRESSION_LEVEL = 6
_OFFLOAD_THRESHOLD = 1024 * 1024  # > 1MB runs in the thread pool
_FIXED_DATE_TIME = (1980, 1, 1, 0, 0, 0)


def _zip_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=_FIXED_DATE_TIME)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    return info


def encode(
    manifest: Manifest,
    blobs: Dict[str, bytes],
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
) -> bytes:
    """
    Serialize a manifest and its blobs into zip bytes.

    Args:
        manifest: Manifest written as manifest.json
        blobs: Archive entry name -> object bytes
        compression_level: Deflate level 0-9

    Returns:
        The archive as bytes
    """
    try:
        manifest_bytes = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False).encode(
            "utf-8"
        )
    except (TypeError, ValueError) as e:
        raise ArchiveError(f"Manifest is not JSON serializable: {e}")

    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=compression_level,
    ) as archive:
        archive.writestr(_zip_info(MANIFEST_ENTRY_NAME), manifest_bytes)
        for entry_name, data in blobs.items():
            if not is_safe_entry_name(entry_name):
                raise ArchiveError(
                    f"Unsafe archive entry name: {entry_name}",
                    details={"entry_name": entry_name},
                )
            archive.writestr(_zip_info(entry_name), data)

    archive_bytes = buffer.getvalue()
    logger.debug(
        "archive_encoded",
        entries=len(blobs) + 1,
        manifest_size=len(manifest_bytes),
        archive_size=len(archive_bytes),
    )
    return archive_bytes


def decode(data: bytes) -> Tuple[Any, Dict[str, bytes]]:
    """
    Read an archive back into its raw manifest and blob lookup.

    The manifest is returned as decoded JSON; Manifest.from_dict()
    validates it.

    Raises:
        ArchiveError: If the data is not an archive, or the manifest entry
            is missing or not a JSON object
    """
    if not zipfile.is_zipfile(io.BytesIO(data)):
        return _decode_legacy_json(data), {}

    blobs: Dict[str, bytes] = {}
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            try:
                manifest_bytes = archive.read(MANIFEST_ENTRY_NAME)
            except KeyError:
                raise ArchiveError(explain_missing_manifest_entry(MANIFEST_ENTRY_NAME))

            for info in archive.infolist():
                if info.is_dir() or info.filename == MANIFEST_ENTRY_NAME:
                    continue
                if not is_safe_entry_name(info.filename):
                    logger.warning("archive_entry_skipped_unsafe", entry_name=info.filename)
                    continue
                blobs[info.filename] = archive.read(info)
    except ArchiveError:
        raise
    # RuntimeError: encrypted entries; NotImplementedError: unsupported compression
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        zlib.error,
        EOFError,
        NotImplementedError,
        RuntimeError,
        OSError,
    ) as e:
        raise ArchiveError(f"Archive is corrupt: {e}")

    manifest = _parse_manifest_json(manifest_bytes)
    logger.debug("archive_decoded", blobs=len(blobs), archive_size=len(data))
    return manifest, blobs


def _parse_manifest_json(manifest_bytes: bytes) -> dict:
    try:
        manifest = json.loads(manifest_bytes.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ArchiveError(f"Manifest is not valid JSON: {e}")
    if not isinstance(manifest, dict):
        raise ArchiveError(
            "Manifest must be a JSON object",
            details={"got": type(manifest).__name__},
        )
    return manifest


def _decode_legacy_json(data: bytes) -> dict:
    """Bare JSON backups written before the zip container existed."""
    try:
        manifest = _parse_manifest_json(data)
    except ArchiveError:
        raise ArchiveError("Data is neither a backup archive nor a JSON backup file")
    if "version" not in manifest:
        raise ArchiveError("Data is neither a backup archive nor a JSON backup file")
    logger.info("legacy_json_backup_decoded", version=manifest.get("version"))
    return manifest


async def encode_archive(
    manifest: Manifest,
    blobs: Dict[str, bytes],
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
) -> bytes:
    """
    Encode an archive, in the thread pool when the payload is large.
    """
    payload_size = sum(len(b) for b in blobs.values())
    if payload_size > _OFFLOAD_THRESHOLD:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            _executor, encode, manifest, blobs, compression_level
        )
    return encode(manifest, blobs, compression_level)


async def decode_archive(data: bytes) -> Tuple[Any, Dict[str, bytes]]:
    """
    Decode an archive, in the thread pool when it is large.
    """
    if len(data) > _OFFLOAD_THRESHOLD:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_executor, decode, data)
    return decode(data)
