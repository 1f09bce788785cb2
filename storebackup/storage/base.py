# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Object storage contract used by the backup engine.
"""

from dataclasses import dataclass
from typing import List, Protocol


@dataclass(frozen=True)
class StorageEntry:
    """One immediate child of a listed prefix."""

    name: str
    path: str  # Full path from the bucket root; folders keep their trailing "/"
    is_folder: bool


class ObjectStorage(Protocol):
    """Bucket listing, download and overwrite-upload."""

    async def list_children(self, bucket: str, prefix: str = "") -> List[StorageEntry]:
        """
        List the immediate children of prefix (one level, all pages).

        prefix is "" for the bucket root or a folder path exactly as a
        previous listing returned it.
        """
        ...

    async def download(self, bucket: str, path: str) -> bytes:
        ...

    async def upload(self, bucket: str, path: str, data: bytes) -> None:
        """Write data to path, replacing any existing object."""
        ...
