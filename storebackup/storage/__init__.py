# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Object storage adapters and the bucket tree walker.
"""

from storebackup.storage.base import ObjectStorage, StorageEntry
from storebackup.storage.s3 import S3ObjectStorage, get_mime_type, open_s3_storage
from storebackup.storage.walker import list_all_objects

__all__ = [
    "ObjectStorage",
    "StorageEntry",
    "S3ObjectStorage",
    "get_mime_type",
    "open_s3_storage",
    "list_all_objects",
]
