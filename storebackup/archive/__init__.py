# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Archive Layer - Zip codec and archive file management.
"""

from storebackup.archive.codec import (
    decode,
    decode_archive,
    encode,
    encode_archive,
)

from storebackup.archive.files import (
    archive_filename,
    list_archives,
    prune_old_archives,
    read_archive_file,
    write_archive_file,
)

__all__ = [
    # Codec
    "encode",
    "decode",
    "encode_archive",
    "decode_archive",
    # Files
    "archive_filename",
    "write_archive_file",
    "read_archive_file",
    "list_archives",
    "prune_old_archives",
]
