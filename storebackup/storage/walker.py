# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Storage Tree Walker - Recursive, best-effort bucket enumeration.

Storage backends only list one folder level at a time, so folders are
walked explicitly. A failing listing loses only its own branch: the
error is logged, recorded, and the walk carries on with the siblings.
"""

from typing import List

import structlog

from storebackup.exceptions import StoreUnavailableError
from storebackup.results import ItemResult
from storebackup.storage.base import ObjectStorage

logger = structlog.get_logger()


async def list_all_objects(
    storage: ObjectStorage,
    bucket: str,
    prefix: str = "",
    failures: List[ItemResult] | None = None,
) -> List[str]:
    """
    List every object path in a bucket below prefix.

    Args:
        storage: Object storage adapter
        bucket: Bucket to walk
        prefix: Folder to start from ("" for the bucket root)
        failures: Optional list that receives an ItemResult per failed listing

    Returns:
        Object paths in listing order, depth first

    Raises:
        StoreUnavailableError: If object storage cannot be reached at all
    """
    try:
        children = await storage.list_children(bucket, prefix)
    except StoreUnavailableError:
        raise
    except Exception as e:
        logger.warning(
            "storage_list_failed",
            bucket=bucket,
            prefix=prefix,
            error=str(e),
        )
        if failures is not None:
            failures.append(ItemResult.failure("listing", f"{bucket}/{prefix}", e))
        return []

    paths: List[str] = []
    for entry in children:
        if entry.is_folder:
            # A folder must lie strictly below the prefix it was listed under
            if len(entry.path) <= len(prefix) or not entry.path.startswith(prefix):
                logger.warning(
                    "storage_folder_skipped",
                    bucket=bucket,
                    prefix=prefix,
                    folder=entry.path,
                )
                if failures is not None:
                    failures.append(
                        ItemResult.failure(
                            "listing", f"{bucket}/{entry.path}", "folder does not descend"
                        )
                    )
                continue
            paths.extend(await list_all_objects(storage, bucket, entry.path, failures))
        else:
            paths.append(entry.path)

    logger.debug("storage_prefix_listed", bucket=bucket, prefix=prefix, objects=len(paths))
    return paths
