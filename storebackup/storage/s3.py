# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
S3-compatible object storage backed by aiobotocore.

Listings use a "/" delimiter so each call returns one folder level:
``CommonPrefixes`` become folder entries and ``Contents`` file entries.
Connection-level failures are raised as StoreUnavailableError so callers
can tell an unreachable service apart from a single failing object.
"""

import mimetypes
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List

import structlog
from botocore.exceptions import EndpointConnectionError

from storebackup.config import BackupConfig
from storebackup.exceptions import StorageError, StoreUnavailableError
from storebackup.storage.base import StorageEntry

logger = structlog.get_logger()


def get_mime_type(path: str) -> str:
    """
    Get MIME type for an object path based on extension.
    """
    mime_type, _ = mimetypes.guess_type(path)
    return mime_type or "application/octet-stream"


class S3ObjectStorage:
    """ObjectStorage over an aiobotocore S3 client."""

    def __init__(self, s3_client: Any, page_size: int = 1000):
        self.s3_client = s3_client
        self.page_size = page_size

    async def list_children(self, bucket: str, prefix: str = "") -> List[StorageEntry]:
        entries: List[StorageEntry] = []

        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(
                Bucket=bucket,
                Prefix=prefix,
                Delimiter="/",
                MaxKeys=self.page_size,
            ):
                for common in page.get("CommonPrefixes", []):
                    # Kept verbatim: keys may hold empty or leading segments
                    path = common["Prefix"]
                    entries.append(
                        StorageEntry(name=path[len(prefix):-1], path=path, is_folder=True)
                    )
                for obj in page.get("Contents", []):
                    key = obj["Key"]
                    # Zero-byte folder placeholder objects
                    if key == prefix or key.endswith("/"):
                        continue
                    entries.append(
                        StorageEntry(name=key.rsplit("/", 1)[-1], path=key, is_folder=False)
                    )
        except EndpointConnectionError as e:
            raise StoreUnavailableError(
                f"Object storage is not reachable: {e}",
                details={"bucket": bucket},
            )
        except Exception as e:
            raise StorageError(
                f"Failed to list objects: {e}",
                details={"bucket": bucket, "prefix": prefix},
            )

        return entries

    async def download(self, bucket: str, path: str) -> bytes:
        try:
            response = await self.s3_client.get_object(Bucket=bucket, Key=path)
            async with response["Body"] as stream:
                return await stream.read()
        except EndpointConnectionError as e:
            raise StoreUnavailableError(
                f"Object storage is not reachable: {e}",
                details={"bucket": bucket},
            )
        except Exception as e:
            raise StorageError(
                f"Failed to download object: {e}",
                details={"bucket": bucket, "path": path},
            )

    async def upload(self, bucket: str, path: str, data: bytes) -> None:
        try:
            await self.s3_client.put_object(
                Bucket=bucket,
                Key=path,
                Body=data,
                ContentType=get_mime_type(path),
            )
        except EndpointConnectionError as e:
            raise StoreUnavailableError(
                f"Object storage is not reachable: {e}",
                details={"bucket": bucket},
            )
        except Exception as e:
            raise StorageError(
                f"Failed to upload object: {e}",
                details={"bucket": bucket, "path": path, "size": len(data)},
            )


@asynccontextmanager
async def open_s3_storage(
    config: BackupConfig,
    session: Any = None,
) -> AsyncIterator[S3ObjectStorage]:
    """
    Open an S3 client for the duration of a backup or restore.

    Args:
        config: Backup configuration (region, endpoint, page size)
        session: aiobotocore session (a new one is created if omitted)
    """
    if session is None:
        from aiobotocore.session import get_session

        session = get_session()

    async with session.create_client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
    ) as s3_client:
        yield S3ObjectStorage(s3_client, page_size=config.list_page_size)
