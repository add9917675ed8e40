# mypy: ignore-errors
"""
S3 artifact store for StoreVault.

Stores artifacts as objects under a key prefix:
    s3://<bucket>/<prefix>/backup-<timestamp>.json

Invariants:
    - Existing keys are never overwritten (checked with HeadObject first)
    - Listing paginates, so any number of artifacts is returned
    - Missing keys surface as ArtifactNotFoundError

How to change safely:
    - Keep the key layout; operators browse the bucket by prefix
    - Test against MinIO (S3_ENDPOINT) before changing client calls
"""

from __future__ import annotations

import logging
from typing import Any

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import ArtifactExistsError, ArtifactIOError, ArtifactNotFoundError
from .base import ArtifactInfo, check_artifact_name, is_artifact_name

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_missing(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in _MISSING_CODES


class S3ArtifactStore:
    """S3-backed implementation of ArtifactStore.

    A client is created per operation; backups are infrequent and this
    keeps the store free of lifecycle management.

    Attributes:
        s3_config: S3 configuration

    Example:
        >>> artifacts = S3ArtifactStore(S3Config.from_env())
        >>> await artifacts.write("backup-2024-05-01T02-00-00-123Z.json", body)
        's3://storevault-backups/backups/backup-2024-05-01T02-00-00-123Z.json'
    """

    def __init__(self, s3_config: Any) -> None:
        self.s3_config = s3_config
        self._session = get_session()

    def _client(self):
        client_kwargs = {
            "region_name": self.s3_config.region,
        }

        if self.s3_config.endpoint_url:
            client_kwargs["endpoint_url"] = self.s3_config.endpoint_url

        if self.s3_config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.s3_config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.s3_config.secret_access_key

        return self._session.create_client("s3", **client_kwargs)

    def _key(self, name: str) -> str:
        prefix = self.s3_config.backup_prefix.strip("/")
        return f"{prefix}/{name}" if prefix else name

    def _uri(self, name: str) -> str:
        return f"s3://{self.s3_config.bucket}/{self._key(name)}"

    async def ensure_ready(self) -> None:
        # Prefixes need no creation in S3
        return None

    async def write(self, name: str, data: bytes) -> str:
        if not is_artifact_name(name):
            raise ArtifactIOError(f"Invalid artifact name: {name}", name=name)

        key = self._key(name)
        try:
            async with self._client() as s3:
                try:
                    await s3.head_object(Bucket=self.s3_config.bucket, Key=key)
                    raise ArtifactExistsError(name)
                except ClientError as e:
                    if not _is_missing(e):
                        raise

                await s3.put_object(
                    Bucket=self.s3_config.bucket,
                    Key=key,
                    Body=data,
                    ContentType="application/json",
                )
        except (ClientError, BotoCoreError) as e:
            raise ArtifactIOError(f"Failed to upload backup {name}: {e}", name=name) from e

        logger.debug(
            "Uploaded artifact",
            extra={"bucket": self.s3_config.bucket, "key": key, "size_bytes": len(data)},
        )
        return self._uri(name)

    async def read(self, name: str) -> bytes:
        check_artifact_name(name)
        try:
            async with self._client() as s3:
                response = await s3.get_object(Bucket=self.s3_config.bucket, Key=self._key(name))
                async with response["Body"] as stream:
                    return await stream.read()
        except ClientError as e:
            if _is_missing(e):
                raise ArtifactNotFoundError(name)
            raise ArtifactIOError(f"Failed to download backup {name}: {e}", name=name) from e
        except BotoCoreError as e:
            raise ArtifactIOError(f"Failed to download backup {name}: {e}", name=name) from e

    async def list(self) -> list[ArtifactInfo]:
        prefix = self._key("")
        artifacts = []
        try:
            async with self._client() as s3:
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.s3_config.bucket, Prefix=prefix):
                    for obj in page.get("Contents", []):
                        name = obj["Key"][len(prefix):]
                        if not is_artifact_name(name):
                            continue
                        artifacts.append(
                            ArtifactInfo(
                                file_name=name,
                                last_modified=obj["LastModified"],
                                size_bytes=obj.get("Size", 0),
                            )
                        )
        except (ClientError, BotoCoreError) as e:
            raise ArtifactIOError(f"Failed to list backups: {e}") from e

        return sorted(artifacts, key=lambda a: (a.last_modified, a.file_name), reverse=True)

    async def resolve(self, name: str) -> str:
        check_artifact_name(name)
        try:
            async with self._client() as s3:
                await s3.head_object(Bucket=self.s3_config.bucket, Key=self._key(name))
        except ClientError as e:
            if _is_missing(e):
                raise ArtifactNotFoundError(name)
            raise ArtifactIOError(f"Failed to look up backup {name}: {e}", name=name) from e
        return self._uri(name)
