"""
somleng-deploy Backup - S3 remote storage.

Works with AWS S3 and S3-compatible services (custom endpoint). Archives
live under the `somleng-backups/` prefix of the configured bucket.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from somleng_deploy.backup.retention import select_remote_deletions
from somleng_deploy.config.constants import BACKUP_REMOTE_PREFIX
from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import BackupError


@dataclass(frozen=True)
class RemoteArchive:
    """One object under the backup prefix."""

    key: str
    size: int
    last_modified: datetime

    @property
    def name(self) -> str:
        return self.key.rsplit("/", 1)[-1]


class S3Storage:
    """
    Backup archive store on S3.

    Args:
        bucket: Bucket name.
        client: boto3 S3 client.
        prefix: Key prefix for archives.
    """

    def __init__(self, bucket: str, client: Any, prefix: str = BACKUP_REMOTE_PREFIX) -> None:
        self.bucket = bucket
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_config(cls, config: DeploymentConfig) -> S3Storage | None:
        """Storage for the configured bucket, or None when S3 is not fully configured."""
        if not config.s3_configured:
            return None
        client = boto3.client(
            "s3",
            aws_access_key_id=config.backup_s3_access_key,
            aws_secret_access_key=config.backup_s3_secret_key,
            region_name=config.backup_s3_region,
            endpoint_url=config.backup_s3_endpoint,
        )
        return cls(config.backup_s3_bucket or "", client)

    def key_for(self, path: Path) -> str:
        return f"{self.prefix}{path.name}"

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.prefix}"

    def upload(self, path: Path) -> str:
        """
        Upload an archive.

        Returns:
            The object key.

        Raises:
            BackupError: Upload failed.
        """
        key = self.key_for(path)
        logger.info(f"☁️ Uploading {path.name} to s3://{self.bucket}/{key}")
        try:
            self.client.upload_file(str(path), self.bucket, key)
        except (BotoCoreError, ClientError) as e:
            raise BackupError(f"S3 upload failed: {e}", {"bucket": self.bucket, "key": key}) from e
        return key

    def list_archives(self) -> list[RemoteArchive]:
        """All archives under the prefix, newest first."""
        archives: list[RemoteArchive] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
                for obj in page.get("Contents", []):
                    archives.append(RemoteArchive(obj["Key"], obj.get("Size", 0), obj["LastModified"]))
        except (BotoCoreError, ClientError) as e:
            raise BackupError(f"Cannot list S3 backups: {e}", {"bucket": self.bucket}) from e
        return sorted(archives, key=lambda a: a.last_modified, reverse=True)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise BackupError(f"Cannot delete s3://{self.bucket}/{key}: {e}") from e

    def apply_retention(self, retention_days: int, now: datetime | None = None) -> list[str]:
        """
        Delete archives strictly older than `retention_days`.

        Returns:
            Deleted keys.
        """
        logger.info("🧹 Cleaning up old remote backups...")
        deleted = []
        for archive in select_remote_deletions(self.list_archives(), retention_days, now):
            logger.info(f"🗑️ Deleting old remote backup: {archive.name}")
            self.delete(archive.key)
            deleted.append(archive.key)
        return deleted
