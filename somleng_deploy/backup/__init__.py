"""
somleng-deploy Backup - Backup runs, retention and remote storage.
"""

from somleng_deploy.backup.manager import BackupManager, BackupRun, LocalArchive
from somleng_deploy.backup.retention import (
    apply_local_retention,
    local_archives,
    parse_archive_timestamp,
    select_remote_deletions,
)
from somleng_deploy.backup.sources import ComponentResult, ComponentStatus, FileSource
from somleng_deploy.backup.stages import STAGE_ORDER, TRANSITIONS, BackupStage
from somleng_deploy.backup.storage import RemoteArchive, S3Storage

__all__ = [
    "STAGE_ORDER",
    "TRANSITIONS",
    "BackupManager",
    "BackupRun",
    "BackupStage",
    "ComponentResult",
    "ComponentStatus",
    "FileSource",
    "LocalArchive",
    "RemoteArchive",
    "S3Storage",
    "apply_local_retention",
    "local_archives",
    "parse_archive_timestamp",
    "select_remote_deletions",
]
