"""
somleng-deploy Backup - Retention rules.

Local: keep the N most recent archives. Remote: delete archives strictly
older than D days; an archive exactly D days old is kept.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from loguru import logger

from somleng_deploy.config.constants import BACKUP_PREFIX, BACKUP_SUFFIX, BACKUP_TIMESTAMP_FORMAT


class HasLastModified(Protocol):
    key: str
    last_modified: datetime


def archive_name(timestamp: datetime) -> str:
    return f"{BACKUP_PREFIX}{timestamp.strftime(BACKUP_TIMESTAMP_FORMAT)}{BACKUP_SUFFIX}"


def parse_archive_timestamp(name: str) -> datetime | None:
    """Timestamp embedded in `somleng_backup_YYYYmmdd_HHMMSS.tar.gz`, or None."""
    base = Path(name).name
    if not (base.startswith(BACKUP_PREFIX) and base.endswith(BACKUP_SUFFIX)):
        return None
    stamp = base[len(BACKUP_PREFIX):-len(BACKUP_SUFFIX)]
    try:
        return datetime.strptime(stamp, BACKUP_TIMESTAMP_FORMAT)
    except ValueError:
        return None


def local_archives(directory: Path) -> list[Path]:
    """
    Timestamped backup archives in `directory`, newest first.

    Hand-named archives such as `somleng_backup_before-upgrade.tar.gz` are
    not listed, so retention never deletes them.
    """
    if not directory.is_dir():
        return []
    stamped = []
    for path in directory.glob(f"{BACKUP_PREFIX}*{BACKUP_SUFFIX}"):
        stamp = parse_archive_timestamp(path.name)
        if stamp is not None and path.is_file():
            stamped.append((stamp, path))
    return [path for _, path in sorted(stamped, reverse=True)]


def select_local_deletions(archives: Sequence[Path], keep: int) -> list[Path]:
    """Archives beyond the `keep` newest (input must be newest first)."""
    if keep < 1:
        raise ValueError(f"keep must be >= 1, got: {keep}")
    return list(archives[keep:])


def apply_local_retention(directory: Path, keep: int, dry_run: bool = False) -> list[Path]:
    """
    Delete all but the `keep` most recent archives in `directory`.

    Returns:
        Deleted paths.
    """
    doomed = select_local_deletions(local_archives(directory), keep)
    for path in doomed:
        if dry_run:
            logger.info(f"[dry-run] delete {path}")
            continue
        logger.info(f"🗑️ Deleting old local backup: {path.name}")
        path.unlink(missing_ok=True)
    return doomed


def age_in_days(last_modified: datetime, now: datetime | None = None) -> int:
    """Whole days elapsed since `last_modified` (floored)."""
    now = now or datetime.now(timezone.utc)
    if last_modified.tzinfo is None:
        last_modified = last_modified.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return math.floor((now - last_modified).total_seconds() / 86400)


def select_remote_deletions(
    objects: Iterable[HasLastModified],
    retention_days: int,
    now: datetime | None = None,
) -> list[HasLastModified]:
    """Objects strictly older than `retention_days`."""
    return [obj for obj in objects if age_in_days(obj.last_modified, now) > retention_days]
