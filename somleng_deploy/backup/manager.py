"""
somleng-deploy Backup - Backup runs, restore and listing.

A BackupRun walks COLLECTING -> COMPRESSING -> UPLOADING ->
RETENTION_CLEANUP -> REPORTING -> DONE. The first stage that raises stops
the run in FAILED and is recorded so retry() can resume exactly there.
"""

from __future__ import annotations

import shutil
import tarfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from somleng_deploy.backup.report import write_report
from somleng_deploy.backup.retention import apply_local_retention, local_archives, parse_archive_timestamp
from somleng_deploy.backup.sources import ComponentResult, FileSource, default_file_sources, dump_datastores
from somleng_deploy.backup.stages import STAGE_ORDER, BackupStage, can_transition
from somleng_deploy.backup.storage import RemoteArchive, S3Storage
from somleng_deploy.config.constants import BACKUP_PREFIX, BACKUP_SUFFIX, BACKUP_TIMESTAMP_FORMAT
from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import (
    BackupError,
    BackupStageError,
    InvalidTransitionError,
    RestoreNotImplementedError,
)
from somleng_deploy.executors.command import CommandRunner
from somleng_deploy.executors.compose import ComposeClient

Clock = Callable[[], datetime]


class BackupRun:
    """
    One backup, with its stage history.

    Args:
        config: Deployment configuration (backup dir, retention, S3 flags).
        compose: Compose client for datastore dumps.
        storage: Remote store, or None to keep the archive local only.
        sources: Best-effort file components.
        clock: Source of the run timestamp.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        compose: ComposeClient,
        storage: S3Storage | None = None,
        sources: Sequence[FileSource] = (),
        clock: Clock = datetime.now,
    ) -> None:
        self.config = config
        self.compose = compose
        self.storage = storage
        self.sources = list(sources)
        self.clock = clock

        self.started_at = clock()
        self.timestamp = self.started_at.strftime(BACKUP_TIMESTAMP_FORMAT)
        self.name = f"{BACKUP_PREFIX}{self.timestamp}"
        self.backup_dir = config.backup_dir
        self.work_dir = self.backup_dir / self.name
        self.archive_path = self.backup_dir / f"{self.name}{BACKUP_SUFFIX}"

        self.stage = BackupStage.PENDING
        self.history: list[BackupStage] = [BackupStage.PENDING]
        self.failed_stage: BackupStage | None = None
        self.error: Exception | None = None

        self.components: list[ComponentResult] = []
        self.archive_size: int | None = None
        self.remote_key: str | None = None
        self.remote_deleted: list[str] = []
        self.local_deleted: list[Path] = []
        self.local_removed = False
        self.report_path: Path | None = None

        self._handlers: dict[BackupStage, Callable[[], None]] = {
            BackupStage.COLLECTING: self._collect,
            BackupStage.COMPRESSING: self._compress,
            BackupStage.UPLOADING: self._upload,
            BackupStage.RETENTION_CLEANUP: self._cleanup,
            BackupStage.REPORTING: self._report,
        }

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def transition(self, target: BackupStage) -> None:
        """
        Move to `target`.

        Raises:
            InvalidTransitionError: `target` is not reachable from the current stage.
        """
        if not can_transition(self.stage, target):
            raise InvalidTransitionError(self.stage.value, target.value)
        self.stage = target
        self.history.append(target)

    @property
    def done(self) -> bool:
        return self.stage == BackupStage.DONE

    def run(self) -> BackupRun:
        """
        Execute every stage.

        Raises:
            BackupStageError: A stage failed; the run is left in FAILED.
        """
        if self.stage != BackupStage.PENDING:
            raise BackupError(f"Backup run {self.name} already started (stage: {self.stage})")
        logger.info(f"💾 Starting Somleng CPaaS backup {self.name}...")
        self._execute(0)
        return self

    def retry(self) -> BackupRun:
        """
        Resume a failed run from the stage that failed.

        Raises:
            BackupError: The run is not in FAILED.
            BackupStageError: A stage failed again.
        """
        if self.stage != BackupStage.FAILED or self.failed_stage is None:
            raise BackupError(f"Only a failed backup can be retried (stage: {self.stage})")
        logger.info(f"🔄 Retrying backup {self.name} from {self.failed_stage}")
        start = STAGE_ORDER.index(self.failed_stage)
        self.error = None
        self._execute(start)
        return self

    def _execute(self, start: int) -> None:
        for stage in STAGE_ORDER[start:]:
            self.transition(stage)
            logger.debug(f"Backup stage: {stage}")
            try:
                self._handlers[stage]()
            except Exception as e:
                self.failed_stage = stage
                self.error = e
                self.transition(BackupStage.FAILED)
                logger.error(f"❌ Backup stage '{stage}' failed: {e}")
                raise BackupStageError(stage.value, str(e)) from e

        self.failed_stage = None
        self.transition(BackupStage.DONE)
        logger.success(f"✅ Backup completed: {self.name}")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _collect(self) -> None:
        self.components = []
        self.work_dir.mkdir(parents=True, exist_ok=True)

        self.components.extend(dump_datastores(self.compose, self.config, self.work_dir))

        logger.info("📁 Backing up configurations, logs and recordings...")
        for source in self.sources:
            self.components.append(source.collect(self.work_dir))

    def _compress(self) -> None:
        logger.info("🗜️ Compressing backup...")
        with tarfile.open(self.archive_path, "w:gz") as tar:
            tar.add(self.work_dir, arcname=self.name)
        shutil.rmtree(self.work_dir)
        self.archive_size = self.archive_path.stat().st_size
        logger.info(f"🗜️ Backup compressed: {self.archive_path.name}")

    def _upload(self) -> None:
        if self.storage is None:
            logger.warning("⚠️ S3 configuration not found. Backup stored locally only.")
            return

        self.remote_key = self.storage.upload(self.archive_path)
        logger.success(f"✅ Backup uploaded to s3://{self.storage.bucket}/{self.remote_key}")

        now = self.clock().astimezone(timezone.utc)
        self.remote_deleted = self.storage.apply_retention(self.config.backup_remote_retention_days, now)

        if not self.config.backup_keep_local:
            self.archive_path.unlink(missing_ok=True)
            self.local_removed = True
            logger.info("🗑️ Local backup removed after successful upload")

    def _cleanup(self) -> None:
        logger.info("🧹 Cleaning up old local backups...")
        self.local_deleted = apply_local_retention(self.backup_dir, self.config.backup_local_keep)

    def _report(self) -> None:
        self.report_path = write_report(self, self.backup_dir)
        logger.info(f"📝 Backup report generated: {self.report_path}")


@dataclass(frozen=True)
class LocalArchive:
    """A backup archive on local disk."""

    path: Path
    size: int
    created: datetime | None


class BackupManager:
    """
    The `backup` verbs.

    Args:
        config: Deployment configuration.
        runner: Command runner (dry-run aware).
        compose: Compose client for datastore dumps.
        storage: Remote store (default: built from the S3 settings, if complete).
        sources: File components (default: configs, logs, recordings under the project).
        clock: Source of run timestamps.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        runner: CommandRunner,
        compose: ComposeClient,
        storage: S3Storage | None = None,
        sources: Sequence[FileSource] | None = None,
        clock: Clock = datetime.now,
    ) -> None:
        self.config = config
        self.runner = runner
        self.compose = compose
        self.storage = storage if storage is not None else S3Storage.from_config(config)
        self.sources = list(sources) if sources is not None else default_file_sources(config)
        self.clock = clock

    def new_run(self) -> BackupRun:
        return BackupRun(self.config, self.compose, self.storage, self.sources, self.clock)

    def backup(self) -> BackupRun | None:
        """
        Create a backup.

        Returns:
            The finished run, or None in dry-run mode.

        Raises:
            BackupStageError: A stage failed.
        """
        if self.runner.dry_run:
            run = self.new_run()
            logger.info(f"[dry-run] would write {run.archive_path}")
            if self.storage is not None:
                logger.info(f"[dry-run] would upload to {self.storage.location}")
            return None

        self.config.backup_dir.mkdir(parents=True, exist_ok=True)
        return self.new_run().run()

    def restore(self, archive: str) -> None:
        """
        Restore from an archive. Not implemented: nothing is read or changed.

        Raises:
            RestoreNotImplementedError: Always.
        """
        logger.info(f"♻️ Restoring from backup: {archive}")
        logger.warning("⚠️ Restore functionality not implemented yet")
        raise RestoreNotImplementedError(archive)

    def list_local(self) -> list[LocalArchive]:
        return [
            LocalArchive(path, path.stat().st_size, parse_archive_timestamp(path.name))
            for path in local_archives(self.config.backup_dir)
        ]

    def list_remote(self) -> list[RemoteArchive] | None:
        """Remote archives, or None when S3 is not configured."""
        if self.storage is None:
            return None
        return self.storage.list_archives()
