"""
somleng-deploy Backup - Backup sources.

Datastore dumps are required: a failing dump fails the collecting stage.
File components (configs, logs, recordings) are best effort and each one
yields a ComponentResult.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from loguru import logger

from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.executors.compose import ComposeClient

REDIS_DUMP_PATH = "/tmp/redis_dump.rdb"


class ComponentStatus(StrEnum):
    """Outcome of copying one backup component."""

    PRESENT = "present"
    ABSENT = "absent"
    ERROR = "error"


@dataclass(frozen=True)
class ComponentResult:
    """What happened to one component."""

    name: str
    category: str
    status: ComponentStatus
    detail: str = ""


@dataclass(frozen=True)
class FileSource:
    """A file or directory copied into the backup as-is."""

    name: str
    category: str
    path: Path

    def collect(self, work_dir: Path) -> ComponentResult:
        if not self.path.exists():
            logger.warning(f"⚠️ {self.name} not found ({self.path})")
            return ComponentResult(self.name, self.category, ComponentStatus.ABSENT, str(self.path))

        target = work_dir / self.category / self.name
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if self.path.is_dir():
                shutil.copytree(self.path, target, dirs_exist_ok=True)
            else:
                shutil.copy2(self.path, target)
        except (OSError, shutil.Error) as e:
            logger.error(f"❌ Could not copy {self.name}: {e}")
            return ComponentResult(self.name, self.category, ComponentStatus.ERROR, str(e))

        return ComponentResult(self.name, self.category, ComponentStatus.PRESENT, str(self.path))


def default_file_sources(config: DeploymentConfig) -> list[FileSource]:
    """Configs, logs and recordings under the project directory."""
    root = config.project_dir
    return [
        FileSource(".env", "configs", config.env_file or root / ".env"),
        FileSource("docker-compose.yml", "configs", config.compose_file),
        FileSource("nginx", "configs", root / "nginx"),
        FileSource("kamailio", "configs", root / "kamailio"),
        FileSource("prometheus", "configs", root / "monitoring" / "prometheus"),
        FileSource("grafana", "configs", root / "monitoring" / "grafana"),
        FileSource("logs", "logs", root / "logs"),
        FileSource("freeswitch", "recordings", root / "recordings" / "freeswitch"),
        FileSource("rtpengine", "recordings", root / "recordings" / "rtpengine"),
    ]


def dump_datastores(compose: ComposeClient, config: DeploymentConfig, work_dir: Path) -> list[ComponentResult]:
    """
    Dump both PostgreSQL databases and the Redis dataset into `work_dir`.

    Raises:
        CommandFailedError: A dump command failed.
    """
    work_dir.mkdir(parents=True, exist_ok=True)

    logger.info("🗄️ Backing up PostgreSQL database...")
    compose.exec(
        "db", ["pg_dump", "-U", config.postgres_user, "-d", config.postgres_db],
        stdout_path=work_dir / "somleng_db.sql", timeout=None,
    )

    logger.info("🗄️ Backing up Kamailio database...")
    compose.exec(
        "db", ["pg_dump", "-U", config.kamailio_db_user, "-d", config.kamailio_db],
        stdout_path=work_dir / "kamailio_db.sql", timeout=None,
    )

    logger.info("🗄️ Backing up Redis data...")
    command = ["redis-cli"]
    if config.redis_password:
        command += ["--no-auth-warning", "-a", config.redis_password]
    compose.exec("redis", [*command, "--rdb", REDIS_DUMP_PATH], timeout=None)
    compose.cp(f"redis:{REDIS_DUMP_PATH}", str(work_dir / "redis_dump.rdb"))

    return [
        ComponentResult("somleng_db", "databases", ComponentStatus.PRESENT, "somleng_db.sql"),
        ComponentResult("kamailio_db", "databases", ComponentStatus.PRESENT, "kamailio_db.sql"),
        ComponentResult("redis", "databases", ComponentStatus.PRESENT, "redis_dump.rdb"),
    ]
