"""
somleng-deploy Orchestration - Prerequisite validator.

Fails fast before any side effect: every required configuration key and
executable is checked, and all of them are reported together.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import psutil
from loguru import logger

from somleng_deploy.config.constants import (
    COMMAND_PROBE_TIMEOUT,
    DEPLOY_REQUIRED_BINARIES,
    DEPLOY_REQUIRED_KEYS,
    ENV_TEMPLATE_NAME,
    MIN_AVAILABLE_MEMORY_GB,
    MIN_FREE_DISK_GB,
)
from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import CommandFailedError, ConfigurationError, MissingPrerequisiteError
from somleng_deploy.executors.command import CommandRunner
from somleng_deploy.executors.compose import detect_compose_command

_GB = 1024**3


@dataclass
class ValidationReport:
    """What the validator found. Only warnings survive a successful validate()."""

    missing_keys: list[str] = field(default_factory=list)
    missing_binaries: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    compose_command: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing_keys and not self.missing_binaries


class PrerequisiteValidator:
    """
    Checks a deployment can start.

    Args:
        config: Loaded deployment configuration.
        runner: Command runner used for `which` and `docker info`.
    """

    def __init__(self, config: DeploymentConfig, runner: CommandRunner) -> None:
        self.config = config
        self.runner = runner

    def check(
        self,
        required_keys: Sequence[str] = DEPLOY_REQUIRED_KEYS,
        required_binaries: Sequence[str] = DEPLOY_REQUIRED_BINARIES,
        require_compose: bool = True,
        require_daemon: bool = True,
    ) -> ValidationReport:
        """Collect every problem without raising."""
        report = ValidationReport()

        for key in required_keys:
            if not self.config.is_set(key):
                report.missing_keys.append(key)

        for binary in required_binaries:
            if not self.runner.which(binary):
                report.missing_binaries.append(binary)

        docker_present = "docker" not in report.missing_binaries and bool(self.runner.which("docker"))

        if require_compose and docker_present:
            try:
                report.compose_command = detect_compose_command(self.runner)
            except CommandFailedError:
                report.missing_binaries.append("docker compose")

        if require_daemon and docker_present:
            if not self.runner.succeeds(["docker", "info"], timeout=COMMAND_PROBE_TIMEOUT):
                report.missing_binaries.append("docker daemon (docker info failed)")

        if require_compose and not self.config.compose_file.is_file():
            report.warnings.append(f"Compose file not found: {self.config.compose_file}")

        report.warnings.extend(self._resource_warnings())
        return report

    def validate(
        self,
        required_keys: Sequence[str] = DEPLOY_REQUIRED_KEYS,
        required_binaries: Sequence[str] = DEPLOY_REQUIRED_BINARIES,
        require_compose: bool = True,
        require_daemon: bool = True,
    ) -> ValidationReport:
        """
        Check prerequisites and raise if anything required is missing.

        Returns:
            ValidationReport (warnings only) on success.

        Raises:
            MissingPrerequisiteError: Lists every missing key and executable.
        """
        logger.info("🔍 Checking prerequisites...")
        report = self.check(required_keys, required_binaries, require_compose, require_daemon)

        for warning in report.warnings:
            logger.warning(f"⚠️ {warning}")

        if not report.ok:
            for key in report.missing_keys:
                logger.error(f"❌ Missing configuration: {key}")
            for binary in report.missing_binaries:
                logger.error(f"❌ Missing executable: {binary}")
            raise MissingPrerequisiteError(report.missing_keys, report.missing_binaries)

        logger.info("✅ Prerequisites check passed")
        return report

    def _resource_warnings(self) -> list[str]:
        warnings = []
        probe_dir = self.config.project_dir if self.config.project_dir.exists() else Path("/")
        try:
            free_gb = psutil.disk_usage(str(probe_dir)).free / _GB
            if free_gb < MIN_FREE_DISK_GB:
                warnings.append(f"Low disk space: {free_gb:.1f} GB free (recommended {MIN_FREE_DISK_GB} GB)")
        except OSError as e:
            logger.debug(f"Disk check failed: {e}")

        available_gb = psutil.virtual_memory().available / _GB
        if available_gb < MIN_AVAILABLE_MEMORY_GB:
            warnings.append(
                f"Low memory: {available_gb:.1f} GB available (recommended {MIN_AVAILABLE_MEMORY_GB} GB)"
            )
        return warnings


def ensure_env_file(project_dir: Path, env_file: Path) -> None:
    """
    Make sure a .env exists before loading configuration.

    When it is missing but .env.example exists, the template is copied and
    the operator is asked to edit it; nothing else runs.

    Raises:
        ConfigurationError: .env had to be created, or no template exists.
    """
    if env_file.is_file():
        return

    template = project_dir / ENV_TEMPLATE_NAME
    if not template.is_file():
        raise ConfigurationError(
            f".env file not found at {env_file} and no {ENV_TEMPLATE_NAME} to copy",
            {"env_file": str(env_file)},
        )

    env_file.write_text(template.read_text())
    logger.warning(f"⚠️ Created {env_file} from {ENV_TEMPLATE_NAME}")
    raise ConfigurationError(
        f"Edit {env_file} with your configuration, then run deploy again",
        {"env_file": str(env_file)},
    )
