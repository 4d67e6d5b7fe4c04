"""
somleng-deploy SSL - Certificate auto-renewal.

Installs a small shell helper that runs `certbot renew`, copies renewed
files into nginx/ssl and reloads nginx, then registers it in root's
crontab exactly once.
"""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from somleng_deploy.config.constants import RENEWAL_CRON_SCHEDULE, RENEWAL_SCRIPT_PATH
from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import CertificateError
from somleng_deploy.executors.command import CommandRunner

RENEWAL_TEMPLATE = """#!/bin/bash
# Somleng CPaaS certificate renewal (installed by somleng-deploy)

PROJECT_DIR={project_dir}
SSL_DIR="$PROJECT_DIR/nginx/ssl"
LIVE_DIR={live_dir}

certbot renew --quiet

if [ -f "$LIVE_DIR/fullchain.pem" ]; then
    cp "$LIVE_DIR/fullchain.pem" "$SSL_DIR/"
    cp "$LIVE_DIR/privkey.pem" "$SSL_DIR/"
    {compose} -f "$PROJECT_DIR/docker-compose.yml" exec -T nginx nginx -s reload
fi
"""


def render_renewal_script(
    project_dir: Path,
    domain: str,
    compose_command: Sequence[str],
    live_root: Path = Path("/etc/letsencrypt/live"),
) -> str:
    return RENEWAL_TEMPLATE.format(
        project_dir=shlex.quote(str(project_dir)),
        live_dir=shlex.quote(str(live_root / domain)),
        compose=shlex.join(compose_command),
    )


def add_cron_line(existing: str, line: str) -> str | None:
    """
    Append `line` to a crontab body.

    Returns:
        The new crontab text, or None when the line is already present.
    """
    if line in (entry.strip() for entry in existing.splitlines()):
        return None
    if existing and not existing.endswith("\n"):
        existing += "\n"
    return existing + line + "\n"


class RenewalInstaller:
    """Writes the renewal helper and schedules it."""

    def __init__(
        self,
        runner: CommandRunner,
        script_path: Path = Path(RENEWAL_SCRIPT_PATH),
        schedule: str = RENEWAL_CRON_SCHEDULE,
    ) -> None:
        self.runner = runner
        self.script_path = script_path
        self.schedule = schedule

    @property
    def cron_line(self) -> str:
        return f"{self.schedule} {self.script_path}"

    def install(self, config: DeploymentConfig, compose_command: Sequence[str]) -> None:
        """Write the helper script and register the cron entry (idempotent)."""
        if not config.somleng_domain:
            raise CertificateError("SOMLENG_DOMAIN is required for certificate renewal")

        logger.info("⏰ Setting up automatic certificate renewal...")
        script = render_renewal_script(config.project_dir, config.somleng_domain, compose_command)

        if self.runner.dry_run:
            logger.info(f"[dry-run] write {self.script_path}")
        else:
            try:
                self.script_path.parent.mkdir(parents=True, exist_ok=True)
                self.script_path.write_text(script)
                self.script_path.chmod(0o755)
            except OSError as e:
                raise CertificateError(f"Cannot write renewal script {self.script_path}: {e}") from e

        self.register_cron()
        logger.success(f"✅ Auto-renewal configured ({self.schedule})")

    def register_cron(self) -> bool:
        """
        Add the cron line unless it is already there.

        Returns:
            True when the crontab was changed.
        """
        current = self.runner.run(["crontab", "-l"], check=False)
        # `crontab -l` exits non-zero when the user has no crontab yet
        existing = current.stdout if current.success else ""

        updated = add_cron_line(existing, self.cron_line)
        if updated is None:
            logger.debug("Renewal cron entry already present")
            return False

        self.runner.run(["crontab", "-"], input_text=updated)
        return True

    def run(self) -> None:
        """
        Run the renewal helper now.

        Raises:
            CertificateError: Helper not installed.
        """
        if not self.script_path.is_file():
            raise CertificateError(
                "Auto-renewal not configured. Run 'ssl letsencrypt' first.",
                {"script": str(self.script_path)},
            )
        logger.info("🔄 Running certificate renewal...")
        self.runner.run([str(self.script_path)], timeout=None)
        logger.success("✅ Certificate renewal finished")
