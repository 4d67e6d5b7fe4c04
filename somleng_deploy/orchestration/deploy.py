"""
somleng-deploy Orchestration - Stack lifecycle.

The `stack` verbs: deploy runs validator, TLS bootstrap, firewall, image
pull and build, tiered start with readiness polling, then the status report.
stop/restart/logs/status/update are thin compose calls.
"""

from __future__ import annotations

import httpx
from loguru import logger

from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import ReadinessTimeoutError
from somleng_deploy.executors.command import CommandRunner
from somleng_deploy.executors.compose import ComposeClient
from somleng_deploy.health.poller import ReadinessPoller
from somleng_deploy.health.probes import Probe, build_probe
from somleng_deploy.orchestration.reporter import StatusReporter
from somleng_deploy.orchestration.services import ServiceCatalog, ServiceDescriptor
from somleng_deploy.orchestration.starter import ServiceStarter, StartReport
from somleng_deploy.orchestration.validator import PrerequisiteValidator
from somleng_deploy.security.firewall import configure_firewall
from somleng_deploy.ssl.certificates import CertificateManager
from somleng_deploy.ui.console import ConsoleUI

DB_SERVICE = "db"
WEB_SERVICE = "somleng_web"

ADMIN_USER_SCRIPT = """\
User.find_or_create_by(email: {email}) do |user|
  user.password = {password}
  user.admin = true
end
"""


def ruby_string(value: str) -> str:
    """Single-quoted Ruby literal."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class StackManager:
    """
    Runs the stack verbs for one deployment.

    Args:
        config: Loaded deployment configuration.
        runner: Command runner (dry-run aware).
        compose: Compose client bound to the project's compose file.
        catalog: Service catalog.
        ui: Console for tables and panels.
        poller: Readiness poller (default: built from config).
        http_client: Client handed to HTTP probes.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        runner: CommandRunner,
        compose: ComposeClient,
        catalog: ServiceCatalog,
        ui: ConsoleUI,
        poller: ReadinessPoller | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.config = config
        self.runner = runner
        self.compose = compose
        self.catalog = catalog
        self.ui = ui
        self.poller = poller or ReadinessPoller(config.readiness_max_attempts, config.readiness_interval)
        self.http_client = http_client
        self.reporter = StatusReporter(ui, config, catalog)

    def probe_for(self, service: ServiceDescriptor) -> Probe | None:
        return build_probe(service.probe, service.name, self.compose, self.config, self.http_client)

    # ------------------------------------------------------------------
    # deploy
    # ------------------------------------------------------------------

    def deploy(self, apply_firewall: bool = True, build: bool = True) -> StartReport:
        """
        Full deployment.

        Args:
            apply_firewall: Apply the deploy ufw rules.
            build: Build local images (`compose build --parallel`) after pulling.

        Raises:
            MissingPrerequisiteError: Before any side effect.
            ReadinessTimeoutError: A tier never became ready (status table is printed first).
            CommandFailedError: A compose, openssl or ufw command failed,
                including an invalid compose file.
        """
        logger.info("🚀 Starting Somleng CPaaS deployment...")

        PrerequisiteValidator(self.config, self.runner).validate()
        self.compose.validate()

        CertificateManager(self.config, self.runner, self.compose).ensure_certificates()

        if apply_firewall:
            configure_firewall(self.runner)

        logger.info("🧹 Removing containers left over from a previous run...")
        self.compose.down(remove_orphans=True, check=False)

        logger.info("📦 Pulling Docker images...")
        self.compose.pull()

        if build:
            logger.info("🔨 Building Docker images...")
            self.compose.build(parallel=True)

        starter = ServiceStarter(
            self.compose, self.poller, self.probe_for, skip_probes=self.runner.dry_run
        )
        try:
            report = starter.start(self.catalog, hooks={"core": self._after_core})
        except ReadinessTimeoutError as e:
            if e.report is not None:
                self.reporter.render(self.reporter.statuses_from_report(e.report))
            self.ui.muted("Inspect with `somleng-deploy stack logs <service>`; stop with `somleng-deploy stack stop`.")
            raise

        self.reporter.report(report)
        logger.warning("⚠️ Remember to secure your deployment and change default passwords!")
        logger.success("✅ Deployment completed successfully!")
        return report

    def _after_core(self) -> None:
        self.prepare_database()
        self.create_admin_user()

    def prepare_database(self) -> None:
        """Create, migrate and seed the Somleng database unless it already answers."""
        logger.info("🗄️ Initializing Somleng database...")
        check = self.compose.exec(
            DB_SERVICE,
            ["psql", "-U", self.config.postgres_user, "-d", self.config.postgres_db, "-c", "SELECT 1;"],
            check=False,
        )
        if check.success and not self.runner.dry_run:
            logger.info("🗄️ Database already initialized")
            return

        for task in ("db:create", "db:migrate", "db:seed"):
            self.compose.exec(WEB_SERVICE, ["bundle", "exec", "rails", task], timeout=None)

    def create_admin_user(self) -> None:
        """Ensure the admin account exists (no-op without ADMIN_EMAIL)."""
        if not self.config.admin_email or not self.config.admin_password:
            logger.warning("⚠️ ADMIN_EMAIL not set, skipping admin user creation")
            return
        logger.info(f"👤 Creating admin user {self.config.admin_email}...")
        script = ADMIN_USER_SCRIPT.format(
            email=ruby_string(self.config.admin_email),
            password=ruby_string(self.config.admin_password),
        )
        self.compose.exec(WEB_SERVICE, ["bundle", "exec", "rails", "runner", script], timeout=None)

    # ------------------------------------------------------------------
    # other verbs
    # ------------------------------------------------------------------

    def stop(self) -> None:
        logger.info("🛑 Stopping Somleng CPaaS services...")
        self.compose.down()
        logger.success("✅ Services stopped")

    def restart(self) -> None:
        logger.info("🔄 Restarting Somleng CPaaS services...")
        self.compose.restart()
        logger.success("✅ Services restarted")

    def logs(self, service: str | None = None, follow: bool = True) -> None:
        self.compose.logs(service, follow=follow)

    def status(self) -> bool:
        """Print `compose ps`, then probe each service once."""
        self.compose.ps(stream=True)
        ok = self.reporter.render(self.reporter.probe_statuses(self.probe_for))
        self.reporter.render_access()
        return ok

    def update(self) -> None:
        logger.info("⬆️ Updating Somleng CPaaS...")
        self.compose.pull()
        self.compose.up()
        logger.success("✅ Update completed")
