"""
somleng-deploy Orchestration - Status reporter.

Prints the outcome of a start run (or a live probe of every service) and
the URLs operators use to reach the deployment.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.orchestration.services import ServiceCatalog
from somleng_deploy.orchestration.starter import ProbeFactory, StartReport
from somleng_deploy.ui.console import ConsoleUI


@dataclass(frozen=True)
class ServiceStatus:
    """One row of the status table."""

    tier: str
    service: str
    ready: bool | None  # None: never started / not probed


def access_urls(config: DeploymentConfig) -> dict[str, list[tuple[str, str]]]:
    """Grouped access endpoints for a deployment."""
    domain = config.somleng_domain or "localhost"
    sip_domain = config.effective_sip_domain or domain
    return {
        "Somleng": [
            ("Web Interface", f"https://{domain}"),
            ("API Endpoint", f"https://{domain}/api"),
        ],
        "Monitoring": [
            ("Grafana", f"https://{domain}:3001"),
            ("Prometheus", f"https://{domain}:9090"),
            ("Kibana", f"https://{domain}:5601"),
        ],
        "SIP": [
            ("SIP Domain", sip_domain),
            ("SIP Port", "5060 (UDP/TCP)"),
            ("SIP TLS Port", "5061 (TCP)"),
            ("Public Gateway", "5060"),
            ("Client Gateway", "5070"),
            ("FreeSWITCH 1", "5062 (SIP), 8021 (ESL)"),
            ("FreeSWITCH 2", "5064 (SIP), 8022 (ESL)"),
        ],
    }


class StatusReporter:
    """Renders service status and access information."""

    def __init__(self, ui: ConsoleUI, config: DeploymentConfig, catalog: ServiceCatalog) -> None:
        self.ui = ui
        self.config = config
        self.catalog = catalog

    def statuses_from_report(self, report: StartReport) -> list[ServiceStatus]:
        """Map a start run onto every catalog service."""
        ready = set(report.ready)
        unready = set(report.unready)
        rows = []
        for tier in self.catalog.ordered():
            for service in tier.services:
                if service.name in ready:
                    state: bool | None = True
                elif service.name in unready:
                    state = False
                else:
                    state = None
                rows.append(ServiceStatus(tier.name, service.name, state))
        return rows

    def probe_statuses(self, probe_factory: ProbeFactory) -> list[ServiceStatus]:
        """Probe every long-running service once."""
        rows = []
        for tier in self.catalog.ordered():
            for service in tier.long_running:
                probe = probe_factory(service)
                if probe is None:
                    rows.append(ServiceStatus(tier.name, service.name, None))
                    continue
                try:
                    ok = bool(probe())
                except Exception as e:
                    logger.debug(f"Probe for {service.name} raised: {e}")
                    ok = False
                rows.append(ServiceStatus(tier.name, service.name, ok))
        return rows

    def render(self, statuses: list[ServiceStatus]) -> bool:
        """
        Print the status table.

        Returns:
            True when no service is reported down.
        """
        labels = {True: "[green]✅ ready[/green]", False: "[red]❌ not ready[/red]", None: "[dim]⊘ not checked[/dim]"}
        rows = [[s.tier, s.service, labels[s.ready]] for s in statuses]
        self.ui.table(["Tier", "Service", "Status"], rows, title="Somleng services")

        failed = [s.service for s in statuses if s.ready is False]
        if failed:
            self.ui.error(f"❌ {len(failed)} service(s) not ready: {', '.join(failed)}")
            return False
        self.ui.success("✅ All checked services are ready")
        return True

    def render_access(self) -> None:
        """Print access URLs."""
        lines = []
        for group, entries in access_urls(self.config).items():
            lines.append(f"[bold]{group}[/bold]")
            lines.extend(f"  {label}: {value}" for label, value in entries)
        self.ui.panel("\n".join(lines), title="Access", style="success")

    def report(self, start_report: StartReport) -> bool:
        """Full post-deploy report: table then access URLs."""
        ok = self.render(self.statuses_from_report(start_report))
        self.render_access()
        return ok
