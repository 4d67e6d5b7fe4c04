"""
somleng-deploy Health - Health check implementations.

Point-in-time checks of a running deployment: docker, containers,
datastores, web API, telephony, monitoring, TLS and host resources.
Every check returns a HealthCheck; none of them raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import httpx
import psutil
from loguru import logger

from somleng_deploy.config.constants import (
    CERT_WARNING_DAYS,
    COMMAND_PROBE_TIMEOUT,
    PROBE_TIMEOUT_SECONDS,
    USAGE_CRITICAL_PERCENT,
    USAGE_WARNING_PERCENT,
)
from somleng_deploy.core.exceptions import CertificateError, ExecutionError
from somleng_deploy.core.types import CheckStatus, HealthCheck
from somleng_deploy.health.probes import ProbeKind, build_probe

if TYPE_CHECKING:
    from somleng_deploy.config.models import DeploymentConfig
    from somleng_deploy.executors.command import CommandRunner
    from somleng_deploy.executors.compose import ComposeClient
    from somleng_deploy.orchestration.services import ServiceCatalog

# Ports a public Somleng host is expected to listen on
EXPECTED_PORTS: dict[int, str] = {
    80: "HTTP",
    443: "HTTPS",
    5060: "SIP",
    5061: "SIP-TLS",
    3478: "STUN",
    5349: "TURN-TLS",
}


@dataclass
class HealthReport:
    """Results of a full health-check run."""

    checks: list[HealthCheck] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        """True when no check ended in ERROR."""
        return not any(c.failed for c in self.checks)

    @property
    def has_warnings(self) -> bool:
        return any(c.status == CheckStatus.WARNING for c in self.checks)

    @property
    def failed_checks(self) -> list[str]:
        return [c.name for c in self.checks if c.failed]

    def get_check(self, name: str) -> HealthCheck | None:
        """Get check by name."""
        for check in self.checks:
            if check.name == name:
                return check
        return None


# =============================================================================
# Docker
# =============================================================================

def check_docker(runner: CommandRunner) -> HealthCheck:
    """Docker installed and daemon reachable."""
    if not runner.which("docker"):
        return HealthCheck("docker", CheckStatus.ERROR, "❌ Docker is not installed", critical=True)
    if not runner.succeeds(["docker", "info"], timeout=COMMAND_PROBE_TIMEOUT):
        return HealthCheck("docker", CheckStatus.ERROR, "❌ Docker daemon is not running", critical=True)
    return HealthCheck("docker", CheckStatus.OK, "✅ Docker is running")


def check_compose(compose: ComposeClient) -> HealthCheck:
    """Either compose flavour is available."""
    try:
        command = compose.command
    except ExecutionError:
        return HealthCheck("compose", CheckStatus.ERROR, "❌ Docker Compose is not installed", critical=True)
    return HealthCheck(
        "compose", CheckStatus.OK, f"✅ Docker Compose available ({' '.join(command)})",
        details={"command": command},
    )


def check_containers(runner: CommandRunner, catalog: ServiceCatalog) -> HealthCheck:
    """Every long-running catalog container is up; unhealthy ones are a warning."""
    result = runner.run(
        ["docker", "ps", "--format", "{{.Names}}"], check=False, timeout=COMMAND_PROBE_TIMEOUT
    )
    if not result.success:
        return HealthCheck("containers", CheckStatus.ERROR, "❌ Cannot list containers")

    running = set(result.stdout.split())
    missing: list[str] = []
    unhealthy: dict[str, str] = {}

    for service in catalog.services():
        if service.one_shot:
            continue
        name = service.container_name
        if name not in running:
            missing.append(name)
            continue
        inspect = runner.run(
            ["docker", "inspect", "--format", "{{if .State.Health}}{{.State.Health.Status}}{{end}}", name],
            check=False, timeout=COMMAND_PROBE_TIMEOUT,
        )
        status = inspect.stdout.strip() if inspect.success else ""
        if status and status != "healthy":
            unhealthy[name] = status

    if missing:
        return HealthCheck(
            "containers", CheckStatus.ERROR,
            f"❌ Containers not running: {', '.join(missing)}",
            details={"missing": missing, "unhealthy": unhealthy},
        )
    if unhealthy:
        listing = ", ".join(f"{k} ({v})" for k, v in unhealthy.items())
        return HealthCheck(
            "containers", CheckStatus.WARNING,
            f"⚠️ Running but not healthy: {listing}",
            details={"unhealthy": unhealthy},
        )
    return HealthCheck("containers", CheckStatus.OK, f"✅ {len(running)} containers running")


# =============================================================================
# Datastores
# =============================================================================

def check_database(compose: ComposeClient, config: DeploymentConfig) -> HealthCheck:
    """PostgreSQL accepts connections and has a schema."""
    user, db = config.postgres_user, config.postgres_db
    try:
        ready = compose.exec(
            "db", ["pg_isready", "-U", user, "-d", db], check=False, timeout=COMMAND_PROBE_TIMEOUT
        )
    except ExecutionError as e:
        return HealthCheck("database", CheckStatus.ERROR, f"❌ PostgreSQL check failed: {e.message}")

    if not ready.success:
        return HealthCheck("database", CheckStatus.ERROR, "❌ PostgreSQL is not accepting connections")

    query = "SELECT count(*) FROM information_schema.tables WHERE table_schema = 'public';"
    try:
        count = compose.exec(
            "db", ["psql", "-U", user, "-d", db, "-t", "-c", query],
            check=False, timeout=COMMAND_PROBE_TIMEOUT,
        )
        tables = int(count.stdout.strip()) if count.success else 0
    except (ExecutionError, ValueError):
        tables = 0

    if tables > 0:
        return HealthCheck(
            "database", CheckStatus.OK, f"✅ PostgreSQL ready ({tables} tables)", details={"tables": tables}
        )
    return HealthCheck("database", CheckStatus.WARNING, "⚠️ PostgreSQL ready but database appears empty")


def check_redis(compose: ComposeClient, config: DeploymentConfig) -> HealthCheck:
    """Redis answers PING."""
    command = ["redis-cli"]
    if config.redis_password:
        command += ["--no-auth-warning", "-a", config.redis_password]
    command.append("ping")

    try:
        result = compose.exec("redis", command, check=False, timeout=COMMAND_PROBE_TIMEOUT)
    except ExecutionError as e:
        return HealthCheck("redis", CheckStatus.ERROR, f"❌ Redis check failed: {e.message}")

    if result.success and "PONG" in result.stdout:
        return HealthCheck("redis", CheckStatus.OK, "✅ Redis is responding")
    return HealthCheck("redis", CheckStatus.ERROR, "❌ Redis is not responding")


# =============================================================================
# HTTP / telephony / monitoring
# =============================================================================

def check_web_api(config: DeploymentConfig, client: httpx.Client) -> HealthCheck:
    """Somleng /health over HTTPS, falling back to plain HTTP."""
    domain = config.somleng_domain or "localhost"

    for scheme in ("https", "http"):
        url = f"{scheme}://{domain}/health"
        try:
            response = client.get(url)
        except httpx.HTTPError as e:
            logger.debug(f"GET {url} failed: {e}")
            continue
        if response.status_code < 400:
            suffix = "" if scheme == "https" else " (HTTP)"
            return HealthCheck("web_api", CheckStatus.OK, f"✅ Somleng Web API is responding{suffix}")

    return HealthCheck("web_api", CheckStatus.ERROR, f"❌ Somleng Web API is not responding at {domain}")


def check_tier_probes(
    name: str,
    tier_name: str,
    catalog: ServiceCatalog,
    compose: ComposeClient,
    config: DeploymentConfig,
    client: httpx.Client | None = None,
) -> HealthCheck:
    """Run each service probe of one tier a single time."""
    try:
        tier = catalog.tier(tier_name)
    except KeyError:
        return HealthCheck(name, CheckStatus.DISABLED, f"No '{tier_name}' tier in service catalog")

    failing: list[str] = []
    probed = 0
    for service in tier.long_running:
        if service.probe.kind == ProbeKind.NONE:
            continue
        probe = build_probe(service.probe, service.name, compose, config, http_client=client)
        if probe is None:
            continue
        probed += 1
        try:
            ok = probe()
        except Exception as e:
            logger.debug(f"Probe for {service.name} raised: {e}")
            ok = False
        if not ok:
            failing.append(service.name)

    if failing:
        return HealthCheck(
            name, CheckStatus.ERROR, f"❌ Not responding: {', '.join(failing)}", details={"failing": failing}
        )
    return HealthCheck(name, CheckStatus.OK, f"✅ {probed} {tier_name} services responding")


def check_ssl(config: DeploymentConfig, runner: CommandRunner) -> HealthCheck:
    """Certificate present and not close to expiry."""
    from somleng_deploy.ssl.certificates import CertificateManager

    manager = CertificateManager(config, runner)
    if not manager.paths.installed:
        return HealthCheck(
            "ssl", CheckStatus.WARNING, "⚠️ SSL certificates not found (self-signed or not configured)"
        )

    try:
        info = manager.read_info()
    except CertificateError as e:
        return HealthCheck("ssl", CheckStatus.ERROR, f"❌ {e.message}")

    days = info.days_remaining(datetime.now(timezone.utc))
    details = {"days_remaining": days, "not_after": info.not_after.isoformat()}
    if days <= 0:
        return HealthCheck("ssl", CheckStatus.ERROR, "❌ SSL certificate has expired", details=details)
    if days <= CERT_WARNING_DAYS:
        return HealthCheck("ssl", CheckStatus.WARNING, f"⚠️ SSL certificate expires in {days} days", details=details)
    return HealthCheck("ssl", CheckStatus.OK, f"✅ SSL certificate valid for {days} days", details=details)


# =============================================================================
# Host
# =============================================================================

def check_ports(ports: dict[int, str] | None = None) -> HealthCheck:
    """Expected public ports are listening. Missing ports are a warning."""
    ports = ports or EXPECTED_PORTS
    try:
        connections = psutil.net_connections(kind="inet")
    except psutil.AccessDenied:
        return HealthCheck("ports", CheckStatus.DISABLED, "Port check needs elevated privileges")

    listening = {
        c.laddr.port
        for c in connections
        if c.laddr and (c.status == psutil.CONN_LISTEN or c.status == psutil.CONN_NONE)
    }
    closed = {port: label for port, label in ports.items() if port not in listening}

    if closed:
        listing = ", ".join(f"{p} ({label})" for p, label in sorted(closed.items()))
        return HealthCheck(
            "ports", CheckStatus.WARNING, f"⚠️ Not listening: {listing}", details={"closed": sorted(closed)}
        )
    return HealthCheck("ports", CheckStatus.OK, f"✅ All {len(ports)} expected ports listening")


def _usage_check(name: str, label: str, percent: float) -> HealthCheck:
    details = {"percent": percent}
    if percent >= USAGE_CRITICAL_PERCENT:
        return HealthCheck(name, CheckStatus.ERROR, f"❌ {label} usage is {percent:.0f}% (critical)", details=details)
    if percent >= USAGE_WARNING_PERCENT:
        return HealthCheck(name, CheckStatus.WARNING, f"⚠️ {label} usage is {percent:.0f}%", details=details)
    return HealthCheck(name, CheckStatus.OK, f"✅ {label} usage is {percent:.0f}%", details=details)


def check_disk_usage(path: str = "/") -> HealthCheck:
    return _usage_check("disk", "Disk", psutil.disk_usage(path).percent)


def check_memory_usage() -> HealthCheck:
    return _usage_check("memory", "Memory", psutil.virtual_memory().percent)


# =============================================================================
# Suite
# =============================================================================

def run_health_checks(
    config: DeploymentConfig,
    runner: CommandRunner,
    compose: ComposeClient,
    catalog: ServiceCatalog,
    http_client: httpx.Client | None = None,
) -> HealthReport:
    """
    Run the full health-check suite.

    Checks run in a fixed order and never short-circuit; the report holds
    every result.

    Args:
        http_client: Client for HTTP checks (default: TLS verification off,
            redirects followed).

    Returns:
        HealthReport with all check results.
    """
    report = HealthReport()
    logger.debug("🔍 Running health checks...")

    client = http_client or httpx.Client(
        verify=False, follow_redirects=True, timeout=PROBE_TIMEOUT_SECONDS
    )
    try:
        docker = check_docker(runner)
        report.checks.append(docker)
        report.checks.append(check_compose(compose))

        if docker.failed:
            logger.warning("⚠️ Docker unavailable, skipping container checks")
        else:
            report.checks.append(check_containers(runner, catalog))
            report.checks.append(check_database(compose, config))
            report.checks.append(check_redis(compose, config))

        report.checks.append(check_web_api(config, client))

        if not docker.failed:
            report.checks.append(check_tier_probes("sip_services", "telephony", catalog, compose, config, client))
            report.checks.append(check_tier_probes("monitoring", "monitoring", catalog, compose, config, client))

        report.checks.append(check_ssl(config, runner))
        report.checks.append(check_ports())
        report.checks.append(check_disk_usage())
        report.checks.append(check_memory_usage())
    finally:
        if http_client is None:
            client.close()

    logger.debug(f"✅ Health checks complete: {len(report.checks)} checks, passed={report.passed}")
    return report
