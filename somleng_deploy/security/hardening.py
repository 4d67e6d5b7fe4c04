"""
somleng-deploy Security - Host hardening.

`security harden` walks a fixed list of steps:

- firewall: the hardened ufw profile
- fail2ban: jails for SSH, nginx and SIP
- ssh: sshd settings (no root login, keys only)
- kernel: sysctl network hardening, rare protocols blacklisted
- docker: daemon.json options and the seccomp profile
- log-monitoring: daily logwatch mail
- intrusion-detection: AIDE database and daily check
- permissions: project secrets and config files
- auto-updates: unattended security upgrades

Steps are independent. A failing step is recorded and the remaining steps
still run; the result is a table plus a plaintext report.
"""

from __future__ import annotations

import json
import os
import platform
import socket
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import httpx
import psutil
from loguru import logger

from somleng_deploy.config.constants import (
    ENV_FILE_NAME,
    HARDENING_STEPS,
    SECCOMP_PROFILE_URL,
    SECURITY_REPORT_PATH,
)
from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import ConfigurationError, ExecutionError, HardeningError, SomlengDeployError
from somleng_deploy.core.types import CheckStatus, HealthCheck
from somleng_deploy.executors.command import CommandRunner
from somleng_deploy.security.firewall import configure_firewall

# System files, relative to the hardener's root
FAIL2BAN_JAIL_PATH = "/etc/fail2ban/jail.local"
FAIL2BAN_KAMAILIO_FILTER_PATH = "/etc/fail2ban/filter.d/kamailio.conf"
SSHD_CONFIG_PATH = "/etc/ssh/sshd_config"
SYSCTL_CONF_PATH = "/etc/sysctl.d/99-security.conf"
MODPROBE_BLACKLIST_PATH = "/etc/modprobe.d/blacklist-rare-network.conf"
DOCKER_DAEMON_PATH = "/etc/docker/daemon.json"
SECCOMP_PROFILE_PATH = "/etc/docker/seccomp.json"
LOGWATCH_CONF_PATH = "/etc/logwatch/conf/logwatch.conf"
LOGWATCH_CRON_PATH = "/etc/cron.daily/00logwatch"
AIDE_CRON_PATH = "/etc/cron.daily/aide"
AIDE_DB_PATH = "/var/lib/aide/aide.db"
AIDE_DB_NEW_PATH = "/var/lib/aide/aide.db.new"
UNATTENDED_UPGRADES_PATH = "/etc/apt/apt.conf.d/50unattended-upgrades"
AUTO_UPGRADES_PATH = "/etc/apt/apt.conf.d/20auto-upgrades"

# Project subtrees that hold config files readable by the containers
CONFIG_TREES = ("kamailio/config", "monitoring", "nginx")


# =============================================================================
# fail2ban
# =============================================================================

FAIL2BAN_DEFAULTS = """\
[DEFAULT]
# Ban for one hour after 5 failures within 10 minutes
bantime = 3600
findtime = 600
maxretry = 5
ignoreip = 127.0.0.1/8 ::1
"""

KAMAILIO_FILTER = """\
[Definition]
failregex = ^.*\\[.*\\]: NOTICE: <HOST>.*registration attempt.*$
            ^.*\\[.*\\]: WARNING: <HOST>.*authentication failed.*$
            ^.*\\[.*\\]: NOTICE: <HOST>.*failed to authenticate.*$
ignoreregex =
"""


@dataclass(frozen=True)
class Jail:
    """One fail2ban jail section."""

    name: str
    port: str
    logpath: str
    settings: tuple[tuple[str, str], ...] = ()

    def render(self) -> str:
        lines = [f"[{self.name}]", "enabled = true", f"port = {self.port}", f"logpath = {self.logpath}"]
        lines += [f"{key} = {value}" for key, value in self.settings]
        return "\n".join(lines) + "\n"


_SIP_JAIL_SETTINGS = (("protocol", "udp"), ("maxretry", "10"), ("findtime", "300"), ("bantime", "1800"))

JAILS: tuple[Jail, ...] = (
    Jail("sshd", "ssh", "/var/log/auth.log", (("maxretry", "3"),)),
    Jail("nginx-http-auth", "http,https", "/var/log/nginx/error.log"),
    Jail("nginx-limit-req", "http,https", "/var/log/nginx/error.log", (("maxretry", "10"),)),
    Jail("kamailio", "5060,5061", "/var/log/kamailio/kamailio.log", _SIP_JAIL_SETTINGS),
    Jail("asterisk", "5060,5061", "/var/log/asterisk/messages", _SIP_JAIL_SETTINGS),
)


def render_jail_config(jails: Sequence[Jail]) -> str:
    return "\n".join([FAIL2BAN_DEFAULTS, *(jail.render() for jail in jails)])


# =============================================================================
# sshd
# =============================================================================

SSHD_BLOCK_START = "# BEGIN somleng-deploy hardening"
SSHD_BLOCK_END = "# END somleng-deploy hardening"

SSHD_SETTINGS: tuple[tuple[str, str], ...] = (
    ("PermitRootLogin", "no"),
    ("PasswordAuthentication", "no"),
    ("PermitEmptyPasswords", "no"),
    ("ChallengeResponseAuthentication", "no"),
    ("UsePAM", "yes"),
    ("X11Forwarding", "no"),
    ("PrintMotd", "no"),
    ("ClientAliveInterval", "300"),
    ("ClientAliveCountMax", "2"),
    ("MaxAuthTries", "3"),
    ("MaxSessions", "2"),
    ("LoginGraceTime", "60"),
)


def apply_sshd_block(existing: str) -> str:
    """
    Put the managed settings block at the top of an sshd_config body.

    sshd keeps the first value it reads for a keyword, so the block goes
    before the distribution defaults and any `Include`. An older copy of
    the block is replaced, which makes the rewrite idempotent.
    """
    kept: list[str] = []
    inside = False
    for line in existing.splitlines(keepends=True):
        stripped = line.strip()
        if stripped == SSHD_BLOCK_START:
            inside = True
        elif stripped == SSHD_BLOCK_END:
            inside = False
        elif not inside:
            kept.append(line)

    block = [SSHD_BLOCK_START, *(f"{key} {value}" for key, value in SSHD_SETTINGS), SSHD_BLOCK_END]
    return "\n".join(block) + "\n" + "".join(kept)


# =============================================================================
# kernel
# =============================================================================

MODPROBE_BLACKLIST = """\
# Disable rare network protocols
install dccp /bin/true
install sctp /bin/true
install rds /bin/true
install tipc /bin/true
"""

SYSCTL_CONF = """\
# IP spoofing protection
net.ipv4.conf.default.rp_filter = 1
net.ipv4.conf.all.rp_filter = 1

# Ignore ICMP redirects
net.ipv4.conf.all.accept_redirects = 0
net.ipv6.conf.all.accept_redirects = 0
net.ipv4.conf.default.accept_redirects = 0
net.ipv6.conf.default.accept_redirects = 0

# Do not send redirects
net.ipv4.conf.all.send_redirects = 0
net.ipv4.conf.default.send_redirects = 0

# Disable source packet routing
net.ipv4.conf.all.accept_source_route = 0
net.ipv6.conf.all.accept_source_route = 0
net.ipv4.conf.default.accept_source_route = 0
net.ipv6.conf.default.accept_source_route = 0

# Log martians
net.ipv4.conf.all.log_martians = 1
net.ipv4.conf.default.log_martians = 1

# Ignore pings and directed broadcasts
net.ipv4.icmp_echo_ignore_all = 1
net.ipv4.icmp_echo_ignore_broadcasts = 1

# IPv6 unused
net.ipv6.conf.all.disable_ipv6 = 1
net.ipv6.conf.default.disable_ipv6 = 1

# SYN flood protection
net.ipv4.tcp_syncookies = 1
net.ipv4.tcp_max_syn_backlog = 2048
net.ipv4.tcp_synack_retries = 2
net.ipv4.tcp_syn_retries = 5

# Wider port range and larger buffers for RTP
net.ipv4.ip_local_port_range = 2000 65000
net.core.rmem_default = 31457280
net.core.rmem_max = 67108864
net.core.wmem_default = 31457280
net.core.wmem_max = 67108864
net.core.netdev_max_backlog = 5000
net.ipv4.tcp_window_scaling = 1
"""


# =============================================================================
# docker
# =============================================================================

DOCKER_DAEMON_SETTINGS: dict[str, object] = {
    "log-driver": "json-file",
    "log-opts": {"max-size": "10m", "max-file": "3"},
    "live-restore": True,
    "userland-proxy": False,
    "no-new-privileges": True,
    "storage-driver": "overlay2",
}


def merge_daemon_config(existing: str, seccomp_profile: str | None) -> str:
    """
    Overlay the hardened options on an existing daemon.json body.

    Raises:
        HardeningError: The existing file is not a JSON object.
    """
    current: object = {}
    if existing.strip():
        try:
            current = json.loads(existing)
        except json.JSONDecodeError as e:
            raise HardeningError(f"{DOCKER_DAEMON_PATH} is not valid JSON: {e}") from e
    if not isinstance(current, dict):
        raise HardeningError(f"{DOCKER_DAEMON_PATH} must hold a JSON object")

    merged = {**current, **DOCKER_DAEMON_SETTINGS}
    if seccomp_profile:
        merged["seccomp-profile"] = seccomp_profile
    return json.dumps(merged, indent=2) + "\n"


# =============================================================================
# logwatch / AIDE / unattended-upgrades
# =============================================================================

LOGWATCH_CONF = """\
LogDir = /var/log
TmpDir = /var/cache/logwatch
MailTo = root
MailFrom = Logwatch
Print = Yes
Save = /tmp/logwatch
Range = yesterday
Detail = Med
Service = All
mailer = "/usr/sbin/sendmail -t"
"""

LOGWATCH_CRON = """\
#!/bin/bash
/usr/sbin/logwatch --output mail --mailto root --detail high
"""

AIDE_CRON = """\
#!/bin/bash
/usr/bin/aide --check | /usr/bin/mail -s "AIDE Report $(hostname)" root
"""

UNATTENDED_UPGRADES = """\
Unattended-Upgrade::Allowed-Origins {
    "${distro_id}:${distro_codename}-security";
    "${distro_id}ESMApps:${distro_codename}-apps-security";
    "${distro_id}ESM:${distro_codename}-infra-security";
};

Unattended-Upgrade::Package-Blacklist {
};

Unattended-Upgrade::DevRelease "false";
Unattended-Upgrade::Remove-Unused-Dependencies "true";
Unattended-Upgrade::Automatic-Reboot "false";
Unattended-Upgrade::Automatic-Reboot-Time "02:00";
"""

AUTO_UPGRADES = """\
APT::Periodic::Update-Package-Lists "1";
APT::Periodic::Unattended-Upgrade "1";
APT::Periodic::AutocleanInterval "7";
"""


# =============================================================================
# Report
# =============================================================================

_REPORT_MARKS = {
    CheckStatus.OK: "✓",
    CheckStatus.WARNING: "!",
    CheckStatus.ERROR: "✗",
    CheckStatus.DISABLED: "-",
}

RECOMMENDATIONS = (
    "Regularly review logs in /var/log/",
    "Monitor Fail2Ban reports",
    "Keep system and Docker images updated",
    "Review and rotate SSL certificates",
    "Implement additional monitoring as needed",
    "Consider setting up VPN for administrative access",
    "Regularly backup configuration and data",
)

_WATCHED_SERVICES = ("docker", "nginx", "fail2ban", "ufw")


@dataclass
class HostFacts:
    """What the report says about the machine."""

    os_name: str
    kernel: str
    hostname: str
    firewall_status: str
    fail2ban_status: str
    listening: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)


def _tool_output(runner: CommandRunner, args: list[str]) -> str:
    if not runner.which(args[0]):
        return f"{args[0]} not installed"
    try:
        result = runner.run(args, check=False)
    except ExecutionError as e:
        return e.message
    return result.output or "(no output)"


def _os_name() -> str:
    try:
        return platform.freedesktop_os_release().get("PRETTY_NAME", platform.platform())
    except OSError:
        return platform.platform()


def listening_sockets() -> list[str]:
    """`addr:port/proto` for every listening TCP socket and bound UDP socket."""
    try:
        connections = psutil.net_connections(kind="inet")
    except psutil.Error:
        return ["(needs elevated privileges)"]
    sockets = set()
    for conn in connections:
        if not conn.laddr:
            continue
        if conn.type == socket.SOCK_STREAM and conn.status == psutil.CONN_LISTEN:
            sockets.add(f"{conn.laddr.ip}:{conn.laddr.port}/tcp")
        elif conn.type == socket.SOCK_DGRAM and not conn.raddr:
            sockets.add(f"{conn.laddr.ip}:{conn.laddr.port}/udp")
    return sorted(sockets)


def collect_host_facts(runner: CommandRunner) -> HostFacts:
    services: list[str] = []
    if runner.which("systemctl"):
        listing = runner.run(
            ["systemctl", "list-units", "--type=service", "--state=active", "--no-legend", "--plain"],
            check=False,
        )
        for line in listing.stdout.splitlines():
            unit = line.split(maxsplit=1)[0] if line.strip() else ""
            if any(name in unit for name in _WATCHED_SERVICES):
                services.append(unit)

    return HostFacts(
        os_name=_os_name(),
        kernel=platform.release(),
        hostname=socket.gethostname(),
        firewall_status=_tool_output(runner, ["ufw", "status"]),
        fail2ban_status=_tool_output(runner, ["fail2ban-client", "status"]),
        listening=listening_sockets(),
        services=services,
    )


def render_security_report(
    checks: Sequence[HealthCheck],
    facts: HostFacts,
    generated: datetime | None = None,
) -> str:
    generated = generated or datetime.now()
    lines = [
        "Somleng CPaaS Security Hardening Report",
        f"Generated: {generated.isoformat(sep=' ', timespec='seconds')}",
        "========================================",
        "",
        "System Information:",
        f"- OS: {facts.os_name}",
        f"- Kernel: {facts.kernel}",
        f"- Hostname: {facts.hostname}",
        "",
        "Security Measures:",
    ]
    lines += [f"{_REPORT_MARKS[c.status]} {c.name}: {c.message}" for c in checks]
    lines += [
        "",
        "Firewall Status:",
        facts.firewall_status,
        "",
        "Fail2Ban Status:",
        facts.fail2ban_status,
        "",
        "Open Ports:",
        *(facts.listening or ["(none)"]),
        "",
        "Active Services:",
        *(facts.services or ["(none)"]),
        "",
        "Recommendations:",
        *(f"{i}. {text}" for i, text in enumerate(RECOMMENDATIONS, start=1)),
        "",
    ]
    return "\n".join(lines)


@dataclass
class HardeningReport:
    """Outcome of a `security harden` run."""

    checks: list[HealthCheck] = field(default_factory=list)
    text: str = ""
    path: Path | None = None

    @property
    def passed(self) -> bool:
        return not any(c.failed for c in self.checks)

    @property
    def failed_steps(self) -> list[str]:
        return [c.name for c in self.checks if c.failed]


# =============================================================================
# Hardener
# =============================================================================

class HostHardener:
    """
    Applies the hardening steps to the local host.

    Args:
        config: Deployment configuration (project and backup directories).
        runner: Command runner (dry-run aware).
        root: Filesystem root that system files are written under.
        report_path: Where the plaintext report is written.
        http_client: Client used to download the Docker seccomp profile.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        runner: CommandRunner,
        root: Path = Path("/"),
        report_path: Path = Path(SECURITY_REPORT_PATH),
        http_client: httpx.Client | None = None,
    ) -> None:
        self.config = config
        self.runner = runner
        self.root = root
        self.report_path = report_path
        self.http_client = http_client
        self._apt_updated = False

    @property
    def dry_run(self) -> bool:
        return self.runner.dry_run

    def steps(self) -> dict[str, Callable[[], HealthCheck]]:
        steps = {
            "firewall": self.configure_firewall,
            "fail2ban": self.configure_fail2ban,
            "ssh": self.harden_ssh,
            "kernel": self.harden_kernel,
            "docker": self.secure_docker,
            "log-monitoring": self.setup_log_monitoring,
            "intrusion-detection": self.setup_intrusion_detection,
            "permissions": self.secure_file_permissions,
            "auto-updates": self.setup_automatic_updates,
        }
        return {name: steps[name] for name in HARDENING_STEPS}

    def harden(self, skip: Sequence[str] = ()) -> HardeningReport:
        """
        Run every step not in `skip`, then write the report.

        Raises:
            ConfigurationError: `skip` names an unknown step.
            HardeningError: Not running as root (outside dry runs).
        """
        unknown = sorted(set(skip) - set(HARDENING_STEPS))
        if unknown:
            raise ConfigurationError(
                f"Unknown hardening step(s): {', '.join(unknown)}", {"steps": list(HARDENING_STEPS)}
            )
        if not self.dry_run and os.geteuid() != 0:
            raise HardeningError("Security hardening must be run as root")

        logger.info("🔒 Hardening host security...")
        report = HardeningReport()
        for name, step in self.steps().items():
            if name in skip:
                report.checks.append(HealthCheck(name, CheckStatus.DISABLED, "Skipped on request"))
                continue
            try:
                check = step()
            except SomlengDeployError as e:
                check = HealthCheck(name, CheckStatus.ERROR, e.message, details=e.details)
            except OSError as e:
                check = HealthCheck(name, CheckStatus.ERROR, str(e))
            if check.failed:
                logger.error(f"❌ Hardening step '{name}' failed: {check.message}")
            report.checks.append(check)

        report.text = render_security_report(report.checks, collect_host_facts(self.runner))
        if self.dry_run:
            logger.info(f"[dry-run] write {self.report_path}")
        else:
            self.report_path.parent.mkdir(parents=True, exist_ok=True)
            self.report_path.write_text(report.text)
            report.path = self.report_path

        if report.passed:
            logger.success("✅ Security hardening completed")
        else:
            logger.error(f"❌ Hardening steps failed: {', '.join(report.failed_steps)}")
        return report

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _path(self, system_path: str) -> Path:
        return self.root / system_path.lstrip("/")

    def _write(self, system_path: str, text: str, mode: int | None = None) -> Path:
        target = self._path(system_path)
        if self.dry_run:
            logger.info(f"[dry-run] write {target}")
            return target
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text)
        if mode is not None:
            target.chmod(mode)
        logger.debug(f"Wrote {target}")
        return target

    def _chmod(self, path: Path, mode: int) -> None:
        if self.dry_run:
            logger.info(f"[dry-run] chmod {mode:o} {path}")
        else:
            path.chmod(mode)

    def _install(self, package: str, binary: str) -> bool:
        """Make sure `binary` exists, installing `package` with apt-get when it does not."""
        if self.runner.which(binary):
            return True
        if not self.runner.which("apt-get"):
            logger.warning(f"⚠️ {binary} is not installed and apt-get is unavailable")
            return False
        if not self._apt_updated:
            self.runner.run(["apt-get", "update"], timeout=None)
            self._apt_updated = True
        logger.info(f"📦 Installing {package}...")
        self.runner.run(["apt-get", "install", "-y", package], timeout=None)
        return True

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------

    def configure_firewall(self) -> HealthCheck:
        if not configure_firewall(self.runner, hardened=True):
            return HealthCheck("firewall", CheckStatus.WARNING, "ufw not installed, firewall left unchanged")
        return HealthCheck("firewall", CheckStatus.OK, "ufw deny-by-default with Somleng ports open")

    def configure_fail2ban(self) -> HealthCheck:
        logger.info("🚫 Configuring Fail2Ban...")
        if not self._install("fail2ban", "fail2ban-client"):
            return HealthCheck("fail2ban", CheckStatus.WARNING, "fail2ban not installed")

        # fail2ban refuses to start when a jail's log file is missing
        jails = [jail for jail in JAILS if self._path(jail.logpath).exists()]
        for jail in JAILS:
            if jail not in jails:
                logger.warning(f"⚠️ Skipping jail {jail.name}: {jail.logpath} not found")

        self._write(FAIL2BAN_JAIL_PATH, render_jail_config(jails))
        self._write(FAIL2BAN_KAMAILIO_FILTER_PATH, KAMAILIO_FILTER)
        self.runner.run(["systemctl", "restart", "fail2ban"])
        self.runner.run(["systemctl", "enable", "fail2ban"])

        if not jails:
            return HealthCheck("fail2ban", CheckStatus.WARNING, "Running, but no jail has a log file to watch")
        return HealthCheck("fail2ban", CheckStatus.OK, f"Jails: {', '.join(j.name for j in jails)}")

    def harden_ssh(self) -> HealthCheck:
        logger.info("🔑 Hardening SSH configuration...")
        config_path = self._path(SSHD_CONFIG_PATH)
        if not config_path.is_file():
            return HealthCheck("ssh", CheckStatus.WARNING, f"{SSHD_CONFIG_PATH} not found, SSH left unchanged")

        current = config_path.read_text()
        updated = apply_sshd_block(current)
        if updated == current:
            return HealthCheck("ssh", CheckStatus.OK, "Already hardened")

        if self.dry_run:
            logger.info(f"[dry-run] rewrite {config_path}")
        else:
            config_path.with_name("sshd_config.backup").write_text(current)
            config_path.write_text(updated)

        validation = self.runner.run(["sshd", "-t", "-f", str(config_path)], check=False)
        if not validation.success:
            if not self.dry_run:
                config_path.write_text(current)
            raise HardeningError(
                "sshd rejected the hardened configuration; previous file restored",
                {"stderr": validation.stderr[:500]},
            )

        self.runner.run(["systemctl", "restart", "sshd"])
        return HealthCheck("ssh", CheckStatus.OK, "Root login and password authentication disabled")

    def harden_kernel(self) -> HealthCheck:
        logger.info("🧱 Applying kernel security parameters...")
        self._write(MODPROBE_BLACKLIST_PATH, MODPROBE_BLACKLIST)
        sysctl_file = self._write(SYSCTL_CONF_PATH, SYSCTL_CONF)
        if not self.runner.which("sysctl"):
            return HealthCheck(
                "kernel", CheckStatus.WARNING, f"{SYSCTL_CONF_PATH} written; sysctl unavailable to load it"
            )
        self.runner.run(["sysctl", "-p", str(sysctl_file)])
        return HealthCheck("kernel", CheckStatus.OK, "sysctl hardening loaded, rare protocols blacklisted")

    def _download_seccomp_profile(self) -> str | None:
        """Fetch Docker's default seccomp profile. Returns its host path, or None."""
        if self.dry_run:
            logger.info(f"[dry-run] download {SECCOMP_PROFILE_URL}")
            return SECCOMP_PROFILE_PATH
        try:
            if self.http_client is not None:
                response = self.http_client.get(SECCOMP_PROFILE_URL, timeout=30, follow_redirects=True)
            else:
                response = httpx.get(SECCOMP_PROFILE_URL, timeout=30, follow_redirects=True)
            response.raise_for_status()
            json.loads(response.text)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Seccomp profile download failed ({e}); Docker keeps its built-in profile")
            return None
        self._write(SECCOMP_PROFILE_PATH, response.text)
        return SECCOMP_PROFILE_PATH

    def secure_docker(self) -> HealthCheck:
        logger.info("🐳 Applying Docker daemon security options...")
        if not self.runner.which("docker"):
            return HealthCheck("docker", CheckStatus.WARNING, "Docker not installed")

        daemon_file = self._path(DOCKER_DAEMON_PATH)
        existing = daemon_file.read_text() if daemon_file.is_file() else ""
        merged = merge_daemon_config(existing, self._download_seccomp_profile())
        self._write(DOCKER_DAEMON_PATH, merged)

        logger.warning("⚠️ Restarting Docker; running containers stop unless live-restore was already on")
        self.runner.run(["systemctl", "restart", "docker"])
        return HealthCheck("docker", CheckStatus.OK, "no-new-privileges, live-restore and log rotation enabled")

    def setup_log_monitoring(self) -> HealthCheck:
        logger.info("📜 Setting up log monitoring...")
        if not self._install("logwatch", "logwatch"):
            return HealthCheck("log-monitoring", CheckStatus.WARNING, "logwatch not installed")
        self._write(LOGWATCH_CONF_PATH, LOGWATCH_CONF)
        self._write(LOGWATCH_CRON_PATH, LOGWATCH_CRON, mode=0o755)
        return HealthCheck("log-monitoring", CheckStatus.OK, "Daily logwatch report mailed to root")

    def setup_intrusion_detection(self) -> HealthCheck:
        logger.info("🕵️ Setting up intrusion detection...")
        if not self._install("aide", "aide"):
            return HealthCheck("intrusion-detection", CheckStatus.WARNING, "AIDE not installed")
        self._write(AIDE_CRON_PATH, AIDE_CRON, mode=0o755)

        database = self._path(AIDE_DB_PATH)
        if database.exists():
            return HealthCheck("intrusion-detection", CheckStatus.OK, "AIDE database present, daily check scheduled")

        self.runner.run(["aideinit", "-y", "-f"], timeout=None)
        fresh = self._path(AIDE_DB_NEW_PATH)
        if not self.dry_run and fresh.exists():
            fresh.replace(database)
        return HealthCheck("intrusion-detection", CheckStatus.OK, "AIDE database initialized, daily check scheduled")

    def secure_file_permissions(self) -> HealthCheck:
        """Config trees 644/755, scripts 755, then secrets 600 and backups 700."""
        logger.info("🔐 Securing file permissions...")
        project = self.config.project_dir
        changes: list[tuple[Path, int]] = []

        for subtree in CONFIG_TREES:
            tree = project / subtree
            if tree.is_dir():
                for path in sorted(tree.rglob("*")):
                    if not path.is_symlink():
                        changes.append((path, 0o755 if path.is_dir() else 0o644))

        scripts = project / "scripts"
        if scripts.is_dir():
            changes += [(path, 0o755) for path in sorted(scripts.glob("*.sh"))]

        env_file = self.config.env_file or project / ENV_FILE_NAME
        ssl_dir = self.config.ssl_dir
        secrets = [env_file, *sorted(ssl_dir.glob("*.pem")), *sorted(ssl_dir.glob("*.key"))]
        changes += [(path, 0o600) for path in secrets if path.is_file()]

        if self.config.backup_dir.is_dir():
            changes.append((self.config.backup_dir, 0o700))

        for path, mode in changes:
            self._chmod(path, mode)
        return HealthCheck("permissions", CheckStatus.OK, f"Permissions set on {len(changes)} path(s)")

    def setup_automatic_updates(self) -> HealthCheck:
        logger.info("⬆️ Setting up automatic security updates...")
        if not self._install("unattended-upgrades", "unattended-upgrade"):
            return HealthCheck("auto-updates", CheckStatus.WARNING, "unattended-upgrades not installed")
        self._write(UNATTENDED_UPGRADES_PATH, UNATTENDED_UPGRADES)
        self._write(AUTO_UPGRADES_PATH, AUTO_UPGRADES)
        return HealthCheck("auto-updates", CheckStatus.OK, "Security updates install daily")
