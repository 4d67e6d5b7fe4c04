"""
Tests for host security hardening.
"""
import json
import stat
from datetime import datetime

import httpx
import pytest

from conftest import FakeRunner, fail, ok
from somleng_deploy.config.constants import HARDENING_STEPS, SECCOMP_PROFILE_URL
from somleng_deploy.core.exceptions import ConfigurationError, HardeningError
from somleng_deploy.core.types import CheckStatus, HealthCheck
from somleng_deploy.security import hardening
from somleng_deploy.security.hardening import (
    JAILS,
    SSHD_BLOCK_END,
    SSHD_BLOCK_START,
    HostFacts,
    HostHardener,
    apply_sshd_block,
    merge_daemon_config,
    render_jail_config,
    render_security_report,
)

HOST_TOOLS = (
    "apt-get", "ufw", "fail2ban-client", "sshd", "sysctl", "systemctl",
    "docker", "logwatch", "aide", "unattended-upgrade",
)

DISTRO_SSHD_CONFIG = "Include /etc/ssh/sshd_config.d/*.conf\n\nPasswordAuthentication yes\nSubsystem sftp internal-sftp\n"
SECCOMP_PROFILE = '{"defaultAction": "SCMP_ACT_ERRNO"}'


def mode_of(path):
    return stat.S_IMODE(path.stat().st_mode)


@pytest.fixture
def host_root(tmp_path):
    """A fake filesystem root with a distro sshd_config and an auth log."""
    root = tmp_path / "host"
    (root / "etc" / "ssh").mkdir(parents=True)
    (root / "etc" / "ssh" / "sshd_config").write_text(DISTRO_SSHD_CONFIG)
    (root / "var" / "log").mkdir(parents=True)
    (root / "var" / "log" / "auth.log").write_text("")
    return root


@pytest.fixture
def as_root(monkeypatch):
    monkeypatch.setattr(hardening.os, "geteuid", lambda: 0)


@pytest.fixture(autouse=True)
def quiet_host_facts(monkeypatch):
    """Keep the real socket table out of reports."""
    monkeypatch.setattr(hardening, "listening_sockets", lambda: ["0.0.0.0:443/tcp"])


def seccomp_client(status_code=200, body=SECCOMP_PROFILE):
    def handler(request):
        assert str(request.url) == SECCOMP_PROFILE_URL
        return httpx.Response(status_code, text=body)

    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def make_hardener(config, host_root, tmp_path):
    def _make(runner=None, client=None):
        return HostHardener(
            config,
            runner if runner is not None else FakeRunner(binaries=HOST_TOOLS),
            root=host_root,
            report_path=tmp_path / "security_report.txt",
            http_client=client or seccomp_client(),
        )

    return _make


class TestApplySshdBlock:
    """Tests for apply_sshd_block."""

    def test_block_goes_first(self):
        updated = apply_sshd_block(DISTRO_SSHD_CONFIG)
        assert updated.startswith(SSHD_BLOCK_START + "\n")
        assert updated.endswith(DISTRO_SSHD_CONFIG)
        assert "PermitRootLogin no" in updated
        assert updated.index("PasswordAuthentication no") < updated.index("PasswordAuthentication yes")

    def test_idempotent(self):
        once = apply_sshd_block(DISTRO_SSHD_CONFIG)
        assert apply_sshd_block(once) == once

    def test_older_block_replaced(self):
        stale = f"{SSHD_BLOCK_START}\nMaxAuthTries 6\n{SSHD_BLOCK_END}\n{DISTRO_SSHD_CONFIG}"
        updated = apply_sshd_block(stale)
        assert "MaxAuthTries 6" not in updated
        assert updated.count(SSHD_BLOCK_START) == 1


class TestJailConfig:
    """Tests for render_jail_config."""

    def test_sections(self):
        text = render_jail_config(JAILS)
        assert text.startswith("[DEFAULT]\n")
        assert "bantime = 3600" in text
        assert "[sshd]\nenabled = true\nport = ssh\nlogpath = /var/log/auth.log\nmaxretry = 3\n" in text
        assert "[kamailio]" in text
        assert "protocol = udp" in text

    def test_defaults_only(self):
        assert render_jail_config([]).strip().splitlines()[0] == "[DEFAULT]"


class TestMergeDaemonConfig:
    """Tests for merge_daemon_config."""

    def test_fresh(self):
        merged = json.loads(merge_daemon_config("", "/etc/docker/seccomp.json"))
        assert merged["no-new-privileges"] is True
        assert merged["live-restore"] is True
        assert merged["userland-proxy"] is False
        assert merged["log-opts"] == {"max-size": "10m", "max-file": "3"}
        assert merged["seccomp-profile"] == "/etc/docker/seccomp.json"

    def test_existing_options_kept(self):
        existing = json.dumps({"registry-mirrors": ["https://mirror.example.com"], "live-restore": False})
        merged = json.loads(merge_daemon_config(existing, None))
        assert merged["registry-mirrors"] == ["https://mirror.example.com"]
        assert merged["live-restore"] is True
        assert "seccomp-profile" not in merged

    @pytest.mark.parametrize("existing", ["{not json", "[1, 2]"])
    def test_unusable_existing_file(self, existing):
        with pytest.raises(HardeningError):
            merge_daemon_config(existing, None)


class TestSecurityReport:
    """Tests for render_security_report."""

    def test_render(self):
        facts = HostFacts(
            os_name="Ubuntu 22.04.4 LTS",
            kernel="5.15.0-105-generic",
            hostname="somleng-1",
            firewall_status="Status: active",
            fail2ban_status="Number of jail: 1",
            listening=["0.0.0.0:5060/udp"],
            services=[],
        )
        checks = [
            HealthCheck("firewall", CheckStatus.OK, "ufw deny-by-default with Somleng ports open"),
            HealthCheck("kernel", CheckStatus.ERROR, "boom"),
            HealthCheck("docker", CheckStatus.DISABLED, "Skipped on request"),
        ]

        text = render_security_report(checks, facts, generated=datetime(2026, 1, 2, 3, 4, 5))

        assert "Generated: 2026-01-02 03:04:05" in text
        assert "- OS: Ubuntu 22.04.4 LTS" in text
        assert "✓ firewall: ufw deny-by-default with Somleng ports open" in text
        assert "✗ kernel: boom" in text
        assert "- docker: Skipped on request" in text
        assert "Open Ports:\n0.0.0.0:5060/udp\n" in text
        assert "Active Services:\n(none)\n" in text
        assert "7. Regularly backup configuration and data" in text


class TestHostHardener:
    """Tests for HostHardener.harden."""

    def test_all_steps_applied(self, make_hardener, host_root, as_root, tmp_path):
        runner = FakeRunner(binaries=HOST_TOOLS)
        report = make_hardener(runner).harden()

        assert report.passed
        assert [c.name for c in report.checks] == list(HARDENING_STEPS)
        assert all(c.status == CheckStatus.OK for c in report.checks)
        assert report.path == tmp_path / "security_report.txt"
        assert "✓ ssh: Root login and password authentication disabled" in report.path.read_text()

        assert runner.calls[0] == ["ufw", "--force", "reset"]
        assert ["systemctl", "restart", "fail2ban"] in runner.calls
        assert ["systemctl", "restart", "sshd"] in runner.calls
        assert ["sysctl", "-p", str(host_root / "etc/sysctl.d/99-security.conf")] in runner.calls
        assert ["systemctl", "restart", "docker"] in runner.calls
        assert runner.called("aideinit")
        assert not runner.called("apt-get")

    def test_files_written(self, make_hardener, host_root, as_root):
        make_hardener().harden()

        sshd_config = (host_root / "etc/ssh/sshd_config").read_text()
        assert sshd_config.startswith(SSHD_BLOCK_START)
        assert (host_root / "etc/ssh/sshd_config.backup").read_text() == DISTRO_SSHD_CONFIG

        jail = (host_root / "etc/fail2ban/jail.local").read_text()
        assert "[sshd]" in jail
        # no log file for these on this host
        assert "[kamailio]" not in jail
        assert "[nginx-http-auth]" not in jail
        assert (host_root / "etc/fail2ban/filter.d/kamailio.conf").exists()

        daemon = json.loads((host_root / "etc/docker/daemon.json").read_text())
        assert daemon["seccomp-profile"] == "/etc/docker/seccomp.json"
        assert (host_root / "etc/docker/seccomp.json").read_text() == SECCOMP_PROFILE

        assert "tcp_syncookies = 1" in (host_root / "etc/sysctl.d/99-security.conf").read_text()
        assert "install sctp /bin/true" in (host_root / "etc/modprobe.d/blacklist-rare-network.conf").read_text()
        assert mode_of(host_root / "etc/cron.daily/00logwatch") == 0o755
        assert mode_of(host_root / "etc/cron.daily/aide") == 0o755
        assert "-security" in (host_root / "etc/apt/apt.conf.d/50unattended-upgrades").read_text()
        assert 'Unattended-Upgrade "1"' in (host_root / "etc/apt/apt.conf.d/20auto-upgrades").read_text()

    def test_failing_step_does_not_stop_the_rest(self, make_hardener, as_root):
        runner = FakeRunner(binaries=HOST_TOOLS)
        runner.respond(["sysctl", "-p"], fail(255, "sysctl: permission denied"))

        report = make_hardener(runner).harden()

        assert not report.passed
        assert report.failed_steps == ["kernel"]
        assert ["systemctl", "restart", "docker"] in runner.calls
        assert "✗ kernel:" in report.text

    def test_rejected_sshd_config_restored(self, make_hardener, host_root, as_root):
        runner = FakeRunner(binaries=HOST_TOOLS)
        runner.respond(["sshd", "-t"], fail(255, "Bad configuration option"))

        report = make_hardener(runner).harden()

        assert report.failed_steps == ["ssh"]
        assert (host_root / "etc/ssh/sshd_config").read_text() == DISTRO_SSHD_CONFIG
        assert ["systemctl", "restart", "sshd"] not in runner.calls

    def test_ssh_rerun_is_noop(self, make_hardener):
        runner = FakeRunner(binaries=HOST_TOOLS)
        hardener = make_hardener(runner)

        hardener.harden_ssh()
        check = hardener.harden_ssh()

        assert check.message == "Already hardened"
        assert runner.calls.count(["systemctl", "restart", "sshd"]) == 1

    def test_missing_sshd_config(self, make_hardener, host_root):
        (host_root / "etc/ssh/sshd_config").unlink()
        check = make_hardener().harden_ssh()
        assert check.status == CheckStatus.WARNING

    def test_missing_tools_are_warnings(self, make_hardener, as_root):
        runner = FakeRunner(binaries=("systemctl",))

        report = make_hardener(runner).harden()

        assert report.passed
        statuses = {c.name: c.status for c in report.checks}
        for name in ("firewall", "fail2ban", "docker", "log-monitoring", "intrusion-detection", "auto-updates"):
            assert statuses[name] == CheckStatus.WARNING
        assert statuses["kernel"] == CheckStatus.WARNING
        assert not runner.called("apt-get")

    def test_packages_installed_with_one_update(self, make_hardener, as_root):
        runner = FakeRunner(binaries=("apt-get", "systemctl", "sshd", "sysctl"))

        report = make_hardener(runner).harden()

        assert report.passed
        assert runner.calls.count(["apt-get", "update"]) == 1
        assert ["apt-get", "install", "-y", "fail2ban"] in runner.calls
        assert ["apt-get", "install", "-y", "aide"] in runner.calls
        assert ["apt-get", "install", "-y", "unattended-upgrades"] in runner.calls
        assert runner.options[runner.calls.index(["apt-get", "install", "-y", "aide"])]["timeout"] is None

    def test_seccomp_download_failure(self, make_hardener, host_root, as_root):
        hardener = make_hardener(client=seccomp_client(status_code=503, body="unavailable"))

        check = hardener.secure_docker()

        assert check.status == CheckStatus.OK
        daemon = json.loads((host_root / "etc/docker/daemon.json").read_text())
        assert "seccomp-profile" not in daemon
        assert not (host_root / "etc/docker/seccomp.json").exists()

    def test_existing_aide_database_kept(self, make_hardener, host_root):
        database = host_root / "var/lib/aide/aide.db"
        database.parent.mkdir(parents=True)
        database.write_text("baseline")
        runner = FakeRunner(binaries=HOST_TOOLS)

        make_hardener(runner).setup_intrusion_detection()

        assert not runner.called("aideinit")
        assert database.read_text() == "baseline"

    def test_aide_database_moved_into_place(self, make_hardener, host_root):
        runner = FakeRunner(binaries=HOST_TOOLS)
        fresh = host_root / "var/lib/aide/aide.db.new"

        def init(args):
            fresh.parent.mkdir(parents=True, exist_ok=True)
            fresh.write_text("new baseline")
            return ok()

        runner.respond(["aideinit"], init)
        make_hardener(runner).setup_intrusion_detection()

        assert (host_root / "var/lib/aide/aide.db").read_text() == "new baseline"
        assert not fresh.exists()

    def test_skip(self, make_hardener, as_root):
        runner = FakeRunner(binaries=HOST_TOOLS)

        report = make_hardener(runner).harden(skip=("docker", "ssh"))

        statuses = {c.name: c.status for c in report.checks}
        assert statuses["docker"] == CheckStatus.DISABLED
        assert statuses["ssh"] == CheckStatus.DISABLED
        assert not runner.called("restart", "docker")
        assert not runner.called("sshd")

    def test_unknown_skip(self, make_hardener, as_root):
        with pytest.raises(ConfigurationError, match="selinux"):
            make_hardener().harden(skip=("selinux",))

    def test_requires_root(self, make_hardener, monkeypatch):
        monkeypatch.setattr(hardening.os, "geteuid", lambda: 1000)
        runner = FakeRunner(binaries=HOST_TOOLS)

        with pytest.raises(HardeningError, match="root"):
            make_hardener(runner).harden()
        assert runner.calls == []

    def test_dry_run_touches_nothing(self, make_hardener, host_root, config, monkeypatch):
        monkeypatch.setattr(hardening.os, "geteuid", lambda: 1000)
        env_mode = mode_of(config.env_file)
        runner = FakeRunner(binaries=HOST_TOOLS, dry_run=True)

        report = make_hardener(runner).harden()

        assert report.passed
        assert report.path is None
        assert "Security Measures:" in report.text
        assert not (host_root / "etc/fail2ban").exists()
        assert not (host_root / "etc/docker").exists()
        assert (host_root / "etc/ssh/sshd_config").read_text() == DISTRO_SSHD_CONFIG
        assert mode_of(config.env_file) == env_mode


class TestFilePermissions:
    """Tests for HostHardener.secure_file_permissions."""

    def test_modes(self, make_hardener, config):
        project = config.project_dir
        ssl_dir = config.ssl_dir
        ssl_dir.mkdir(parents=True)
        key = ssl_dir / "privkey.pem"
        key.write_text("key")
        key.chmod(0o644)
        nginx_conf = project / "nginx" / "nginx.conf"
        nginx_conf.write_text("events {}")
        nginx_conf.chmod(0o600)
        script = project / "scripts" / "deploy.sh"
        script.parent.mkdir()
        script.write_text("#!/bin/bash")
        script.chmod(0o644)
        config.backup_dir.mkdir()
        config.env_file.chmod(0o644)

        check = make_hardener().secure_file_permissions()

        assert check.status == CheckStatus.OK
        assert mode_of(config.env_file) == 0o600
        assert mode_of(key) == 0o600
        assert mode_of(nginx_conf) == 0o644
        assert mode_of(ssl_dir) == 0o755
        assert mode_of(script) == 0o755
        assert mode_of(config.backup_dir) == 0o700

    def test_bare_project(self, make_hardener, config):
        check = make_hardener().secure_file_permissions()
        assert check.message == "Permissions set on 1 path(s)"
