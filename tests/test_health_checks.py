"""
Tests for the health-check suite.
"""
from collections import namedtuple
from unittest.mock import patch

import httpx
import psutil
import pytest

from conftest import FakeRunner, fail, ok
from somleng_deploy.core.types import CheckStatus
from somleng_deploy.health.checks import (
    HealthReport,
    check_containers,
    check_database,
    check_docker,
    check_ports,
    check_redis,
    check_ssl,
    check_tier_probes,
    check_web_api,
    run_health_checks,
)
from somleng_deploy.health.probes import ProbeKind, ProbeSpec
from somleng_deploy.orchestration.services import ServiceCatalog, ServiceDescriptor, ServiceTier

Addr = namedtuple("Addr", "ip port")
Conn = namedtuple("Conn", "laddr status")
Usage = namedtuple("Usage", "percent")


def catalog():
    return ServiceCatalog(tiers=(
        ServiceTier(name="datastores", rank=0, services=(
            ServiceDescriptor(name="db", container="somleng_postgres"),
            ServiceDescriptor(name="bootstrap", one_shot=True),
        )),
        ServiceTier(name="telephony", rank=1, services=(
            ServiceDescriptor(
                name="freeswitch1",
                probe=ProbeSpec(kind=ProbeKind.COMMAND, command=("fs_cli", "-x", "status"), expect="UP"),
            ),
            ServiceDescriptor(name="media_proxy", probe=ProbeSpec(kind=ProbeKind.NONE)),
        )),
    ))


def http_client(status_by_url=None, default=200):
    status_by_url = status_by_url or {}

    def handler(request):
        status = status_by_url.get(str(request.url), default)
        if isinstance(status, Exception):
            raise status
        return httpx.Response(status, text="ok")

    return httpx.Client(transport=httpx.MockTransport(handler))


class TestDockerChecks:
    """Tests for docker and container checks."""

    def test_docker_missing(self):
        check = check_docker(FakeRunner(binaries=()))
        assert check.status == CheckStatus.ERROR
        assert check.critical

    def test_docker_daemon_down(self, runner):
        runner.respond(["docker", "info"], fail())
        assert check_docker(runner).status == CheckStatus.ERROR

    def test_docker_ok(self, runner):
        assert check_docker(runner).status == CheckStatus.OK

    def test_containers_all_running(self, runner):
        runner.respond(["docker", "ps"], ok("somleng_postgres\nsomleng_freeswitch1\nsomleng_media_proxy"))
        runner.respond(["docker", "inspect"], ok("healthy"))
        assert check_containers(runner, catalog()).status == CheckStatus.OK

    def test_containers_missing(self, runner):
        runner.respond(["docker", "ps"], ok("somleng_postgres"))
        check = check_containers(runner, catalog())
        assert check.status == CheckStatus.ERROR
        assert check.details["missing"] == ["somleng_freeswitch1", "somleng_media_proxy"]

    def test_containers_unhealthy(self, runner):
        runner.respond(["docker", "ps"], ok("somleng_postgres\nsomleng_freeswitch1\nsomleng_media_proxy"))
        runner.respond(["docker", "inspect"], ok(""))
        runner.respond(["somleng_postgres"], ok("unhealthy"))
        check = check_containers(runner, catalog())
        assert check.status == CheckStatus.WARNING
        assert check.details["unhealthy"] == {"somleng_postgres": "unhealthy"}


class TestDatastoreChecks:
    """Tests for database and redis checks."""

    def test_database_ok(self, runner, compose, config):
        runner.respond(["psql"], ok("  42"))
        check = check_database(compose, config)
        assert check.status == CheckStatus.OK
        assert check.details["tables"] == 42

    def test_database_empty(self, runner, compose, config):
        runner.respond(["psql"], ok("0"))
        assert check_database(compose, config).status == CheckStatus.WARNING

    def test_database_down(self, runner, compose, config):
        runner.respond(["pg_isready"], fail(2))
        assert check_database(compose, config).status == CheckStatus.ERROR

    def test_redis_ok(self, runner, compose, config):
        runner.respond(["redis-cli"], ok("PONG"))
        assert check_redis(compose, config).status == CheckStatus.OK

    def test_redis_password(self, runner, compose, project_dir, write_env):
        from somleng_deploy.config import load_config

        write_env(project_dir, REDIS_PASSWORD="redis-pass")
        runner.respond(["redis-cli"], ok("PONG"))
        check_redis(compose, load_config(project_dir))
        assert runner.called("redis-cli", "--no-auth-warning", "-a", "redis-pass", "ping")

    def test_redis_down(self, runner, compose, config):
        runner.respond(["redis-cli"], ok("Could not connect"))
        assert check_redis(compose, config).status == CheckStatus.ERROR


class TestHttpChecks:
    """Tests for web API and tier probe checks."""

    def test_web_api_https(self, config):
        assert check_web_api(config, http_client()).status == CheckStatus.OK

    def test_web_api_http_fallback(self, config):
        client = http_client({"https://somleng.example.com/health": httpx.ConnectError("tls")})
        check = check_web_api(config, client)
        assert check.status == CheckStatus.OK
        assert "(HTTP)" in check.message

    def test_web_api_down(self, config):
        assert check_web_api(config, http_client(default=502)).status == CheckStatus.ERROR

    def test_tier_probes(self, runner, compose, config):
        runner.respond(["fs_cli"], ok("UP 0 years, 0 days"))
        check = check_tier_probes("sip_services", "telephony", catalog(), compose, config)
        assert check.status == CheckStatus.OK
        assert "1 telephony services" in check.message

    def test_tier_probe_failing(self, runner, compose, config):
        runner.respond(["fs_cli"], fail(1))
        check = check_tier_probes("sip_services", "telephony", catalog(), compose, config)
        assert check.status == CheckStatus.ERROR
        assert check.details["failing"] == ["freeswitch1"]

    def test_missing_tier(self, compose, config):
        check = check_tier_probes("monitoring", "monitoring", catalog(), compose, config)
        assert check.status == CheckStatus.DISABLED


class TestSslCheck:
    """Tests for check_ssl."""

    def test_not_installed(self, config, runner):
        assert check_ssl(config, runner).status == CheckStatus.WARNING

    @pytest.mark.parametrize("date,status", [
        ("Jan  1 00:00:00 2000 GMT", CheckStatus.ERROR),
        ("Jan  1 00:00:00 2999 GMT", CheckStatus.OK),
    ])
    def test_expiry(self, config, runner, date, status):
        config.ssl_dir.mkdir(parents=True)
        (config.ssl_dir / "fullchain.pem").write_text("cert")
        (config.ssl_dir / "privkey.pem").write_text("key")
        runner.respond(["-enddate"], ok(f"notAfter={date}\nsubject=CN = x\nissuer=CN = x"))
        assert check_ssl(config, runner).status == status


class TestHostChecks:
    """Tests for port and resource checks."""

    def test_ports_listening(self):
        conns = [Conn(Addr("0.0.0.0", p), psutil.CONN_LISTEN) for p in (80, 443)]
        with patch("somleng_deploy.health.checks.psutil.net_connections", return_value=conns):
            assert check_ports({80: "HTTP", 443: "HTTPS"}).status == CheckStatus.OK

    def test_ports_missing(self):
        conns = [Conn(Addr("0.0.0.0", 80), psutil.CONN_LISTEN), Conn(Addr("10.0.0.1", 443), "ESTABLISHED")]
        with patch("somleng_deploy.health.checks.psutil.net_connections", return_value=conns):
            check = check_ports({80: "HTTP", 443: "HTTPS"})
        assert check.status == CheckStatus.WARNING
        assert check.details["closed"] == [443]

    def test_ports_access_denied(self):
        with patch("somleng_deploy.health.checks.psutil.net_connections", side_effect=psutil.AccessDenied()):
            assert check_ports().status == CheckStatus.DISABLED


class TestRunHealthChecks:
    """Tests for the full suite."""

    @pytest.fixture(autouse=True)
    def quiet_host(self):
        with patch("somleng_deploy.health.checks.psutil") as mock_psutil:
            mock_psutil.net_connections.return_value = []
            mock_psutil.disk_usage.return_value = Usage(40.0)
            mock_psutil.virtual_memory.return_value = Usage(85.0)
            mock_psutil.AccessDenied = psutil.AccessDenied
            yield mock_psutil

    def test_docker_down_skips_container_checks(self, config, compose):
        runner = FakeRunner(binaries=())
        compose.runner = runner

        report = run_health_checks(config, runner, compose, catalog(), http_client=http_client())

        names = [c.name for c in report.checks]
        assert "containers" not in names
        assert "database" not in names
        assert names[0] == "docker"
        assert not report.passed
        assert "docker" in report.failed_checks

    def test_full_suite(self, config, runner, compose):
        runner.respond(["docker", "ps"], ok("somleng_postgres\nsomleng_freeswitch1\nsomleng_media_proxy"))
        runner.respond(["docker", "inspect"], ok("healthy"))
        runner.respond(["psql"], ok("12"))
        runner.respond(["redis-cli"], ok("PONG"))
        runner.respond(["fs_cli"], ok("UP"))

        report = run_health_checks(config, runner, compose, catalog(), http_client=http_client())

        assert [c.name for c in report.checks] == [
            "docker", "compose", "containers", "database", "redis", "web_api",
            "sip_services", "monitoring", "ssl", "ports", "disk", "memory",
        ]
        assert report.passed
        assert report.has_warnings
        assert report.get_check("memory").status == CheckStatus.WARNING
        assert report.get_check("nope") is None


def test_health_report_properties():
    report = HealthReport()
    assert report.passed
    assert not report.has_warnings
    assert report.failed_checks == []
