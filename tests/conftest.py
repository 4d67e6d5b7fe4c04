"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections import namedtuple
from collections.abc import Callable, Sequence
from pathlib import Path
from unittest.mock import patch

import pytest

from somleng_deploy.config import KNOWN_ENV_KEYS, load_config
from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import CommandFailedError
from somleng_deploy.core.types import CommandResult
from somleng_deploy.executors.command import DEFAULT_TIMEOUT, CommandRunner
from somleng_deploy.executors.compose import ComposeClient
from somleng_deploy.utils.log_config import reset_log_config

Responder = CommandResult | Exception | Callable[[list[str]], CommandResult]

SAMPLE_ENV = {
    "SOMLENG_DOMAIN": "somleng.example.com",
    "PUBLIC_IP": "203.0.113.10",
    "SECRET_KEY_BASE": "abcdef0123456789abcdef",
    "POSTGRES_PASSWORD": "pg-secret-pass",
    "ADMIN_EMAIL": "admin@example.com",
    "ADMIN_PASSWORD": "admin-secret-pass",
    "LETSENCRYPT_EMAIL": "ops@example.com",
    "READINESS_MAX_ATTEMPTS": "3",
    "READINESS_INTERVAL": "0",
}


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(True, stdout, "", 0, 1.0)


def fail(exit_code: int = 1, stderr: str = "boom") -> CommandResult:
    return CommandResult(False, "", stderr, exit_code, 1.0)


def _contains(args: Sequence[str], needle: Sequence[str]) -> bool:
    n = len(needle)
    return any(list(args[i:i + n]) == list(needle) for i in range(len(args) - n + 1))


class FakeRunner(CommandRunner):
    """CommandRunner that records calls and answers from canned responses."""

    def __init__(self, binaries: Sequence[str] = ("docker", "openssl"), dry_run: bool = False) -> None:
        super().__init__(cwd=None, dry_run=dry_run)
        self.binaries = set(binaries)
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.options: list[dict] = []
        self._responses: list[tuple[tuple[str, ...], Responder]] = []

    def which(self, name: str) -> str | None:
        return f"/usr/bin/{name}" if name in self.binaries else None

    def respond(self, needle: Sequence[str], response: Responder) -> None:
        """Answer commands containing `needle` (contiguous). Later registrations win."""
        self._responses.insert(0, (tuple(needle), response))

    def run(self, args, check=True, timeout=DEFAULT_TIMEOUT, capture=True, stdout_path=None, input_text=None):
        args = list(args)
        self.calls.append(args)
        self.inputs.append(input_text)
        self.options.append({"timeout": timeout, "capture": capture})

        result = ok()
        for needle, response in self._responses:
            if _contains(args, needle):
                if isinstance(response, Exception):
                    raise response
                result = response(args) if callable(response) else response
                break

        if stdout_path is not None:
            Path(stdout_path).write_text(result.stdout)

        if not result.success and check:
            raise CommandFailedError(" ".join(args), result.exit_code, result.stderr)
        return result

    def called(self, *needle: str) -> bool:
        return any(_contains(call, needle) for call in self.calls)

    def index_of(self, *needle: str) -> int:
        for i, call in enumerate(self.calls):
            if _contains(call, needle):
                return i
        raise AssertionError(f"command containing {needle} was never run")


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep host environment and log files out of every test."""
    for key in KNOWN_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("SOMLENG_DEPLOY_LOG_FILE", "0")
    reset_log_config()
    yield
    reset_log_config()


@pytest.fixture
def write_env() -> Callable[..., Path]:
    """Write a .env file into a directory, with overrides (None removes a key)."""

    def _write(directory: Path, **overrides: str | None) -> Path:
        values = {**SAMPLE_ENV, "BACKUP_DIR": str(directory / "backups")}
        for key, value in overrides.items():
            if value is None:
                values.pop(key, None)
            else:
                values[key] = value
        env_path = directory / ".env"
        env_path.write_text("".join(f"{k}={v}\n" for k, v in values.items()))
        return env_path

    return _write


@pytest.fixture
def project_dir(tmp_path: Path, write_env) -> Path:
    """A deployment directory with .env and docker-compose.yml."""
    (tmp_path / "docker-compose.yml").write_text("services: {}\n")
    write_env(tmp_path)
    return tmp_path


@pytest.fixture
def config(project_dir: Path) -> DeploymentConfig:
    return load_config(project_dir)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def compose(runner: FakeRunner, config: DeploymentConfig) -> ComposeClient:
    return ComposeClient(runner, config.compose_file, command=["docker", "compose"])


GB = 1024**3
DiskUsage = namedtuple("DiskUsage", "total used free percent")
Memory = namedtuple("Memory", "total available percent")


@pytest.fixture(autouse=True)
def ample_resources():
    """Host resources never trigger validator warnings unless a test says so."""
    with patch("somleng_deploy.orchestration.validator.psutil") as mock_psutil:
        mock_psutil.disk_usage.return_value = DiskUsage(500 * GB, 100 * GB, 400 * GB, 20.0)
        mock_psutil.virtual_memory.return_value = Memory(32 * GB, 16 * GB, 50.0)
        yield mock_psutil
