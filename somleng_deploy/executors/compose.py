"""
Docker Compose wrapper for somleng-deploy.

Thin verbs over `docker compose` (v2 plugin) or standalone `docker-compose`.
Compose keeps its own orchestration semantics; this module only sequences calls.
"""
from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from somleng_deploy.config.constants import COMMAND_PROBE_TIMEOUT
from somleng_deploy.core.exceptions import CommandFailedError
from somleng_deploy.core.types import CommandResult
from somleng_deploy.executors.command import DEFAULT_TIMEOUT, CommandRunner


def detect_compose_command(runner: CommandRunner) -> list[str]:
    """
    Find the compose binary.

    Returns the command as a list (either ['docker', 'compose'] or ['docker-compose']).

    Raises:
        CommandFailedError: Neither form is installed.
    """
    if runner.which("docker") and runner.succeeds(["docker", "compose", "version"], timeout=COMMAND_PROBE_TIMEOUT):
        return ["docker", "compose"]
    if runner.which("docker-compose"):
        return ["docker-compose"]
    raise CommandFailedError("docker compose", 127, "docker compose not found in PATH")


class ComposeClient:
    """Runs compose verbs against one compose file."""

    def __init__(
        self,
        runner: CommandRunner,
        compose_file: Path,
        command: Sequence[str] | None = None,
    ) -> None:
        self.runner = runner
        self.compose_file = compose_file
        self._command = list(command) if command else None

    @property
    def command(self) -> list[str]:
        if self._command is None:
            self._command = detect_compose_command(self.runner)
            logger.debug(f"Using compose command: {' '.join(self._command)}")
        return self._command

    def _base(self) -> list[str]:
        return [*self.command, "-f", str(self.compose_file)]

    def _run(self, *args: str, **kwargs) -> CommandResult:
        return self.runner.run([*self._base(), *args], **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def pull(self) -> CommandResult:
        return self._run("pull", capture=False, timeout=None)

    def build(self, parallel: bool = True) -> CommandResult:
        args = ["build", "--parallel"] if parallel else ["build"]
        return self._run(*args, capture=False, timeout=None)

    def up(self, services: Sequence[str] = (), detach: bool = True) -> CommandResult:
        args = ["up", "-d"] if detach else ["up"]
        return self._run(*args, *services, capture=False, timeout=None)

    def run_once(self, service: str) -> CommandResult:
        """Run a one-shot container to completion, then remove it."""
        try:
            return self._run("up", "--exit-code-from", service, service, capture=False, timeout=None)
        finally:
            self._run("rm", "-f", service, check=False)

    def down(self, remove_orphans: bool = False, check: bool = True) -> CommandResult:
        args = ["down", "--remove-orphans"] if remove_orphans else ["down"]
        return self._run(*args, check=check)

    def restart(self, services: Sequence[str] = ()) -> CommandResult:
        return self._run("restart", *services)

    def stop(self, services: Sequence[str] = ()) -> CommandResult:
        return self._run("stop", *services)

    def start(self, services: Sequence[str] = ()) -> CommandResult:
        return self._run("start", *services)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def logs(self, service: str | None = None, follow: bool = True) -> CommandResult:
        args = ["logs", "-f"] if follow else ["logs"]
        if service:
            args.append(service)
        return self._run(*args, capture=False, timeout=None, check=False)

    def ps(self, stream: bool = False) -> CommandResult:
        return self._run("ps", capture=not stream, check=False)

    def is_running(self, service: str) -> bool:
        result = self._run(
            "ps", "--status", "running", "-q", service,
            check=False, timeout=COMMAND_PROBE_TIMEOUT,
        )
        return result.success and bool(result.stdout.strip())

    def exec(
        self,
        service: str,
        command: Sequence[str],
        check: bool = True,
        timeout: float | None = DEFAULT_TIMEOUT,
        stdout_path: Path | None = None,
    ) -> CommandResult:
        """Run a command inside a running service container (no TTY)."""
        return self._run(
            "exec", "-T", service, *command,
            check=check, timeout=timeout, stdout_path=stdout_path,
        )

    def cp(self, source: str, destination: str) -> CommandResult:
        return self._run("cp", source, destination)

    def validate(self) -> CommandResult:
        """Check compose file syntax."""
        return self._run("config", "--quiet")
