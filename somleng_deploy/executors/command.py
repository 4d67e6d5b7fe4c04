"""
Local command execution for somleng-deploy.

Every external tool (docker, openssl, certbot, ufw, crontab) is reached
through CommandRunner so dry runs and tests can intercept it in one place.
"""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from loguru import logger

from somleng_deploy.config.constants import COMMAND_DEFAULT_TIMEOUT
from somleng_deploy.core.exceptions import CommandFailedError, CommandTimeoutError
from somleng_deploy.core.types import CommandResult

# Marker for "use the runner's default timeout"; an explicit None means no limit
DEFAULT_TIMEOUT: Any = object()


class CommandRunner:
    """
    Runs external commands synchronously, one at a time.

    Args:
        cwd: Working directory for every command (usually the project dir).
        dry_run: Log commands instead of executing them.
        env: Extra environment variables merged over os.environ.
        timeout: Default timeout in seconds.
    """

    def __init__(
        self,
        cwd: Path | None = None,
        dry_run: bool = False,
        env: Mapping[str, str] | None = None,
        timeout: float = COMMAND_DEFAULT_TIMEOUT,
    ) -> None:
        self.cwd = cwd
        self.dry_run = dry_run
        self.env = dict(env) if env else None
        self.timeout = timeout

    def which(self, name: str) -> str | None:
        """Locate an executable on PATH."""
        return shutil.which(name)

    def run(
        self,
        args: Sequence[str],
        check: bool = True,
        timeout: float | None = DEFAULT_TIMEOUT,
        capture: bool = True,
        stdout_path: Path | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        """
        Run a command and wait for it.

        Args:
            args: Command and arguments (never passed through a shell).
            check: Raise CommandFailedError on non-zero exit.
            timeout: Seconds before the command is killed. Omit for the runner
                default; None waits indefinitely (image pulls, database dumps).
            capture: Capture stdout/stderr; False streams to the terminal.
            stdout_path: Write stdout to this file instead of capturing it.
            input_text: Text fed to stdin.

        Returns:
            CommandResult.

        Raises:
            CommandFailedError: Non-zero exit (check=True) or executable missing.
            CommandTimeoutError: The command exceeded its timeout.
        """
        command = shlex.join(args)

        if self.dry_run:
            logger.info(f"[dry-run] {command}")
            return CommandResult(True, "", "", 0, 0.0, command=command)

        logger.debug(f"$ {command}")
        effective_timeout = self.timeout if timeout is DEFAULT_TIMEOUT else timeout
        env = None
        if self.env:
            env = {**os.environ, **self.env}

        start = time.perf_counter()
        try:
            if stdout_path is not None:
                with open(stdout_path, "wb") as out:
                    proc = subprocess.run(
                        list(args), cwd=self.cwd, env=env, stdout=out,
                        stderr=subprocess.PIPE, timeout=effective_timeout,
                        input=input_text.encode() if input_text is not None else None,
                    )
                stdout, stderr = "", proc.stderr.decode(errors="replace")
            elif capture:
                proc = subprocess.run(
                    list(args), cwd=self.cwd, env=env, capture_output=True, text=True,
                    timeout=effective_timeout, input=input_text,
                )
                stdout, stderr = proc.stdout, proc.stderr
            else:
                proc = subprocess.run(
                    list(args), cwd=self.cwd, env=env, timeout=effective_timeout, input=input_text,
                    text=True,
                )
                stdout, stderr = "", ""
        except FileNotFoundError as e:
            raise CommandFailedError(command, 127, f"executable not found: {e.filename}") from e
        except subprocess.TimeoutExpired as e:
            logger.error(f"⏱️ Command timed out after {effective_timeout}s")
            raise CommandTimeoutError(command, effective_timeout or 0) from e

        duration_ms = (time.perf_counter() - start) * 1000
        result = CommandResult(
            success=proc.returncode == 0,
            stdout=(stdout or "").strip(),
            stderr=(stderr or "").strip(),
            exit_code=proc.returncode,
            duration_ms=duration_ms,
            command=command,
        )

        if not result.success:
            logger.debug(f"exit {result.exit_code}: {result.stderr[:200]}")
            if check:
                raise CommandFailedError(command, result.exit_code, result.stderr)

        return result

    def succeeds(self, args: Sequence[str], timeout: float | None = DEFAULT_TIMEOUT) -> bool:
        """Run a command purely for its exit status."""
        try:
            return self.run(args, check=False, timeout=timeout).success
        except (CommandFailedError, CommandTimeoutError):
            return False
