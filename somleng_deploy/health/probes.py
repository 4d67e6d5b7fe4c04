"""
somleng-deploy Health - Readiness probes.

A probe is a zero-argument callable returning True when the service answers.
Probes never raise: connection errors, timeouts and failing commands all
count as "not ready yet".
"""

from __future__ import annotations

import re
import socket
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, model_validator

from somleng_deploy.config.constants import COMMAND_PROBE_TIMEOUT, PROBE_TIMEOUT_SECONDS
from somleng_deploy.config.models import KNOWN_ENV_KEYS
from somleng_deploy.core.exceptions import ConfigurationError, ExecutionError

if TYPE_CHECKING:
    from somleng_deploy.config.models import DeploymentConfig
    from somleng_deploy.executors.compose import ComposeClient

Probe = Callable[[], bool]


# Only `{UPPER_CASE}` names are placeholders; `%{http_code}` or JSON braces pass through
_PLACEHOLDER = re.compile(r"\{([A-Z][A-Z0-9_]*)\}")


def template_keys(text: str) -> list[str]:
    """Placeholder names used in a probe template."""
    return _PLACEHOLDER.findall(text)


class ProbeKind(StrEnum):
    """How a service proves it is ready."""

    TCP = "tcp"
    COMMAND = "command"
    HTTP = "http"
    RUNNING = "running"
    NONE = "none"


class ProbeSpec(BaseModel):
    """Declarative probe definition, as written in the service catalog."""

    model_config = ConfigDict(frozen=True)

    kind: ProbeKind = ProbeKind.RUNNING
    host: str = "localhost"
    port: int | None = None
    command: tuple[str, ...] = ()
    expect: str | None = None
    url: str | None = None
    expected_status: int = 200

    @model_validator(mode="after")
    def _check_fields(self) -> ProbeSpec:
        if self.kind == ProbeKind.TCP and self.port is None:
            raise ValueError("tcp probe requires 'port'")
        if self.kind == ProbeKind.COMMAND and not self.command:
            raise ValueError("command probe requires 'command'")
        if self.kind == ProbeKind.HTTP and not self.url:
            raise ValueError("http probe requires 'url'")
        for text in (self.host, self.url or "", *self.command):
            unknown = [key for key in template_keys(text) if key not in KNOWN_ENV_KEYS]
            if unknown:
                raise ValueError(f"unknown placeholder(s) {', '.join(unknown)} in {text!r}")
        return self


@dataclass
class TcpProbe:
    """Ready when a TCP connection to host:port succeeds."""

    host: str
    port: int
    timeout: float = PROBE_TIMEOUT_SECONDS

    def __call__(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError:
            return False


@dataclass
class CommandProbe:
    """Ready when a command inside the service container exits 0 (and prints `expect`)."""

    compose: ComposeClient
    service: str
    command: tuple[str, ...]
    expect: str | None = None
    timeout: float = COMMAND_PROBE_TIMEOUT

    def __call__(self) -> bool:
        try:
            result = self.compose.exec(self.service, self.command, check=False, timeout=self.timeout)
        except ExecutionError as e:
            logger.debug(f"Probe command for {self.service} errored: {e.message}")
            return False
        if not result.success:
            return False
        if self.expect is not None:
            return self.expect in result.stdout
        return True


@dataclass
class HttpProbe:
    """Ready when GET url returns the expected status."""

    url: str
    expected_status: int = 200
    timeout: float = PROBE_TIMEOUT_SECONDS
    client: httpx.Client | None = field(default=None, repr=False)

    def __call__(self) -> bool:
        try:
            if self.client is not None:
                response = self.client.get(self.url, timeout=self.timeout)
            else:
                response = httpx.get(self.url, timeout=self.timeout, verify=False, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.debug(f"HTTP probe {self.url} failed: {e}")
            return False
        return response.status_code == self.expected_status


@dataclass
class RunningProbe:
    """Ready as soon as compose reports the service container running."""

    compose: ComposeClient
    service: str

    def __call__(self) -> bool:
        try:
            return self.compose.is_running(self.service)
        except ExecutionError:
            return False


def render_template(text: str, config: DeploymentConfig) -> str:
    """
    Substitute `{KEY}` placeholders with configuration values.

    Raises:
        ConfigurationError: A placeholder names no configuration key.
    """

    def _value(match: re.Match) -> str:
        key = match.group(1)
        try:
            value = config.value_for(key)
        except KeyError:
            raise ConfigurationError(f"Unknown placeholder {{{key}}} in probe template: {text}") from None
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_value, text)


def build_probe(
    spec: ProbeSpec,
    service: str,
    compose: ComposeClient,
    config: DeploymentConfig,
    http_client: httpx.Client | None = None,
) -> Probe | None:
    """
    Turn a ProbeSpec into a callable probe.

    Returns:
        The probe, or None for ProbeKind.NONE (service counts as ready once started).
    """
    if spec.kind == ProbeKind.TCP:
        return TcpProbe(render_template(spec.host, config), spec.port or 0)
    if spec.kind == ProbeKind.COMMAND:
        command = tuple(render_template(part, config) for part in spec.command)
        return CommandProbe(compose, service, command, spec.expect)
    if spec.kind == ProbeKind.HTTP:
        return HttpProbe(render_template(spec.url or "", config), spec.expected_status, client=http_client)
    if spec.kind == ProbeKind.RUNNING:
        return RunningProbe(compose, service)
    return None
