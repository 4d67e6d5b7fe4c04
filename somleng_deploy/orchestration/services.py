"""
somleng-deploy Orchestration - Service catalog.

Static description of what runs in a Somleng deployment and in which order
it comes up: datastores, core app, telephony, monitoring. The catalog is
read once at startup and never mutated.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from somleng_deploy.core.exceptions import ConfigurationError
from somleng_deploy.health.probes import ProbeKind, ProbeSpec


class ServiceDescriptor(BaseModel):
    """One compose service and how to tell it is ready."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Compose service name")
    container: str | None = Field(default=None, description="Container name (docker ps)")
    probe: ProbeSpec = Field(default_factory=ProbeSpec)
    one_shot: bool = Field(default=False, description="Run to completion then remove")

    @property
    def container_name(self) -> str:
        return self.container or f"somleng_{self.name}"


class ServiceTier(BaseModel):
    """Services started together; the next tier waits for all of them."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    rank: int
    services: tuple[ServiceDescriptor, ...] = ()

    @property
    def long_running(self) -> tuple[ServiceDescriptor, ...]:
        return tuple(s for s in self.services if not s.one_shot)

    @property
    def one_shots(self) -> tuple[ServiceDescriptor, ...]:
        return tuple(s for s in self.services if s.one_shot)


class ServiceCatalog(BaseModel):
    """Ordered tiers with globally unique service names."""

    model_config = ConfigDict(frozen=True)

    tiers: tuple[ServiceTier, ...]

    @model_validator(mode="after")
    def _unique_names(self) -> ServiceCatalog:
        seen: set[str] = set()
        duplicates: list[str] = []
        for tier in self.tiers:
            for service in tier.services:
                if service.name in seen:
                    duplicates.append(service.name)
                seen.add(service.name)
        if duplicates:
            raise ValueError(f"duplicate service names: {', '.join(sorted(set(duplicates)))}")

        tier_names = [t.name for t in self.tiers]
        if len(tier_names) != len(set(tier_names)):
            raise ValueError("duplicate tier names")
        return self

    def ordered(self) -> list[ServiceTier]:
        """Tiers in startup order (lowest rank first)."""
        return sorted(self.tiers, key=lambda t: t.rank)

    def services(self) -> Iterator[ServiceDescriptor]:
        for tier in self.ordered():
            yield from tier.services

    def tier(self, name: str) -> ServiceTier:
        for tier in self.tiers:
            if tier.name == name:
                return tier
        raise KeyError(name)

    def get(self, service_name: str) -> ServiceDescriptor:
        for service in self.services():
            if service.name == service_name:
                return service
        raise KeyError(service_name)


def _nc(port: int) -> ProbeSpec:
    return ProbeSpec(kind=ProbeKind.COMMAND, command=("nc", "-z", "localhost", str(port)))


def _running() -> ProbeSpec:
    return ProbeSpec(kind=ProbeKind.RUNNING)


def default_catalog() -> ServiceCatalog:
    """The stock Somleng + SomlengSWITCH + monitoring stack."""
    return ServiceCatalog(tiers=(
        ServiceTier(name="datastores", rank=0, services=(
            ServiceDescriptor(
                name="db",
                container="somleng_postgres",
                probe=ProbeSpec(
                    kind=ProbeKind.COMMAND,
                    command=("pg_isready", "-U", "{POSTGRES_USER}", "-d", "{POSTGRES_DB}"),
                ),
            ),
            ServiceDescriptor(
                name="redis",
                container="somleng_redis",
                probe=ProbeSpec(kind=ProbeKind.COMMAND, command=("redis-cli", "ping"), expect="PONG"),
            ),
            ServiceDescriptor(name="gateway_bootstrap", one_shot=True, probe=ProbeSpec(kind=ProbeKind.NONE)),
        )),
        ServiceTier(name="core", rank=1, services=(
            ServiceDescriptor(
                name="somleng_web",
                container="somleng_web",
                probe=ProbeSpec(kind=ProbeKind.HTTP, url="http://localhost:3000/health"),
            ),
            ServiceDescriptor(name="somleng_sidekiq", container="somleng_sidekiq", probe=_running()),
        )),
        ServiceTier(name="telephony", rank=2, services=(
            ServiceDescriptor(name="media_proxy", probe=_nc(2223)),
            ServiceDescriptor(name="public_gateway", probe=_nc(5060)),
            ServiceDescriptor(name="client_gateway", probe=_nc(5060)),
            ServiceDescriptor(
                name="freeswitch1",
                probe=ProbeSpec(kind=ProbeKind.COMMAND, command=("fs_cli", "-x", "status"), expect="UP"),
            ),
            ServiceDescriptor(
                name="freeswitch2",
                probe=ProbeSpec(kind=ProbeKind.COMMAND, command=("fs_cli", "-x", "status"), expect="UP"),
            ),
            ServiceDescriptor(name="somleng_switch_app", container="somleng_switch_app", probe=_nc(8080)),
            ServiceDescriptor(name="freeswitch1_event_logger", probe=_running()),
            ServiceDescriptor(name="freeswitch2_event_logger", probe=_running()),
            ServiceDescriptor(name="somleng_services", container="somleng_services", probe=_running()),
            ServiceDescriptor(name="public_gateway_scheduler", probe=_running()),
            ServiceDescriptor(name="client_gateway_scheduler", probe=_running()),
            ServiceDescriptor(name="sms_gateway", probe=_running()),
            ServiceDescriptor(name="nginx", probe=_running()),
        )),
        ServiceTier(name="monitoring", rank=3, services=(
            ServiceDescriptor(
                name="prometheus",
                container="prometheus",
                probe=ProbeSpec(kind=ProbeKind.HTTP, url="http://localhost:9090/-/healthy"),
            ),
            ServiceDescriptor(
                name="grafana",
                container="grafana",
                probe=ProbeSpec(kind=ProbeKind.HTTP, url="http://localhost:3001/api/health"),
            ),
            ServiceDescriptor(
                name="elasticsearch",
                container="elasticsearch",
                probe=ProbeSpec(kind=ProbeKind.HTTP, url="http://localhost:9200/_cluster/health"),
            ),
            ServiceDescriptor(name="logstash", container="logstash", probe=_running()),
            ServiceDescriptor(name="kibana", container="kibana", probe=_running()),
        )),
    ))


def load_catalog(path: Path | None = None) -> ServiceCatalog:
    """
    Load the service catalog.

    Uses the YAML file at `path` when it exists, otherwise the default catalog.

    YAML shape:
        tiers:
          - name: datastores
            rank: 0
            services:
              - name: db
                probe: {kind: command, command: [pg_isready]}

    Raises:
        ConfigurationError: File unreadable or fails validation (e.g. duplicate names).
    """
    if path is None or not path.is_file():
        return default_catalog()

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read service catalog {path}: {e}") from e

    try:
        catalog = ServiceCatalog.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid service catalog {path}",
            {"errors": [err["msg"] for err in e.errors()]},
        ) from e

    logger.debug(f"Loaded service catalog from {path} ({len(list(catalog.services()))} services)")
    return catalog
