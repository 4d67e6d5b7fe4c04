"""
somleng-deploy Orchestration - Tier-ordered service starter.

Brings tiers up by rank and waits for every service of a tier before the
next tier's start command is issued. On a readiness timeout the run stops
where it is; nothing is rolled back.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from loguru import logger

from somleng_deploy.core.exceptions import ReadinessTimeoutError
from somleng_deploy.executors.compose import ComposeClient
from somleng_deploy.health.poller import PollResult, ReadinessPoller
from somleng_deploy.health.probes import Probe
from somleng_deploy.orchestration.services import ServiceCatalog, ServiceDescriptor, ServiceTier

ProbeFactory = Callable[[ServiceDescriptor], Probe | None]
TierHook = Callable[[], None]


@dataclass
class StartReport:
    """Progress of a start run, complete or aborted."""

    tiers_started: list[str] = field(default_factory=list)
    ready: list[str] = field(default_factory=list)
    unready: list[str] = field(default_factory=list)
    results: list[PollResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.unready


class ServiceStarter:
    """
    Starts a service catalog tier by tier.

    Args:
        compose: Compose client used to start services.
        poller: Readiness poller applied to every long-running service.
        probe_factory: Builds the probe for a service (None means ready once started).
        skip_probes: Treat every service as ready without probing (dry runs).
    """

    def __init__(
        self,
        compose: ComposeClient,
        poller: ReadinessPoller,
        probe_factory: ProbeFactory,
        skip_probes: bool = False,
    ) -> None:
        self.compose = compose
        self.poller = poller
        self.probe_factory = probe_factory
        self.skip_probes = skip_probes

    def start(
        self,
        catalog: ServiceCatalog,
        hooks: Mapping[str, TierHook] | None = None,
    ) -> StartReport:
        """
        Start every tier in rank order.

        Args:
            catalog: Services to start.
            hooks: Callables keyed by tier name, run once that tier is ready.

        Returns:
            StartReport with every service ready.

        Raises:
            ReadinessTimeoutError: A service exhausted its poll budget.
                The error carries the partial StartReport.
            CommandFailedError: A compose command or one-shot container failed.
        """
        hooks = hooks or {}
        report = StartReport()

        for tier in catalog.ordered():
            self._start_tier(tier, report)

            hook = hooks.get(tier.name)
            if hook is not None:
                logger.debug(f"Running post-start hook for tier '{tier.name}'")
                hook()

        logger.info(f"✅ All {len(report.ready)} services ready")
        return report

    def _start_tier(self, tier: ServiceTier, report: StartReport) -> None:
        long_running = [s.name for s in tier.long_running]
        logger.info(f"🚀 Starting {tier.name} tier ({len(tier.services)} services)")

        if long_running:
            self.compose.up(long_running)
        report.tiers_started.append(tier.name)

        unready: list[str] = []
        for service in tier.long_running:
            result = self._wait(service)
            report.results.append(result)
            if result.ready:
                report.ready.append(service.name)
            else:
                unready.append(service.name)

        if unready:
            report.unready.extend(unready)
            logger.error(f"❌ {tier.name} tier not ready: {', '.join(unready)}")
            raise ReadinessTimeoutError(tier.name, unready, report)

        # One-shot containers depend on the tier they belong to being ready
        for service in tier.one_shots:
            logger.info(f"⚙️ Running {service.name}")
            self.compose.run_once(service.name)
            report.ready.append(service.name)

    def _wait(self, service: ServiceDescriptor) -> PollResult:
        probe = None if self.skip_probes else self.probe_factory(service)
        if probe is None:
            return PollResult(service.name, True, 0, 0.0)
        logger.info(f"⏳ Waiting for {service.name}...")
        return self.poller.wait_for(service.name, probe)
