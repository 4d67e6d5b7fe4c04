"""
somleng-deploy Health - Readiness probes, the readiness poller and health checks.
"""

from somleng_deploy.health.checks import HealthReport, run_health_checks
from somleng_deploy.health.poller import PollResult, ReadinessPoller
from somleng_deploy.health.probes import (
    CommandProbe,
    HttpProbe,
    Probe,
    ProbeKind,
    ProbeSpec,
    RunningProbe,
    TcpProbe,
    build_probe,
)

__all__ = [
    "CommandProbe",
    "HealthReport",
    "HttpProbe",
    "PollResult",
    "Probe",
    "ProbeKind",
    "ProbeSpec",
    "ReadinessPoller",
    "RunningProbe",
    "TcpProbe",
    "build_probe",
    "run_health_checks",
]
