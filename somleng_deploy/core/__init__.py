"""
somleng-deploy Core - Exceptions and shared types.
"""

from somleng_deploy.core.exceptions import (
    BackupError,
    BackupStageError,
    CertificateError,
    CommandFailedError,
    CommandTimeoutError,
    ConfigurationError,
    ExecutionError,
    InvalidTransitionError,
    MissingPrerequisiteError,
    ReadinessTimeoutError,
    RestoreNotImplementedError,
    SomlengDeployError,
)
from somleng_deploy.core.types import CheckStatus, CommandResult, HealthCheck

__all__ = [
    "BackupError",
    "BackupStageError",
    "CertificateError",
    "CheckStatus",
    "CommandFailedError",
    "CommandResult",
    "CommandTimeoutError",
    "ConfigurationError",
    "ExecutionError",
    "HealthCheck",
    "InvalidTransitionError",
    "MissingPrerequisiteError",
    "ReadinessTimeoutError",
    "RestoreNotImplementedError",
    "SomlengDeployError",
]
