"""
Core Exceptions - Unified error hierarchy for somleng-deploy.

Each exception type maps to one category of operator-facing failure.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from somleng_deploy.orchestration.starter import StartReport


class SomlengDeployError(Exception):
    """Base exception for all somleng-deploy errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(SomlengDeployError):
    """Configuration file missing or malformed."""
    pass


class MissingPrerequisiteError(ConfigurationError):
    """Required configuration keys or executables are absent."""

    def __init__(self, missing_keys: list[str], missing_binaries: list[str]):
        parts = []
        if missing_keys:
            parts.append(f"configuration: {', '.join(missing_keys)}")
        if missing_binaries:
            parts.append(f"executables: {', '.join(missing_binaries)}")
        super().__init__(
            f"Missing prerequisites ({'; '.join(parts)})",
            {"missing_keys": missing_keys, "missing_binaries": missing_binaries},
        )
        self.missing_keys = missing_keys
        self.missing_binaries = missing_binaries


# =============================================================================
# Execution Errors
# =============================================================================

class ExecutionError(SomlengDeployError):
    """External command or action failed."""
    pass


class CommandFailedError(ExecutionError):
    """Command returned non-zero exit code."""

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        super().__init__(
            f"Command failed with exit code {exit_code}: {command}",
            {"exit_code": exit_code, "stderr": stderr.strip()[:500]},
        )
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class CommandTimeoutError(ExecutionError):
    """Command execution timed out."""

    def __init__(self, command: str, timeout_seconds: float):
        super().__init__(
            f"Command timed out after {timeout_seconds}s: {command}",
            {"timeout": timeout_seconds},
        )
        self.command = command


class ReadinessTimeoutError(ExecutionError):
    """One or more services never became ready within their poll budget."""

    def __init__(self, tier: str, unready: list[str], report: StartReport | None = None):
        super().__init__(
            f"Services in tier '{tier}' not ready: {', '.join(unready)}",
            {"tier": tier, "unready": unready},
        )
        self.tier = tier
        self.unready = unready
        self.report = report


# =============================================================================
# Backup Errors
# =============================================================================

class BackupError(SomlengDeployError):
    """Backup or restore failed."""
    pass


class BackupStageError(BackupError):
    """A backup stage failed; remaining stages were skipped."""

    def __init__(self, stage: str, reason: str):
        super().__init__(
            f"Backup stage '{stage}' failed: {reason}",
            {"stage": stage},
        )
        self.stage = stage
        self.reason = reason


class InvalidTransitionError(BackupError):
    """Backup run asked to move between stages that are not adjacent."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Invalid backup transition {current} -> {target}")
        self.current = current
        self.target = target


class RestoreNotImplementedError(BackupError):
    """Restore has not been built yet."""

    def __init__(self, archive: str):
        super().__init__(
            "Restore functionality not implemented yet",
            {"archive": archive},
        )
        self.archive = archive


# =============================================================================
# Certificate Errors
# =============================================================================

class CertificateError(SomlengDeployError):
    """TLS certificate missing, invalid or expired."""
    pass


# =============================================================================
# Security Errors
# =============================================================================

class HardeningError(SomlengDeployError):
    """A host hardening step could not be applied."""
    pass
