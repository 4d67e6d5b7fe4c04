"""
Logging configuration for somleng-deploy.

Provides:
- Log directory management
- Log rotation (size and time-based)
- Console verbosity levels
- Environment overrides (SOMLENG_DEPLOY_LOG_*)
"""
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, Optional


class LogLevel(str, Enum):
    """Log verbosity levels."""
    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def from_string(cls, level: str) -> "LogLevel":
        """Parse log level from string (case-insensitive)."""
        level = level.upper()
        try:
            return cls(level)
        except ValueError:
            aliases = {
                "WARN": cls.WARNING,
                "ERR": cls.ERROR,
                "CRIT": cls.CRITICAL,
                "FATAL": cls.CRITICAL,
            }
            if level in aliases:
                return aliases[level]
            raise ValueError(f"Unknown log level: {level}") from None


@dataclass
class LogConfig:
    """
    Configuration for somleng-deploy logging.

    Attributes:
        log_dir: Directory for log files (default: ~/.somleng-deploy/logs)
        app_log_name: Main log filename
        console_level: Log level for stderr output
        file_level: Log level for file output
        rotation: Size or time before rotation (e.g., "10 MB", "1 day")
        retention: How long to keep rotated logs (e.g., "4 weeks")
        compression: Compress rotated files (zip, gz, or None)
        file_enabled: Write the rotating log file at all
    """
    log_dir: str = ""
    app_log_name: str = "app.log"

    console_level: str = "INFO"
    file_level: str = "DEBUG"

    rotation: str = "10 MB"
    retention: str = "4 weeks"
    compression: Optional[str] = "gz"

    file_enabled: bool = True

    _VALID_COMPRESSION: ClassVar[frozenset] = frozenset({"zip", "gz", None})

    def __post_init__(self):
        if not self.log_dir:
            self.log_dir = str(Path.home() / ".somleng-deploy" / "logs")

        try:
            LogLevel.from_string(self.console_level)
        except ValueError as e:
            raise ValueError(f"Invalid console_level: {e}") from e

        try:
            LogLevel.from_string(self.file_level)
        except ValueError as e:
            raise ValueError(f"Invalid file_level: {e}") from e

        if self.compression not in self._VALID_COMPRESSION:
            raise ValueError(
                f"compression must be one of {set(self._VALID_COMPRESSION)}, "
                f"got: {self.compression!r}"
            )

        if not self.rotation.strip():
            raise ValueError("rotation must not be empty")

    @property
    def log_path(self) -> Path:
        """Get the full path to the main log file."""
        return Path(self.log_dir) / self.app_log_name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogConfig":
        """Create from dictionary, ignoring unknown keys."""
        known_fields = {
            "log_dir", "app_log_name", "console_level", "file_level",
            "rotation", "retention", "compression", "file_enabled",
        }
        return cls(**{k: v for k, v in data.items() if k in known_fields})


_ENV_MAPPINGS = {
    "SOMLENG_DEPLOY_LOG_DIR": "log_dir",
    "SOMLENG_DEPLOY_LOG_LEVEL": "console_level",
    "SOMLENG_DEPLOY_LOG_FILE_LEVEL": "file_level",
    "SOMLENG_DEPLOY_LOG_ROTATION": "rotation",
    "SOMLENG_DEPLOY_LOG_RETENTION": "retention",
    "SOMLENG_DEPLOY_LOG_COMPRESSION": "compression",
    "SOMLENG_DEPLOY_LOG_FILE": "file_enabled",
}


def load_log_config() -> LogConfig:
    """
    Load logging configuration.

    Priority:
    1. Environment variables (SOMLENG_DEPLOY_LOG_*)
    2. Defaults
    """
    config_data: Dict[str, Any] = {}

    for env_var, config_key in _ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        if config_key == "file_enabled":
            config_data[config_key] = value.lower() in ("1", "true", "yes", "on")
        elif config_key == "compression":
            config_data[config_key] = value if value.lower() not in ("none", "") else None
        else:
            config_data[config_key] = value

    return LogConfig.from_dict(config_data)


def get_log_config() -> LogConfig:
    """Get the current logging configuration (cached)."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_log_config()
    return _cached_config


def reset_log_config() -> None:
    """Reset the cached configuration."""
    global _cached_config
    _cached_config = None


_cached_config: Optional[LogConfig] = None
