"""
Centralized logging for somleng-deploy.

Provides:
- A rotating file sink with full detail
- An operator-facing stderr sink ([INFO] / [SUCCESS] / [WARNING] / [ERROR])
- Secret redaction on every record

Configuration comes from environment variables, see log_config.py.
"""
import sys
from typing import Any, Optional

from loguru import logger

from somleng_deploy.utils.security import redact_sensitive_info

CONSOLE_FORMAT = "<level>[{level}]</level> {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def _get_log_config():
    """Get log configuration (lazy import to avoid circular deps)."""
    from somleng_deploy.utils.log_config import get_log_config
    return get_log_config()


def setup_logger(
    verbose: bool = False,
    quiet: bool = False,
    config: Optional[Any] = None,
    secrets: Optional[list] = None,
) -> None:
    """
    Configure loguru sinks for a CLI invocation.

    Rules:
    1. FILE: log to ~/.somleng-deploy/logs/app.log (rotated) unless disabled.
    2. CONSOLE: INFO+ to stderr; DEBUG+ when verbose, WARNING+ when quiet.

    Args:
        verbose: Lower the console level to DEBUG
        quiet: Raise the console level to WARNING
        config: Optional LogConfig override (for testing)
        secrets: Known secret values to scrub from every record
    """
    logger.remove()

    if config is None:
        config = _get_log_config()

    if config.file_enabled:
        log_path = config.log_path
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            logger.add(
                log_path,
                rotation=config.rotation,
                retention=config.retention,
                level=config.file_level,
                format=FILE_FORMAT,
                compression=config.compression,
                enqueue=True,
            )
        except OSError as e:
            # Read-only home directories still get console output
            sys.stderr.write(f"[WARNING] File logging disabled: {e}\n")

    console_level = config.console_level
    if verbose:
        console_level = "DEBUG"
    elif quiet:
        console_level = "WARNING"

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=console_level,
        colorize=True,
    )

    known_secrets = list(secrets or [])

    def redaction_filter(record):
        """Redact sensitive info from all logs."""
        record["message"] = redact_sensitive_info(record["message"], known_secrets)

    logger.configure(patcher=redaction_filter)
