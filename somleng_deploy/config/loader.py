"""
somleng-deploy Config - .env loader.

Reads the deployment's .env file once with python-dotenv and validates it
against DeploymentConfig. Keys missing from the file may be supplied by the
process environment (useful for backups run from cron or inside containers).
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger
from pydantic import ValidationError

from somleng_deploy.config.constants import ENV_FILE_NAME
from somleng_deploy.config.models import KNOWN_ENV_KEYS, DeploymentConfig
from somleng_deploy.core.exceptions import ConfigurationError


def resolve_env_file(project_dir: Path, env_file: str | Path | None = None) -> Path:
    """Return the .env path for a project directory."""
    if env_file:
        return Path(env_file).expanduser().resolve()
    return project_dir / ENV_FILE_NAME


def load_config(
    project_dir: str | Path | None = None,
    env_file: str | Path | None = None,
    require_file: bool = True,
) -> DeploymentConfig:
    """
    Load and validate the deployment configuration.

    Args:
        project_dir: Directory holding docker-compose.yml (default: cwd).
        env_file: Explicit .env path (default: <project_dir>/.env).
        require_file: Raise when the .env file does not exist.

    Returns:
        Frozen DeploymentConfig.

    Raises:
        ConfigurationError: File missing (when required) or a value is malformed.
    """
    root = Path(project_dir).expanduser().resolve() if project_dir else Path.cwd()
    env_path = resolve_env_file(root, env_file)

    values: dict[str, str] = {}
    if env_path.is_file():
        values = {k: v for k, v in dotenv_values(env_path).items() if v is not None}
        logger.debug(f"Loaded {len(values)} keys from {env_path}")
    elif require_file:
        raise ConfigurationError(f".env file not found at {env_path}", {"env_file": str(env_path)})
    else:
        logger.debug(f"No .env at {env_path}, using process environment only")

    for key in KNOWN_ENV_KEYS:
        if key not in values and key in os.environ:
            values[key] = os.environ[key]

    try:
        return DeploymentConfig.model_validate(
            {**values, "project_dir": root, "env_file": env_path if env_path.is_file() else None}
        )
    except ValidationError as e:
        problems = {
            ".".join(str(part) for part in err["loc"]): err["msg"] for err in e.errors()
        }
        raise ConfigurationError(
            f"Invalid configuration in {env_path}: {', '.join(problems)}", problems
        ) from e
