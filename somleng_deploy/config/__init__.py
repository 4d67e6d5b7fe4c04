"""
somleng-deploy Config - Configuration management.
"""

from somleng_deploy.config.loader import load_config, resolve_env_file
from somleng_deploy.config.models import KNOWN_ENV_KEYS, DeploymentConfig

__all__ = [
    "DeploymentConfig",
    "KNOWN_ENV_KEYS",
    "load_config",
    "resolve_env_file",
]
