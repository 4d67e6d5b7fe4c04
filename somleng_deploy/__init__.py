"""
somleng-deploy - Operator CLI for Somleng CPaaS deployments.

Sequences docker compose, database clients, openssl and certbot
to deploy, check, back up and secure a Somleng installation.
"""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("somleng-deploy")
except PackageNotFoundError:
    # Package not installed, fallback to pyproject.toml
    __version__ = "0.1.0"

__author__ = "Somleng Deploy Contributors"
