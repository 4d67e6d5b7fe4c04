"""
somleng-deploy Orchestration - Validator, tiered starter, status reporter and stack verbs.
"""

from somleng_deploy.orchestration.deploy import StackManager
from somleng_deploy.orchestration.reporter import ServiceStatus, StatusReporter, access_urls
from somleng_deploy.orchestration.services import (
    ServiceCatalog,
    ServiceDescriptor,
    ServiceTier,
    default_catalog,
    load_catalog,
)
from somleng_deploy.orchestration.starter import ServiceStarter, StartReport
from somleng_deploy.orchestration.validator import (
    PrerequisiteValidator,
    ValidationReport,
    ensure_env_file,
)

__all__ = [
    "PrerequisiteValidator",
    "ServiceCatalog",
    "ServiceDescriptor",
    "ServiceStarter",
    "ServiceStatus",
    "ServiceTier",
    "StackManager",
    "StartReport",
    "StatusReporter",
    "ValidationReport",
    "access_urls",
    "default_catalog",
    "ensure_env_file",
    "load_catalog",
]
