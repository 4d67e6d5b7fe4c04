"""
somleng-deploy Executors - External command and compose execution.
"""

from somleng_deploy.executors.command import CommandRunner
from somleng_deploy.executors.compose import ComposeClient, detect_compose_command

__all__ = ["CommandRunner", "ComposeClient", "detect_compose_command"]
