"""
somleng-deploy UI - Rich console output.
"""

from somleng_deploy.ui.console import ConsoleUI

__all__ = ["ConsoleUI"]
