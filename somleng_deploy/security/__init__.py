"""
somleng-deploy Security - Host firewall and hardening.
"""

from somleng_deploy.security.firewall import FirewallRule, configure_firewall, rules_for
from somleng_deploy.security.hardening import HardeningReport, HostHardener

__all__ = ["FirewallRule", "HardeningReport", "HostHardener", "configure_firewall", "rules_for"]
