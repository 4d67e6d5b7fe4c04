"""
somleng-deploy Security - ufw firewall rules.

Opens the ports a Somleng host needs (web, SIP, RTP). The hardened profile
additionally resets ufw to deny-by-default, opens STUN/TURN, and restricts
monitoring UIs to localhost.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from somleng_deploy.executors.command import CommandRunner


@dataclass(frozen=True)
class FirewallRule:
    """One `ufw allow` rule."""

    port: str
    protocol: str | None = None
    source: str | None = None
    comment: str = ""

    def args(self) -> list[str]:
        if self.source:
            args = ["allow", "from", self.source, "to", "any", "port", self.port]
            if self.protocol:
                args += ["proto", self.protocol]
            return args
        target = f"{self.port}/{self.protocol}" if self.protocol else self.port
        return ["allow", target]


DEPLOY_RULES: tuple[FirewallRule, ...] = (
    FirewallRule("ssh", comment="SSH"),
    FirewallRule("80", "tcp", comment="HTTP"),
    FirewallRule("443", "tcp", comment="HTTPS"),
    FirewallRule("5060", "udp", comment="SIP"),
    FirewallRule("5060", "tcp", comment="SIP"),
    FirewallRule("5061", "tcp", comment="SIP-TLS"),
    FirewallRule("16384:32768", "udp", comment="RTP"),
    FirewallRule("20000:30000", "udp", comment="RTP"),
)

HARDENED_EXTRA_RULES: tuple[FirewallRule, ...] = (
    FirewallRule("3478", "udp", comment="STUN"),
    FirewallRule("3478", "tcp", comment="STUN"),
    FirewallRule("5349", "tcp", comment="TURN-TLS"),
    FirewallRule("49152:65535", "udp", comment="TURN relay"),
    FirewallRule("9090", source="127.0.0.1", comment="Prometheus"),
    FirewallRule("3001", source="127.0.0.1", comment="Grafana"),
    FirewallRule("5601", source="127.0.0.1", comment="Kibana"),
    FirewallRule("9200", source="127.0.0.1", comment="Elasticsearch"),
)


def rules_for(hardened: bool = False) -> list[FirewallRule]:
    rules = list(DEPLOY_RULES)
    if hardened:
        rules.extend(HARDENED_EXTRA_RULES)
    return rules


def configure_firewall(runner: CommandRunner, hardened: bool = False) -> bool:
    """
    Apply ufw rules and enable the firewall.

    Returns:
        False when ufw is not installed (the firewall is left to the operator).

    Raises:
        CommandFailedError: A ufw command failed.
    """
    if not runner.which("ufw"):
        logger.warning("⚠️ UFW not available. Please configure the firewall manually.")
        return False

    logger.info("🛡️ Configuring firewall rules...")
    if hardened:
        runner.run(["ufw", "--force", "reset"])
        runner.run(["ufw", "default", "deny", "incoming"])
        runner.run(["ufw", "default", "allow", "outgoing"])

    for rule in rules_for(hardened):
        logger.debug(f"ufw {' '.join(rule.args())}  # {rule.comment}")
        runner.run(["ufw", *rule.args()])

    runner.run(["ufw", "--force", "enable"])
    logger.success("✅ Firewall configured")
    return True
