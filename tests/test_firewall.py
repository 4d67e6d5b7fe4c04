"""
Tests for ufw firewall configuration.
"""
from conftest import FakeRunner
from somleng_deploy.security.firewall import FirewallRule, configure_firewall, rules_for


class TestFirewallRule:
    """Tests for FirewallRule.args."""

    def test_port_and_protocol(self):
        assert FirewallRule("5060", "udp").args() == ["allow", "5060/udp"]

    def test_named_service(self):
        assert FirewallRule("ssh").args() == ["allow", "ssh"]

    def test_source_restricted(self):
        assert FirewallRule("9090", source="127.0.0.1").args() == [
            "allow", "from", "127.0.0.1", "to", "any", "port", "9090",
        ]


class TestConfigureFirewall:
    """Tests for configure_firewall."""

    def test_missing_ufw(self):
        runner = FakeRunner(binaries=("docker",))
        assert configure_firewall(runner) is False
        assert runner.calls == []

    def test_deploy_rules(self):
        runner = FakeRunner(binaries=("ufw",))

        assert configure_firewall(runner) is True

        assert ["ufw", "allow", "5061/tcp"] in runner.calls
        assert ["ufw", "allow", "16384:32768/udp"] in runner.calls
        assert runner.calls[-1] == ["ufw", "--force", "enable"]
        assert not runner.called("reset")

    def test_hardened_resets_first(self):
        runner = FakeRunner(binaries=("ufw",))

        configure_firewall(runner, hardened=True)

        assert runner.calls[:3] == [
            ["ufw", "--force", "reset"],
            ["ufw", "default", "deny", "incoming"],
            ["ufw", "default", "allow", "outgoing"],
        ]
        assert ["ufw", "allow", "3478/udp"] in runner.calls
        assert runner.calls[-1] == ["ufw", "--force", "enable"]

    def test_hardened_adds_rules(self):
        assert len(rules_for(hardened=True)) > len(rules_for())
