"""
Tests for .env loading and the DeploymentConfig model.
"""
from pathlib import Path

import pytest

from somleng_deploy.config import load_config, resolve_env_file
from somleng_deploy.core.exceptions import ConfigurationError


class TestLoadConfig:
    """Tests for load_config."""

    def test_reads_env_file(self, project_dir):
        """Values from .env land on the model."""
        config = load_config(project_dir)
        assert config.somleng_domain == "somleng.example.com"
        assert config.public_ip_str == "203.0.113.10"
        assert config.readiness_max_attempts == 3
        assert config.readiness_interval == 0
        assert config.project_dir == project_dir.resolve()
        assert config.env_file == project_dir.resolve() / ".env"

    def test_defaults_for_unset_keys(self, project_dir):
        """Keys absent from .env keep their defaults."""
        config = load_config(project_dir)
        assert config.postgres_user == "somleng"
        assert config.postgres_db == "somleng_production"
        assert config.backup_local_keep == 7
        assert config.backup_remote_retention_days == 30
        assert config.backup_s3_region == "us-east-1"

    def test_missing_file_raises(self, tmp_path):
        """A required .env that does not exist is a configuration error."""
        with pytest.raises(ConfigurationError, match=".env file not found"):
            load_config(tmp_path)

    def test_missing_file_allowed(self, tmp_path, monkeypatch):
        """Backups may run from process environment alone."""
        monkeypatch.setenv("SOMLENG_DOMAIN", "env.example.com")
        config = load_config(tmp_path, require_file=False)
        assert config.somleng_domain == "env.example.com"
        assert config.env_file is None

    def test_file_wins_over_environment(self, project_dir, monkeypatch):
        """Process environment only fills keys the file does not set."""
        monkeypatch.setenv("SOMLENG_DOMAIN", "other.example.com")
        monkeypatch.setenv("POSTGRES_DB", "from_env")
        config = load_config(project_dir)
        assert config.somleng_domain == "somleng.example.com"
        assert config.postgres_db == "from_env"

    def test_placeholders_are_unset(self, project_dir, write_env):
        """Template placeholders count as missing."""
        write_env(project_dir, PUBLIC_IP="YOUR_PUBLIC_IP_HERE", POSTGRES_USER="")
        config = load_config(project_dir)
        assert config.public_ip is None
        assert not config.is_set("PUBLIC_IP")
        assert config.postgres_user == "somleng"

    def test_invalid_value_raises(self, project_dir, write_env):
        """Malformed values surface as ConfigurationError naming the field."""
        write_env(project_dir, PUBLIC_IP="not-an-ip")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(project_dir)
        assert "PUBLIC_IP" in exc_info.value.message

    def test_zero_attempts_rejected(self, project_dir, write_env):
        """Readiness attempts must be at least one."""
        write_env(project_dir, READINESS_MAX_ATTEMPTS="0")
        with pytest.raises(ConfigurationError):
            load_config(project_dir)

    def test_explicit_env_file(self, project_dir, tmp_path_factory, write_env):
        """--env-file points at a file outside the project."""
        other = tmp_path_factory.mktemp("elsewhere")
        env_path = write_env(other, SOMLENG_DOMAIN="staging.example.com")
        config = load_config(project_dir, env_path)
        assert config.somleng_domain == "staging.example.com"

    def test_config_is_frozen(self, config):
        """Configuration cannot change after loading."""
        with pytest.raises(Exception):
            config.somleng_domain = "changed.example.com"


class TestDerivedValues:
    """Tests for derived properties."""

    def test_paths(self, config, project_dir):
        root = project_dir.resolve()
        assert config.compose_file == root / "docker-compose.yml"
        assert config.ssl_dir == root / "nginx" / "ssl"
        assert config.service_catalog_file == root / "somleng-services.yml"

    def test_sip_domain_falls_back(self, config):
        """SIP domain defaults to the web domain."""
        assert config.effective_sip_domain == "somleng.example.com"

    def test_s3_needs_bucket_and_keys(self, project_dir, write_env):
        write_env(project_dir, BACKUP_S3_BUCKET="bucket")
        assert not load_config(project_dir).s3_configured

        write_env(
            project_dir,
            BACKUP_S3_BUCKET="bucket",
            BACKUP_S3_ACCESS_KEY="AKIAEXAMPLE",
            BACKUP_S3_SECRET_KEY="secret-example",
        )
        assert load_config(project_dir).s3_configured

    def test_value_for_unknown_key(self, config):
        with pytest.raises(KeyError):
            config.value_for("NOT_A_KEY")

    def test_secrets(self, config):
        """Secrets list holds the values to scrub from logs."""
        secrets = config.secrets()
        assert "pg-secret-pass" in secrets
        assert "admin-secret-pass" in secrets
        assert "somleng.example.com" not in secrets


def test_resolve_env_file(tmp_path):
    assert resolve_env_file(tmp_path) == tmp_path / ".env"
    assert resolve_env_file(tmp_path, tmp_path / "custom.env") == (tmp_path / "custom.env").resolve()
    assert isinstance(resolve_env_file(tmp_path, str(tmp_path / "x.env")), Path)
