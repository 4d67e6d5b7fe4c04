"""
somleng-deploy Config - Configuration models.

Pydantic schema for the deployment's .env file. Keys are declared with
their environment variable names as aliases; the model is frozen once
loaded so every routine sees the same values for the whole run.
"""

from __future__ import annotations

from ipaddress import IPv4Address, IPv6Address
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress, ValidationInfo, field_validator
from pydantic_core import PydanticUndefined

from somleng_deploy.config.constants import (
    BACKUP_LOCAL_KEEP,
    BACKUP_REMOTE_RETENTION_DAYS,
    COMPOSE_FILE_NAME,
    PLACEHOLDER_VALUES,
    READINESS_INTERVAL_SECONDS,
    READINESS_MAX_ATTEMPTS,
    SERVICE_CATALOG_FILE_NAME,
)


class DeploymentConfig(BaseModel):
    """Immutable view of one deployment's configuration."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    # Identity
    somleng_domain: str | None = Field(default=None, alias="SOMLENG_DOMAIN")
    sip_domain: str | None = Field(default=None, alias="SIP_DOMAIN")
    public_ip: IPvAnyAddress | None = Field(default=None, alias="PUBLIC_IP")
    secret_key_base: str | None = Field(default=None, alias="SECRET_KEY_BASE")

    # Datastores
    postgres_user: str = Field(default="somleng", alias="POSTGRES_USER")
    postgres_password: str | None = Field(default=None, alias="POSTGRES_PASSWORD")
    postgres_db: str = Field(default="somleng_production", alias="POSTGRES_DB")
    kamailio_db_user: str = Field(default="kamailio", alias="KAMAILIO_DB_USER")
    kamailio_db: str = Field(default="kamailio", alias="KAMAILIO_DB")
    redis_password: str | None = Field(default=None, alias="REDIS_PASSWORD")

    # Admin account
    admin_email: str | None = Field(default=None, alias="ADMIN_EMAIL")
    admin_password: str | None = Field(default=None, alias="ADMIN_PASSWORD")

    # TLS
    letsencrypt_email: str | None = Field(default=None, alias="LETSENCRYPT_EMAIL")

    # Backups
    backup_dir: Path = Field(default=Path("/backup"), alias="BACKUP_DIR")
    backup_s3_bucket: str | None = Field(default=None, alias="BACKUP_S3_BUCKET")
    backup_s3_access_key: str | None = Field(default=None, alias="BACKUP_S3_ACCESS_KEY")
    backup_s3_secret_key: str | None = Field(default=None, alias="BACKUP_S3_SECRET_KEY")
    backup_s3_region: str = Field(default="us-east-1", alias="BACKUP_S3_REGION")
    backup_s3_endpoint: str | None = Field(default=None, alias="BACKUP_S3_ENDPOINT")
    backup_keep_local: bool = Field(default=False, alias="BACKUP_KEEP_LOCAL")
    backup_local_keep: int = Field(default=BACKUP_LOCAL_KEEP, ge=1, alias="BACKUP_LOCAL_KEEP")
    backup_remote_retention_days: int = Field(
        default=BACKUP_REMOTE_RETENTION_DAYS, ge=1, alias="BACKUP_REMOTE_RETENTION_DAYS"
    )

    # API smoke test
    test_account_sid: str = Field(default="ACtest123", alias="TEST_ACCOUNT_SID")
    test_auth_token: str = Field(default="test_token_123", alias="TEST_AUTH_TOKEN")

    # Readiness polling
    readiness_max_attempts: int = Field(
        default=READINESS_MAX_ATTEMPTS, ge=1, le=1000, alias="READINESS_MAX_ATTEMPTS"
    )
    readiness_interval: float = Field(
        default=READINESS_INTERVAL_SECONDS, ge=0, le=300, alias="READINESS_INTERVAL"
    )

    # Resolved by the loader, not read from .env
    project_dir: Path = Field(default_factory=Path.cwd)
    env_file: Path | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_placeholders(cls, value: Any, info: ValidationInfo) -> Any:
        """Treat empty strings and template placeholders as unset."""
        if not isinstance(value, str):
            return value
        stripped = value.strip()
        if stripped and stripped not in PLACEHOLDER_VALUES:
            return stripped
        # Keys with a real default fall back to it instead of None
        default = cls.model_fields[info.field_name].default
        return None if default is PydanticUndefined else default

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def compose_file(self) -> Path:
        return self.project_dir / COMPOSE_FILE_NAME

    @property
    def ssl_dir(self) -> Path:
        return self.project_dir / "nginx" / "ssl"

    @property
    def service_catalog_file(self) -> Path:
        return self.project_dir / SERVICE_CATALOG_FILE_NAME

    @property
    def effective_sip_domain(self) -> str | None:
        return self.sip_domain or self.somleng_domain

    @property
    def s3_configured(self) -> bool:
        """S3 upload needs a bucket and both keys."""
        return bool(self.backup_s3_bucket and self.backup_s3_access_key and self.backup_s3_secret_key)

    @property
    def public_ip_str(self) -> str | None:
        if isinstance(self.public_ip, (IPv4Address, IPv6Address)):
            return str(self.public_ip)
        return None

    def value_for(self, key: str) -> Any:
        """Look up a value by its environment variable name."""
        for name, field in type(self).model_fields.items():
            if field.alias == key or name == key:
                return getattr(self, name)
        raise KeyError(key)

    def is_set(self, key: str) -> bool:
        """True when the key holds a non-placeholder value."""
        return self.value_for(key) not in (None, "")

    def secrets(self) -> list[str]:
        """Secret values to scrub from logs."""
        candidates = [
            self.secret_key_base,
            self.postgres_password,
            self.redis_password,
            self.admin_password,
            self.backup_s3_secret_key,
            self.backup_s3_access_key,
        ]
        return [s for s in candidates if s]


KNOWN_ENV_KEYS = tuple(
    field.alias for field in DeploymentConfig.model_fields.values() if field.alias
)
