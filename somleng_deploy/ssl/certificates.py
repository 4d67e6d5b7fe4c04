"""
somleng-deploy SSL - Certificate management.

Generates self-signed certificates, obtains Let's Encrypt certificates
through certbot, and reads certificate metadata with openssl. Files live
in <project>/nginx/ssl: privkey.pem, fullchain.pem, dhparam.pem.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from somleng_deploy.config.constants import CERT_WARNING_DAYS, DH_PARAM_BITS, RSA_KEY_BITS, SELF_SIGNED_DAYS
from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import CertificateError, CommandFailedError, ConfigurationError
from somleng_deploy.executors.command import CommandRunner
from somleng_deploy.executors.compose import ComposeClient
from somleng_deploy.ssl.renewal import RenewalInstaller

LETSENCRYPT_LIVE_DIR = Path("/etc/letsencrypt/live")
LETSENCRYPT_SUBDOMAINS = ("monitoring", "logs", "metrics")
OPENSSL_DATE_FORMAT = "%b %d %H:%M:%S %Y %Z"

_INFO_PREFIXES = ("Subject:", "Issuer:", "Not Before", "Not After", "DNS:")


def parse_openssl_date(text: str) -> datetime:
    """
    Parse an openssl date such as 'Jan  1 00:00:00 2025 GMT'.

    Raises:
        CertificateError: Unrecognized format.
    """
    normalized = " ".join(text.split())
    try:
        parsed = datetime.strptime(normalized, OPENSSL_DATE_FORMAT)
    except ValueError as e:
        raise CertificateError(f"Cannot parse certificate date: {text!r}") from e
    return parsed.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class CertificatePaths:
    """Locations of the TLS files nginx reads."""

    ssl_dir: Path

    @property
    def privkey(self) -> Path:
        return self.ssl_dir / "privkey.pem"

    @property
    def fullchain(self) -> Path:
        return self.ssl_dir / "fullchain.pem"

    @property
    def dhparam(self) -> Path:
        return self.ssl_dir / "dhparam.pem"

    @property
    def csr(self) -> Path:
        return self.ssl_dir / "cert.csr"

    @property
    def installed(self) -> bool:
        return self.fullchain.is_file() and self.privkey.is_file()


@dataclass(frozen=True)
class CertificateInfo:
    """Metadata read from fullchain.pem."""

    path: Path
    not_after: datetime
    subject: str = ""
    issuer: str = ""

    def days_remaining(self, now: datetime | None = None) -> int:
        """Whole days until expiry (negative once expired)."""
        now = now or datetime.now(timezone.utc)
        return int((self.not_after - now).total_seconds() // 86400)

    @property
    def self_signed(self) -> bool:
        return bool(self.subject) and self.subject == self.issuer


class CertificateManager:
    """
    TLS certificate operations for one deployment.

    Args:
        config: Deployment configuration (domain, Let's Encrypt email, paths).
        runner: Command runner for openssl/certbot.
        compose: Compose client, needed to stop/start nginx for Let's Encrypt.
        live_dir: Let's Encrypt live directory.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        runner: CommandRunner,
        compose: ComposeClient | None = None,
        live_dir: Path = LETSENCRYPT_LIVE_DIR,
    ) -> None:
        self.config = config
        self.runner = runner
        self.compose = compose
        self.live_dir = live_dir
        self.paths = CertificatePaths(config.ssl_dir)

    @property
    def domain(self) -> str:
        if not self.config.somleng_domain:
            raise ConfigurationError("SOMLENG_DOMAIN is required for certificates")
        return self.config.somleng_domain

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def self_signed(self) -> None:
        """Generate a self-signed certificate and DH parameters."""
        logger.info("🔐 Setting up self-signed SSL certificates...")
        domain = self.domain
        self.paths.ssl_dir.mkdir(parents=True, exist_ok=True)
        subject = f"/C=US/ST=State/L=City/O=Organization/CN={domain}"

        self.runner.run(["openssl", "genrsa", "-out", str(self.paths.privkey), str(RSA_KEY_BITS)])
        self.runner.run([
            "openssl", "req", "-new", "-key", str(self.paths.privkey),
            "-out", str(self.paths.csr), "-subj", subject,
        ])
        self.runner.run([
            "openssl", "x509", "-req", "-days", str(SELF_SIGNED_DAYS),
            "-in", str(self.paths.csr), "-signkey", str(self.paths.privkey),
            "-out", str(self.paths.fullchain),
        ])
        self._ensure_dhparam()
        self._set_permissions()
        self.paths.csr.unlink(missing_ok=True)

        logger.success("✅ Self-signed certificates generated")
        logger.warning("⚠️ Self-signed certificates are not trusted by browsers. Use Let's Encrypt for production.")

    def ensure_certificates(self) -> bool:
        """
        Generate self-signed certificates unless some are already installed.

        Returns:
            True when new certificates were generated.
        """
        if self.paths.installed:
            logger.info("🔐 SSL certificates already exist")
            return False
        self.self_signed()
        return True

    def letsencrypt(self, renewal: RenewalInstaller | None = None) -> None:
        """
        Obtain certificates from Let's Encrypt (certbot standalone).

        nginx is stopped for the HTTP-01 challenge and always started again.

        Raises:
            ConfigurationError: SOMLENG_DOMAIN or LETSENCRYPT_EMAIL missing.
            CertificateError: certbot not installed or issued files missing.
        """
        domain = self.domain
        email = self.config.letsencrypt_email
        if not email:
            raise ConfigurationError("LETSENCRYPT_EMAIL is required for Let's Encrypt")
        if not self.runner.which("certbot"):
            raise CertificateError(
                "certbot is not installed",
                {"hint": "apt-get install -y certbot (or yum install -y certbot)"},
            )
        if self.compose is None:
            raise CertificateError("Let's Encrypt setup needs the compose client to stop nginx")

        logger.info(f"🔐 Requesting Let's Encrypt certificates for {domain}...")
        domain_args: list[str] = []
        for name in (domain, *(f"{sub}.{domain}" for sub in LETSENCRYPT_SUBDOMAINS)):
            domain_args += ["--domains", name]

        self.compose.stop(["nginx"])
        try:
            self.runner.run([
                "certbot", "certonly", "--standalone",
                "--email", email, "--agree-tos", "--no-eff-email", "--non-interactive",
                *domain_args,
            ], timeout=None)
            self._copy_live_certificates(domain)
            self._ensure_dhparam()
            self._set_permissions()
        finally:
            self.compose.start(["nginx"])

        (renewal or RenewalInstaller(self.runner)).install(self.config, self.compose.command)
        logger.success("✅ Let's Encrypt certificates installed")

    def renew(self, renewal: RenewalInstaller | None = None) -> None:
        """Run the installed renewal helper."""
        (renewal or RenewalInstaller(self.runner)).run()

    def _copy_live_certificates(self, domain: str) -> None:
        live = self.live_dir / domain
        if self.runner.dry_run:
            logger.info(f"[dry-run] copy {live}/{{fullchain,privkey}}.pem -> {self.paths.ssl_dir}")
            return
        self.paths.ssl_dir.mkdir(parents=True, exist_ok=True)
        for name in ("fullchain.pem", "privkey.pem"):
            source = live / name
            if not source.is_file():
                raise CertificateError(f"Issued certificate not found: {source}")
            shutil.copy2(source, self.paths.ssl_dir / name)

    def _ensure_dhparam(self) -> None:
        if self.paths.dhparam.is_file():
            return
        logger.info("🔐 Generating DH parameters (this may take a while)...")
        self.runner.run(
            ["openssl", "dhparam", "-out", str(self.paths.dhparam), str(DH_PARAM_BITS)], timeout=None
        )

    def _set_permissions(self) -> None:
        if self.runner.dry_run:
            return
        for path, mode in (
            (self.paths.fullchain, 0o644),
            (self.paths.privkey, 0o600),
            (self.paths.dhparam, 0o644),
        ):
            if path.exists():
                path.chmod(mode)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def read_info(self) -> CertificateInfo:
        """
        Read expiry, subject and issuer of fullchain.pem.

        Raises:
            CertificateError: Certificate missing, unreadable or unparsable.
        """
        if not self.paths.fullchain.is_file():
            raise CertificateError(f"SSL certificate not found: {self.paths.fullchain}")

        try:
            result = self.runner.run([
                "openssl", "x509", "-in", str(self.paths.fullchain),
                "-noout", "-enddate", "-subject", "-issuer",
            ])
        except CommandFailedError as e:
            raise CertificateError("Certificate is invalid", {"stderr": e.stderr.strip()[:200]}) from e

        fields: dict[str, str] = {}
        for line in result.stdout.splitlines():
            key, sep, value = line.partition("=")
            if sep:
                fields[key.strip()] = value.strip()

        if "notAfter" not in fields:
            raise CertificateError("Certificate has no expiry date")

        return CertificateInfo(
            path=self.paths.fullchain,
            not_after=parse_openssl_date(fields["notAfter"]),
            subject=fields.get("subject", ""),
            issuer=fields.get("issuer", ""),
        )

    def verify(self, now: datetime | None = None) -> CertificateInfo:
        """
        Check the installed certificate.

        Raises:
            CertificateError: Missing, invalid or expired.
        """
        logger.info("🔍 Verifying SSL certificates...")
        if not self.paths.installed:
            raise CertificateError("SSL certificates not found", {"ssl_dir": str(self.paths.ssl_dir)})

        info = self.read_info()
        days = info.days_remaining(now)
        if days <= 0:
            raise CertificateError("SSL certificate has expired", {"not_after": info.not_after.isoformat()})

        if days < CERT_WARNING_DAYS:
            logger.warning(f"⚠️ Certificate expires in {days} days")
        else:
            logger.success(f"✅ Certificate valid, expires in {days} days")
        return info

    def describe(self) -> list[str]:
        """Subject/issuer/validity/SAN lines from `openssl x509 -text`."""
        if not self.paths.fullchain.is_file():
            raise CertificateError(f"No certificates found in {self.paths.ssl_dir}")
        result = self.runner.run(["openssl", "x509", "-in", str(self.paths.fullchain), "-text", "-noout"])
        return [
            line.strip()
            for line in result.stdout.splitlines()
            if any(marker in line for marker in _INFO_PREFIXES)
        ]
