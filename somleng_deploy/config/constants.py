"""
somleng-deploy Configuration Constants.

Centralized constants for timeouts, ports, file names and limits.
"""

# Files
ENV_FILE_NAME = ".env"
ENV_TEMPLATE_NAME = ".env.example"
COMPOSE_FILE_NAME = "docker-compose.yml"
SERVICE_CATALOG_FILE_NAME = "somleng-services.yml"

# Values copied verbatim from .env.example that mean "not configured"
PLACEHOLDER_VALUES = frozenset({
    "YOUR_PUBLIC_IP_HERE",
    "YOUR_SERVER_IP",
    "YOUR_DOMAIN_HERE",
    "changeme",
    "CHANGE_ME",
})

# Keys the deploy verb refuses to run without
DEPLOY_REQUIRED_KEYS = (
    "SOMLENG_DOMAIN",
    "PUBLIC_IP",
    "SECRET_KEY_BASE",
    "POSTGRES_PASSWORD",
    "ADMIN_PASSWORD",
)
DEPLOY_REQUIRED_BINARIES = ("docker", "openssl")

# Readiness polling (seconds / attempts)
READINESS_MAX_ATTEMPTS = 30
READINESS_INTERVAL_SECONDS = 2.0
PROBE_TIMEOUT_SECONDS = 5.0

# Command timeouts (seconds)
COMMAND_DEFAULT_TIMEOUT = 600
COMMAND_PROBE_TIMEOUT = 15

# Resource warnings
MIN_FREE_DISK_GB = 20
MIN_AVAILABLE_MEMORY_GB = 8

# Backup
BACKUP_PREFIX = "somleng_backup_"
BACKUP_SUFFIX = ".tar.gz"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
BACKUP_REMOTE_PREFIX = "somleng-backups/"
BACKUP_LOCAL_KEEP = 7
BACKUP_REMOTE_RETENTION_DAYS = 30

# TLS
CERT_WARNING_DAYS = 30
DH_PARAM_BITS = 2048
RSA_KEY_BITS = 2048
SELF_SIGNED_DAYS = 365
RENEWAL_SCRIPT_PATH = "/usr/local/bin/renew-somleng-certs.sh"
RENEWAL_CRON_SCHEDULE = "0 3 * * *"

# Host resource thresholds for the health suite (percent)
USAGE_WARNING_PERCENT = 80
USAGE_CRITICAL_PERCENT = 90

# Host hardening
HARDENING_STEPS = (
    "firewall",
    "fail2ban",
    "ssh",
    "kernel",
    "docker",
    "log-monitoring",
    "intrusion-detection",
    "permissions",
    "auto-updates",
)
SECURITY_REPORT_PATH = "/tmp/somleng_security_report.txt"
SECCOMP_PROFILE_URL = "https://raw.githubusercontent.com/moby/moby/master/profiles/seccomp/default.json"
