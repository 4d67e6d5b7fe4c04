"""
somleng-deploy SSL - TLS certificates for nginx.
"""

from somleng_deploy.ssl.certificates import (
    CertificateInfo,
    CertificateManager,
    CertificatePaths,
    parse_openssl_date,
)
from somleng_deploy.ssl.renewal import RenewalInstaller, add_cron_line

__all__ = [
    "CertificateInfo",
    "CertificateManager",
    "CertificatePaths",
    "RenewalInstaller",
    "add_cron_line",
    "parse_openssl_date",
]
