"""
somleng-deploy API smoke test.

Exercises the Somleng Twilio-compatible REST API with the test account:
health, account, phone numbers, calls, messages and recordings. Creating a
call or message is followed by fetching it back by SID.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from somleng_deploy.config.constants import PROBE_TIMEOUT_SECONDS
from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import ConfigurationError
from somleng_deploy.core.types import CheckStatus, HealthCheck

API_VERSION_PATH = "/api/2010-04-01"
TEST_FROM_NUMBER = "+15005550006"
TEST_TO_NUMBER = "+15005550009"
TEST_VOICE_URL = "https://demo.twilio.com/docs/voice.xml"
RETRIEVAL_DELAY_SECONDS = 2.0


@dataclass
class ApiTestReport:
    """Results of an API smoke-test run."""

    base_url: str
    checks: list[HealthCheck] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not any(c.failed for c in self.checks)

    @property
    def failed_checks(self) -> list[str]:
        return [c.name for c in self.checks if c.failed]


def _json(response: httpx.Response) -> dict[str, Any] | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class ApiSmokeTester:
    """
    Runs the API smoke tests.

    Args:
        config: Deployment configuration (domain and test credentials).
        client: Preconfigured httpx client (tests); default talks to the domain over HTTPS.
        sleep: Sleep before fetching a freshly created resource.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not config.somleng_domain:
            raise ConfigurationError("SOMLENG_DOMAIN is required for the API test")
        self.config = config
        self.sid = config.test_account_sid
        self.domain = config.somleng_domain
        self.base_url = f"https://{self.domain}{API_VERSION_PATH}"
        self._own_client = client is None
        self.client = client or httpx.Client(
            auth=(self.sid, config.test_auth_token),
            verify=False,
            timeout=PROBE_TIMEOUT_SECONDS * 2,
        )
        self._sleep = sleep

    def close(self) -> None:
        if self._own_client:
            self.client.close()

    def __enter__(self) -> ApiSmokeTester:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/Accounts/{self.sid}{endpoint}"

    def _request(self, method: str, url: str, data: dict[str, str] | None = None) -> httpx.Response | None:
        try:
            return self.client.request(method, url, data=data)
        except httpx.HTTPError as e:
            logger.debug(f"{method} {url} failed: {e}")
            return None

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def check_health(self) -> HealthCheck:
        response = self._request("GET", f"https://{self.domain}/health")
        if response is None:
            return HealthCheck("health", CheckStatus.ERROR, "❌ Health endpoint is not responding")
        if response.text.strip():
            return HealthCheck("health", CheckStatus.OK, "✅ Health endpoint is responding")
        return HealthCheck("health", CheckStatus.WARNING, "⚠️ Health endpoint returned an empty body")

    def check_account(self) -> HealthCheck:
        response = self._request("GET", f"{self.base_url}/Accounts/{self.sid}.json")
        if response is None:
            return HealthCheck("account", CheckStatus.ERROR, "❌ Failed to connect to account endpoint")
        body = _json(response)
        if body and "sid" in body:
            return HealthCheck("account", CheckStatus.OK, "✅ Account endpoint is working")
        return HealthCheck(
            "account", CheckStatus.ERROR,
            f"❌ Account endpoint returned unexpected response (HTTP {response.status_code})",
        )

    def check_list(self, name: str, endpoint: str, key: str) -> HealthCheck:
        """List endpoints: unexpected bodies are a warning (may simply be empty)."""
        response = self._request("GET", self._url(endpoint))
        if response is None:
            return HealthCheck(name, CheckStatus.ERROR, f"❌ Failed to get {name.replace('_', ' ')}")
        body = _json(response)
        if body is not None and key in body:
            return HealthCheck(name, CheckStatus.OK, f"✅ {name.replace('_', ' ').capitalize()} endpoint is working")
        return HealthCheck(
            name, CheckStatus.WARNING,
            f"⚠️ {name.replace('_', ' ').capitalize()} endpoint returned HTTP {response.status_code}",
        )

    def check_create_and_fetch(self, name: str, endpoint: str, data: dict[str, str]) -> list[HealthCheck]:
        """POST a resource, then GET it back by SID."""
        response = self._request("POST", self._url(f"{endpoint}.json"), data=data)
        if response is None:
            return [HealthCheck(f"{name}_create", CheckStatus.ERROR, f"❌ Failed to create {name}")]

        body = _json(response)
        sid = body.get("sid") if body else None
        if not sid:
            return [HealthCheck(
                f"{name}_create", CheckStatus.ERROR,
                f"❌ {name.capitalize()} creation returned unexpected response (HTTP {response.status_code})",
            )]

        created = HealthCheck(
            f"{name}_create", CheckStatus.OK, f"✅ {name.capitalize()} creation is working ({sid})", details={"sid": sid}
        )

        self._sleep(RETRIEVAL_DELAY_SECONDS)
        fetched = self._request("GET", self._url(f"{endpoint}/{sid}.json"))
        fetched_body = _json(fetched) if fetched is not None else None
        if fetched_body and fetched_body.get("sid") == sid:
            retrieval = HealthCheck(f"{name}_fetch", CheckStatus.OK, f"✅ {name.capitalize()} retrieval is working")
        else:
            retrieval = HealthCheck(f"{name}_fetch", CheckStatus.ERROR, f"❌ {name.capitalize()} retrieval failed")
        return [created, retrieval]

    # ------------------------------------------------------------------
    # Suite
    # ------------------------------------------------------------------

    def run(self) -> ApiTestReport:
        logger.info(f"🧪 Testing Somleng API at {self.base_url} (account {self.sid})")
        report = ApiTestReport(self.base_url)

        report.checks.append(self.check_health())
        report.checks.append(self.check_account())
        report.checks.append(self.check_list("phone_numbers", "/IncomingPhoneNumbers.json", "incoming_phone_numbers"))
        report.checks.append(self.check_list("calls", "/Calls.json", "calls"))
        report.checks.extend(self.check_create_and_fetch(
            "call", "/Calls", {"To": TEST_TO_NUMBER, "From": TEST_FROM_NUMBER, "Url": TEST_VOICE_URL},
        ))
        report.checks.append(self.check_list("messages", "/Messages.json", "messages"))
        report.checks.extend(self.check_create_and_fetch(
            "message", "/Messages",
            {"To": TEST_TO_NUMBER, "From": TEST_FROM_NUMBER, "Body": "Test message from Somleng CPaaS"},
        ))
        report.checks.append(self.check_list("recordings", "/Recordings.json", "recordings"))

        logger.debug(f"API test complete: {len(report.checks)} checks, passed={report.passed}")
        return report
