"""
Tests for the Somleng REST API smoke test.
"""
import json

import httpx
import pytest

from somleng_deploy.api_check import API_VERSION_PATH, ApiSmokeTester
from somleng_deploy.core.exceptions import ConfigurationError
from somleng_deploy.core.types import CheckStatus

BASE = f"https://somleng.example.com{API_VERSION_PATH}/Accounts/ACtest123"


class FakeSomleng:
    """Just enough of the Somleng API to answer the smoke test."""

    def __init__(self, broken=()):
        self.broken = set(broken)
        self.requests = []
        self.created = {}

    def __call__(self, request):
        self.requests.append(request)
        url = str(request.url)
        path = request.url.path

        if path in self.broken:
            return httpx.Response(500, text="boom")
        if url == "https://somleng.example.com/health":
            return httpx.Response(200, text="OK")
        if url == f"https://somleng.example.com{API_VERSION_PATH}/Accounts/ACtest123.json":
            return httpx.Response(200, json={"sid": "ACtest123"})

        for endpoint, key, prefix in (("Calls", "calls", "CA"), ("Messages", "messages", "SM")):
            if url == f"{BASE}/{endpoint}.json" and request.method == "GET":
                return httpx.Response(200, json={key: []})
            if url == f"{BASE}/{endpoint}.json" and request.method == "POST":
                sid = f"{prefix}0001"
                self.created[sid] = dict(httpx.QueryParams(request.content.decode()))
                return httpx.Response(201, json={"sid": sid})
            if url.startswith(f"{BASE}/{endpoint}/") and request.method == "GET":
                sid = url.rsplit("/", 1)[-1].removesuffix(".json")
                if sid in self.created:
                    return httpx.Response(200, json={"sid": sid})
                return httpx.Response(404, json={"message": "not found"})

        if url == f"{BASE}/IncomingPhoneNumbers.json":
            return httpx.Response(200, json={"incoming_phone_numbers": []})
        if url == f"{BASE}/Recordings.json":
            return httpx.Response(200, json={"recordings": []})
        return httpx.Response(404, text="not found")


def tester(config, api):
    client = httpx.Client(transport=httpx.MockTransport(api))
    return ApiSmokeTester(config, client=client, sleep=lambda s: None)


class TestApiSmokeTester:
    """Tests for ApiSmokeTester."""

    def test_all_pass(self, config):
        api = FakeSomleng()
        report = tester(config, api).run()

        assert report.passed
        assert [c.name for c in report.checks] == [
            "health", "account", "phone_numbers", "calls", "call_create", "call_fetch",
            "messages", "message_create", "message_fetch", "recordings",
        ]
        assert all(c.status == CheckStatus.OK for c in report.checks)

    def test_create_posts_test_numbers(self, config):
        api = FakeSomleng()
        tester(config, api).run()

        assert api.created["CA0001"]["To"] == "+15005550009"
        assert api.created["CA0001"]["From"] == "+15005550006"
        assert api.created["SM0001"]["Body"] == "Test message from Somleng CPaaS"

    def test_broken_account_fails(self, config):
        api = FakeSomleng(broken={f"{API_VERSION_PATH}/Accounts/ACtest123.json"})
        report = tester(config, api).run()

        assert not report.passed
        assert report.failed_checks == ["account"]

    def test_list_endpoint_is_warning(self, config):
        """Unexpected list bodies are warnings, not failures."""
        api = FakeSomleng(broken={f"{API_VERSION_PATH}/Accounts/ACtest123/Recordings.json"})
        report = tester(config, api).run()

        assert report.passed
        recordings = [c for c in report.checks if c.name == "recordings"][0]
        assert recordings.status == CheckStatus.WARNING

    def test_create_without_sid(self, config):
        def api(request):
            if request.method == "POST":
                return httpx.Response(422, json={"message": "invalid"})
            return FakeSomleng()(request)

        checks = tester(config, api).check_create_and_fetch("call", "/Calls", {"To": "+1"})
        assert [c.name for c in checks] == ["call_create"]
        assert checks[0].status == CheckStatus.ERROR

    def test_connection_error(self, config):
        def api(request):
            raise httpx.ConnectError("refused")

        check = tester(config, api).check_health()
        assert check.status == CheckStatus.ERROR

    def test_empty_health_body(self, config):
        check = tester(config, lambda r: httpx.Response(200, text="")).check_health()
        assert check.status == CheckStatus.WARNING

    def test_non_json_account(self, config):
        check = tester(config, lambda r: httpx.Response(200, text="<html>")).check_account()
        assert check.status == CheckStatus.ERROR

    def test_requires_domain(self, project_dir, write_env):
        from somleng_deploy.config import load_config

        write_env(project_dir, SOMLENG_DOMAIN=None)
        with pytest.raises(ConfigurationError):
            ApiSmokeTester(load_config(project_dir))

    def test_default_client_uses_basic_auth(self, config):
        with ApiSmokeTester(config) as smoke:
            assert smoke.client.auth is not None
            assert smoke.base_url == f"https://somleng.example.com{API_VERSION_PATH}"


def test_json_helper_ignores_lists(config):
    check = tester(config, lambda r: httpx.Response(200, content=json.dumps([1, 2]))).check_account()
    assert check.status == CheckStatus.ERROR
