"""Unit tests for the magic-link rate limiter."""

from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from groupsplit.auth.rate_limiter import AuthRateLimiter, RateLimitConfig


def fake_request(ip="10.0.0.1", headers=None):
    return SimpleNamespace(headers=headers or {}, client=SimpleNamespace(host=ip))


@pytest.fixture
def limiter():
    return AuthRateLimiter(
        RateLimitConfig(
            max_requests=3,
            window_seconds=60,
            failure_penalty_minutes=15,
            max_failures_before_block=2,
            bypass_ips={"127.0.0.9"},
        )
    )


@pytest.mark.unit
class TestRequestLimits:
    """Test the per-IP sliding window."""

    def test_allows_up_to_limit(self, limiter):
        request = fake_request()
        for _ in range(3):
            limiter.check_rate_limit(request, "login")

    def test_blocks_over_limit(self, limiter):
        request = fake_request()
        for _ in range(3):
            limiter.check_rate_limit(request, "login")

        with pytest.raises(HTTPException) as exc_info:
            limiter.check_rate_limit(request, "login")

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == "60"

    def test_endpoints_are_counted_separately(self, limiter):
        request = fake_request()
        for _ in range(3):
            limiter.check_rate_limit(request, "login")
        limiter.check_rate_limit(request, "verify")

    def test_ips_are_counted_separately(self, limiter):
        for _ in range(3):
            limiter.check_rate_limit(fake_request("10.0.0.1"), "login")
        limiter.check_rate_limit(fake_request("10.0.0.2"), "login")

    def test_forwarded_for_is_ignored_by_default(self, limiter):
        for i in range(3):
            limiter.check_rate_limit(
                fake_request("10.0.0.1", {"X-Forwarded-For": f"203.0.113.{i}"}), "login"
            )

        with pytest.raises(HTTPException) as exc_info:
            limiter.check_rate_limit(
                fake_request("10.0.0.1", {"X-Forwarded-For": "203.0.113.99"}), "login"
            )
        assert exc_info.value.status_code == 429

    def test_forwarded_for_identifies_client_behind_trusted_proxy(self):
        limiter = AuthRateLimiter(RateLimitConfig(max_requests=3, trust_proxy_headers=True))
        proxied = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        for _ in range(3):
            limiter.check_rate_limit(fake_request("10.0.0.1", proxied), "login")

        # Same proxy, different real client
        limiter.check_rate_limit(
            fake_request("10.0.0.1", {"X-Forwarded-For": "203.0.113.8"}), "login"
        )
        with pytest.raises(HTTPException):
            limiter.check_rate_limit(fake_request("10.0.0.1", proxied), "login")

    def test_idle_counters_are_dropped(self, limiter, monkeypatch):
        clock = [1000.0]
        monkeypatch.setattr(
            "groupsplit.auth.rate_limiter.time", SimpleNamespace(time=lambda: clock[0])
        )

        for i in range(5):
            limiter.check_rate_limit(fake_request(f"10.0.1.{i}"), "login")
        limiter.record_auth_failure(fake_request("10.0.1.0"))
        assert len(limiter._requests) == 5

        clock[0] += 61
        limiter.check_rate_limit(fake_request("10.0.2.1"), "login")

        assert list(limiter._requests) == [("10.0.2.1", "login")]
        assert not limiter._failures

    def test_bypass_ip(self, limiter):
        request = fake_request("127.0.0.9")
        for _ in range(10):
            limiter.check_rate_limit(request, "login")

    def test_reset(self, limiter):
        request = fake_request()
        for _ in range(3):
            limiter.check_rate_limit(request, "login")
        limiter.reset()
        limiter.check_rate_limit(request, "login")


@pytest.mark.unit
class TestFailureBlocking:
    """Test temporary blocking after failed verifications."""

    def test_blocks_after_repeated_failures(self, limiter):
        request = fake_request()
        limiter.record_auth_failure(request)
        limiter.record_auth_failure(request)

        with pytest.raises(HTTPException) as exc_info:
            limiter.check_rate_limit(request, "verify")

        assert exc_info.value.status_code == 429
        assert int(exc_info.value.headers["Retry-After"]) > 60

    def test_block_applies_to_every_endpoint(self, limiter):
        request = fake_request()
        limiter.record_auth_failure(request)
        limiter.record_auth_failure(request)

        with pytest.raises(HTTPException):
            limiter.check_rate_limit(request, "login")

    def test_success_clears_failures(self, limiter):
        request = fake_request()
        limiter.record_auth_failure(request)
        limiter.record_auth_success(request)
        limiter.record_auth_failure(request)

        limiter.check_rate_limit(request, "verify")

    def test_other_ips_unaffected(self, limiter):
        limiter.record_auth_failure(fake_request("10.0.0.1"))
        limiter.record_auth_failure(fake_request("10.0.0.1"))

        limiter.check_rate_limit(fake_request("10.0.0.2"), "verify")
