"""Unit tests — NetworkCapability (httpx.MockTransport, no real sockets)."""

from __future__ import annotations

import httpx
import pytest

from safeact.config import NetworkPolicyConfig
from safeact.security.capabilities.network import NetworkCapability, extract_domain
from safeact.security.models import (
    APPROVAL_TOKEN_KEY,
    Allowed,
    AuditDecision,
    AuditResult,
    DecisionLevel,
    Denied,
    PermissionRequest,
)
from safeact.security.rate_limiter import SlidingWindowLimiter

pytestmark = pytest.mark.unit


def _req(url: str) -> PermissionRequest:
    return PermissionRequest(capability="network", action="request", resource=url)


def _capability(
    handler: object = None,
    limiter: SlidingWindowLimiter | None = None,
    **config: object,
) -> NetworkCapability:
    def default(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="pong")

    policy = NetworkPolicyConfig(allowed_domains=["api.github.com"], **config)
    return NetworkCapability(
        policy, transport=httpx.MockTransport(handler or default), limiter=limiter
    )


class TestExtractDomain:
    def test_lowercases_host(self) -> None:
        assert extract_domain("https://API.GitHub.com/repos") == "api.github.com"

    @pytest.mark.parametrize("url", ["ftp://example.com", "not a url", "https://"])
    def test_rejects_non_http(self, url: str) -> None:
        with pytest.raises(ValueError):
            extract_domain(url)


class TestPermission:
    def test_allowed_domain_is_auto(self) -> None:
        assert _capability().check_permission(_req("https://api.github.com/x")) == Allowed(
            DecisionLevel.AUTO
        )

    def test_unknown_domain_asks(self) -> None:
        assert _capability().check_permission(_req("https://example.com")) == Allowed(
            DecisionLevel.USER_APPROVED
        )

    def test_unknown_domain_denied_when_asking_disabled(self) -> None:
        decision = _capability(ask_domains=False).check_permission(_req("https://example.com"))
        assert decision == Denied("Domain not allowed: example.com")

    def test_invalid_url(self) -> None:
        decision = _capability().check_permission(_req("file:///etc/passwd"))
        assert decision == Denied("Invalid URL: file:///etc/passwd")


class TestExecute:
    async def test_get_allowed_domain(self) -> None:
        result = await _capability().execute("request", {"url": "https://api.github.com/zen"})

        assert result.success is True
        assert result.output["status"] == 200
        assert result.output["body"] == "pong"
        assert result.audit_entry.output == "HTTP 200 OK"
        assert result.audit_entry.decision is AuditDecision.AUTO_APPROVED

    async def test_post_sends_body_and_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201)

        capability = _capability(handler)
        result = await capability.execute(
            "request",
            {
                "url": "https://api.github.com/issues",
                "method": "post",
                "headers": {"X-Test": "1"},
                "body": '{"title":"bug"}',
            },
        )

        assert result.output["status"] == 201
        assert seen[0].method == "POST"
        assert seen[0].content == b'{"title":"bug"}'
        assert seen[0].headers["X-Test"] == "1"

    async def test_unknown_domain_requires_token(self) -> None:
        result = await _capability().execute("request", {"url": "https://example.com"})
        assert result.success is False
        assert result.error == "Missing explicit user approval token"

    async def test_domain_remembered_after_success(self) -> None:
        capability = _capability()
        result = await capability.execute(
            "request", {"url": "https://example.com/a", APPROVAL_TOKEN_KEY: True}
        )

        assert result.success is True
        assert result.audit_entry.decision is AuditDecision.USER_APPROVED
        assert "example.com" in capability.session_domains
        assert capability.check_permission(_req("https://example.com/b")) == Allowed(
            DecisionLevel.AUTO
        )

    async def test_rate_limit(self) -> None:
        capability = _capability(limiter=SlidingWindowLimiter(limit=1))
        first = await capability.execute("request", {"url": "https://api.github.com/a"})
        second = await capability.execute("request", {"url": "https://api.github.com/b"})

        assert first.success is True
        assert second.success is False
        assert second.error == "Rate limit exceeded: 1 requests per minute"
        assert second.audit_entry.result is AuditResult.ERROR

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await _capability(handler).execute(
            "request", {"url": "https://api.github.com/x"}
        )

        assert result.success is False
        assert result.error == "connection refused"
        assert result.audit_entry.decision is AuditDecision.ERROR

    async def test_failed_request_does_not_approve_domain(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        capability = _capability(handler)
        await capability.execute(
            "request", {"url": "https://example.com", APPROVAL_TOKEN_KEY: True}
        )
        assert capability.session_domains == frozenset()

    async def test_large_body_truncated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="x" * 1000)

        result = await _capability(handler, max_body_chars=256).execute(
            "request", {"url": "https://api.github.com/big"}
        )

        assert result.output["body"].endswith("... [truncated, 1000 total chars]")
        assert result.output["body"].startswith("x" * 256)

    async def test_missing_url(self) -> None:
        result = await _capability().execute("request", {})
        assert result.success is False
        assert result.error == 'Missing or invalid "url" parameter'
