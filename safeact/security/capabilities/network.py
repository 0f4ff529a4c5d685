"""Capabilities — Network.

Outbound HTTP goes through a domain allowlist:

    listed domain, or approved earlier this session → auto
    unknown domain and ``ask_domains``              → user-approved
    unknown domain otherwise                        → deny

A domain that served one successful request is remembered for the rest of
the session.  Requests that actually go out are rate limited per minute.
"""

from __future__ import annotations

import time
from typing import Any
from urllib.parse import urlsplit

import httpx

from safeact.config import NetworkPolicyConfig
from safeact.logging import get_logger
from safeact.security.capabilities.base import BaseCapability
from safeact.security.models import (
    Allowed,
    AuditDecision,
    AuditResult,
    CapabilityResult,
    DecisionLevel,
    Denied,
    PermissionDecision,
    PermissionRequest,
)
from safeact.security.rate_limiter import SlidingWindowLimiter

log = get_logger(__name__)

_RATE_KEY = "network.request"
_BODYLESS_METHODS = frozenset({"GET", "HEAD"})


def extract_domain(url: str) -> str:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValueError(f"Invalid URL: {url}")
    return parts.hostname.lower()


class NetworkCapability(BaseCapability):
    name = "network"
    description = "Outbound HTTP requests with domain allowlist and rate limiting"

    def __init__(
        self,
        config: NetworkPolicyConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        limiter: SlidingWindowLimiter | None = None,
    ) -> None:
        self._config = config
        self._allowed = {d.lower() for d in config.allowed_domains}
        self._session_domains: set[str] = set()
        self._transport = transport
        self._limiter = limiter or SlidingWindowLimiter(config.rate_limit_per_minute, 60.0)

    @property
    def session_domains(self) -> frozenset[str]:
        return frozenset(self._session_domains)

    def check_permission(self, request: PermissionRequest) -> PermissionDecision:
        try:
            domain = extract_domain(request.resource)
        except ValueError:
            return Denied(f"Invalid URL: {request.resource}")

        if domain in self._allowed or domain in self._session_domains:
            return Allowed(DecisionLevel.AUTO)
        if self._config.ask_domains:
            return Allowed(DecisionLevel.USER_APPROVED)
        return Denied(f"Domain not allowed: {domain}")

    async def execute(self, action: str, params: dict[str, Any]) -> CapabilityResult:
        url = params.get("url")
        if not isinstance(url, str) or not url:
            return self._fail(
                action, "", params, 'Missing or invalid "url" parameter',
                decision=AuditDecision.ERROR, result=AuditResult.ERROR,
            )
        if action != "request":
            return self._fail(
                action, url, params, f"Unknown action: {action}", result=AuditResult.ERROR
            )

        decision, refusal = self._guard(action, url, params)
        if refusal is not None:
            log.warning("network_request_refused", url=url, reason=refusal.error)
            return refusal

        if not self._limiter.allow(_RATE_KEY):
            error = f"Rate limit exceeded: {self._limiter.limit} requests per minute"
            log.warning("network_rate_limited", url=url, limit=self._limiter.limit)
            return self._fail(action, url, params, error, result=AuditResult.ERROR)

        method = str(params.get("method") or "GET").upper()
        headers = params.get("headers") or None
        body = params.get("body")
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout_seconds,
                follow_redirects=False,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    content=body if body is not None and method not in _BODYLESS_METHODS else None,
                )
            self._limiter.record(_RATE_KEY)
        except httpx.HTTPError as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            log.error("network_request_failed", url=url, method=method, error=str(exc))
            return self._fail(
                action, url, params, str(exc) or type(exc).__name__,
                decision=AuditDecision.ERROR, result=AuditResult.ERROR, duration_ms=duration_ms,
            )

        text = response.text
        limit = self._config.max_body_chars
        if len(text) > limit:
            text = f"{text[:limit]}... [truncated, {len(response.text)} total chars]"
        output = {
            "status": response.status_code,
            "reason": response.reason_phrase,
            "headers": dict(response.headers),
            "body": text,
        }
        self._session_domains.add(extract_domain(url))
        log.info(
            "network_request_completed",
            url=url,
            method=method,
            status=response.status_code,
        )
        return self._succeed(
            action,
            url,
            params,
            decision,
            output,
            f"HTTP {response.status_code} {response.reason_phrase}",
            started,
        )
