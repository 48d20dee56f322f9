"""Rate limiting for the magic-link endpoints to prevent email flooding and token guessing."""

import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, Optional, Set, Tuple

from fastapi import Request, HTTPException, status

from ..utils.logging_config import get_logger

logger = get_logger("auth")


@dataclass
class RateLimitConfig:
    """Sliding-window limits applied per client IP and endpoint."""

    max_requests: int = 10
    window_seconds: int = 60
    failure_penalty_minutes: int = 15
    max_failures_before_block: int = 5
    bypass_ips: Set[str] = field(default_factory=set)
    trust_proxy_headers: bool = False


class AuthRateLimiter:
    """Per-IP sliding window counters with temporary blocking after failures."""

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config or RateLimitConfig()

        # {(ip, endpoint): deque of request timestamps}
        self._requests: Dict[Tuple[str, str], Deque[float]] = defaultdict(deque)

        # {ip: deque of failure timestamps}
        self._failures: Dict[str, Deque[float]] = defaultdict(deque)

        # {ip: block_until_timestamp}
        self._blocked_ips: Dict[str, float] = {}

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request.

        Forwarding headers are client-controlled, so they are read only when
        the service sits behind a proxy that overwrites them.
        """
        if self.config.trust_proxy_headers:
            forwarded_for = request.headers.get("X-Forwarded-For")
            if forwarded_for:
                return forwarded_for.split(",")[0].strip()

            real_ip = request.headers.get("X-Real-IP")
            if real_ip:
                return real_ip

        return request.client.host if request.client else "unknown"

    @staticmethod
    def _prune(window: Deque[float], cutoff: float) -> None:
        while window and window[0] < cutoff:
            window.popleft()

    def _cleanup_expired_blocks(self, now: float) -> None:
        expired = [ip for ip, until in self._blocked_ips.items() if now > until]
        for ip in expired:
            del self._blocked_ips[ip]
            logger.info(f"Unblocked IP {ip} after penalty period")

    def _cleanup_idle_windows(self, now: float) -> None:
        """Drop counters whose window holds no timestamp any more."""
        cutoff = now - self.config.window_seconds
        for counters in (self._requests, self._failures):
            for key in list(counters):
                self._prune(counters[key], cutoff)
                if not counters[key]:
                    del counters[key]

    def check_rate_limit(self, request: Request, endpoint: str) -> None:
        """
        Count a request against the limit for ``endpoint``.

        Args:
            request: FastAPI request object
            endpoint: Endpoint identifier (e.g., "login", "verify")

        Raises:
            HTTPException: 429 Too Many Requests with Retry-After
        """
        ip = self._get_client_ip(request)
        if ip in self.config.bypass_ips:
            return

        now = time.time()
        self._cleanup_expired_blocks(now)
        self._cleanup_idle_windows(now)

        if ip in self._blocked_ips:
            block_until = datetime.fromtimestamp(self._blocked_ips[ip], tz=timezone.utc)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"IP blocked after repeated failed sign-in attempts until {block_until.isoformat()}",
                headers={"Retry-After": str(max(1, int(self._blocked_ips[ip] - now)))},
            )

        key = (ip, endpoint)
        window = self._requests[key]
        self._prune(window, now - self.config.window_seconds)

        if len(window) >= self.config.max_requests:
            logger.warning(
                f"Rate limit exceeded for {ip} on {endpoint}: {len(window)} requests in window"
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=(
                    f"Maximum {self.config.max_requests} requests per "
                    f"{self.config.window_seconds} seconds"
                ),
                headers={"Retry-After": str(self.config.window_seconds)},
            )

        window.append(now)

    def record_auth_failure(self, request: Request) -> None:
        """Record a failed magic-link verification, blocking the IP past the threshold."""
        ip = self._get_client_ip(request)
        now = time.time()

        failures = self._failures[ip]
        self._prune(failures, now - self.config.window_seconds)
        failures.append(now)

        logger.warning(
            f"Authentication failure for IP {ip}: "
            f"{len(failures)}/{self.config.max_failures_before_block} in window"
        )

        if len(failures) >= self.config.max_failures_before_block:
            block_until = now + self.config.failure_penalty_minutes * 60
            self._blocked_ips[ip] = block_until
            logger.error(
                f"Blocked IP {ip} until "
                f"{datetime.fromtimestamp(block_until, tz=timezone.utc).isoformat()} "
                f"after {len(failures)} failed attempts"
            )

    def record_auth_success(self, request: Request) -> None:
        """Clear the failure history of an IP."""
        self._failures.pop(self._get_client_ip(request), None)

    def reset(self) -> None:
        """Forget all counters and blocks."""
        self._requests.clear()
        self._failures.clear()
        self._blocked_ips.clear()


_rate_limiter: Optional[AuthRateLimiter] = None


def get_rate_limiter() -> AuthRateLimiter:
    """FastAPI dependency returning the process-wide limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        from ..config import get_rate_limit_config

        _rate_limiter = AuthRateLimiter(get_rate_limit_config())
    return _rate_limiter
