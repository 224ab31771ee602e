"""Pre-flight quota and rate-limit checks for model calls.

Both checks are extension points. The default guard lets every call through;
a deployment that enforces limits supplies its own ``RunGuard`` and overrides
``get_run_guard``.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import structlog

from promptana.errors import ApiError, ErrorCode

logger = structlog.get_logger()


@dataclass
class CheckResult:
    allowed: bool
    reason: str | None = None


class RunGuard:
    """Default guard: no quota, no rate limit."""

    def check_quota(self, user_id: str) -> CheckResult:
        return CheckResult(allowed=True)

    def check_rate_limit(self, user_id: str, client_ip: str | None) -> CheckResult:
        return CheckResult(allowed=True)

    def enforce(self, user_id: str, client_ip: str | None) -> None:
        """Raise 429 when either check refuses the call."""
        quota = self.check_quota(user_id)
        if not quota.allowed:
            logger.info("quota.exceeded", user_id=user_id)
            raise ApiError(429, ErrorCode.QUOTA_EXCEEDED, quota.reason or "Run quota exceeded.")
        rate = self.check_rate_limit(user_id, client_ip)
        if not rate.allowed:
            logger.info("quota.rate_limited", user_id=user_id, client_ip=client_ip)
            raise ApiError(429, ErrorCode.RATE_LIMITED, rate.reason or "Too many requests.")


@lru_cache
def get_run_guard() -> RunGuard:
    """Get cached run guard instance."""
    return RunGuard()
