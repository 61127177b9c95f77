"""Layered sliding-window admission control.

Three independent tiers are evaluated in a fixed order: the shared global
budget for a route first, then either the per-user or the per-IP budget.

Each tier is a sliding-window counter: one Redis integer per fixed window,
with the previous window's count weighted by how much of it still overlaps
the trailing window. Memory per identity stays at two keys however many
requests arrive. Tiers are not wrapped in a cross-tier transaction, so a
request denied by the user tier has still consumed one unit of the global
budget.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import structlog
from redis import Redis
from redis.exceptions import RedisError

from bulkimport.core.config import settings
from bulkimport.redis_client import get_redis
from bulkimport.services.error_codes import ErrorCode
from bulkimport.services.exceptions import DependencyError

logger = structlog.get_logger(__name__)

TIER_GLOBAL = "global"
TIER_USER = "user"
TIER_IP = "ip"


def parse_rate(rate: str) -> tuple[int, int]:
    """
    Parse formats like:
      - "60/minute"
      - "120/hour"
      - "5000/day"
    Returns: (limit, window_seconds)
    """
    raw = rate.strip().lower()
    if "/" not in raw:
        raise ValueError(f"Invalid rate format: {rate}")

    limit_str, window_str = raw.split("/", 1)
    limit = int(limit_str)
    if limit < 0:
        raise ValueError(f"Invalid rate limit: {rate}")

    window_str = window_str.strip()
    if window_str in {"sec", "second", "seconds"}:
        return limit, 1
    if window_str in {"min", "minute", "minutes"}:
        return limit, 60
    if window_str in {"hour", "hours"}:
        return limit, 3600
    if window_str in {"day", "days"}:
        return limit, 86400

    raise ValueError(f"Invalid rate window: {window_str}")


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


@dataclass(frozen=True)
class Tier:
    name: str
    limit: int
    window_seconds: int

    @classmethod
    def from_rate(cls, name: str, rate: str) -> "Tier":
        limit, window_seconds = parse_rate(rate)
        return cls(name=name, limit=limit, window_seconds=window_seconds)


@dataclass(frozen=True)
class TierSet:
    global_tier: Tier
    user_tier: Tier
    ip_tier: Tier


def load_tiers(cfg: Any) -> TierSet:
    """Build the three tiers from RATE_LIMIT_* settings.

    Raises ValueError naming the offending setting.
    """
    tiers = {}
    for name, setting in (
        (TIER_GLOBAL, "rate_limit_global"),
        (TIER_USER, "rate_limit_user"),
        (TIER_IP, "rate_limit_ip"),
    ):
        rate = getattr(cfg, setting)
        try:
            tiers[name] = Tier.from_rate(name, rate)
        except ValueError as exc:
            raise ValueError(f"{setting.upper()}={rate!r}: {exc}") from exc
    return TierSet(
        global_tier=tiers[TIER_GLOBAL],
        user_tier=tiers[TIER_USER],
        ip_tier=tiers[TIER_IP],
    )


@lru_cache(maxsize=1)
def get_tiers() -> TierSet:
    return load_tiers(settings)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    denied_tier: str | None = None
    retry_after: int | None = None

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


@dataclass(frozen=True)
class _TierResult:
    tier: Tier
    current: int
    previous: int
    elapsed_ms: int
    window_ms: int

    @property
    def count(self) -> float:
        overlap = (self.window_ms - self.elapsed_ms) / self.window_ms
        return self.previous * overlap + self.current

    @property
    def exceeded(self) -> bool:
        return self.count > self.tier.limit

    @property
    def remaining(self) -> int:
        return max(0, self.tier.limit - math.ceil(self.count))

    @property
    def ms_to_window_end(self) -> int:
        return self.window_ms - self.elapsed_ms

    def retry_after_ms(self) -> int:
        """Time until the weighted count leaves room for one more request."""
        allowance = self.tier.limit - 1
        if allowance < 0:
            return 2 * self.window_ms - self.elapsed_ms

        if self.current <= allowance:
            if self.previous == 0:
                return 0
            # previous * (window - t) / window <= allowance - current
            needed = self.window_ms - self.window_ms * (allowance - self.current) // self.previous
            return max(0, needed - self.elapsed_ms)

        # Wait out the current window, then let its count decay as "previous".
        decay = _ceil_div(self.window_ms * (self.current - allowance), self.current)
        return self.window_ms - self.elapsed_ms + decay


class AdmissionController:
    def __init__(
        self,
        redis: Redis,
        *,
        global_tier: Tier,
        user_tier: Tier,
        ip_tier: Tier,
        prefix: str = "rl",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis
        self._global_tier = global_tier
        self._user_tier = user_tier
        self._ip_tier = ip_tier
        self._prefix = prefix
        self._clock = clock

    def counter_key(self, tier_name: str, identity: str) -> str:
        return f"{self._prefix}:{tier_name}:{identity}"

    def window_key(self, tier: Tier, identity: str, now: float) -> str:
        index = int(now * 1000) // (tier.window_seconds * 1000)
        return f"{self.counter_key(tier.name, identity)}:{index}"

    def evaluate(
        self,
        user_id: str | None = None,
        ip: str | None = None,
        route_key: str = "default",
    ) -> RateLimitDecision:
        now = self._clock()
        now_ms = int(now * 1000)

        global_res = self._hit(self._global_tier, route_key, now_ms)
        if global_res.exceeded:
            return self._denied(global_res, now_ms)

        if user_id:
            user_res = self._hit(self._user_tier, f"{user_id}:{route_key}", now_ms)
            if user_res.exceeded:
                return self._denied(user_res, now_ms)
        elif ip:
            ip_res = self._hit(self._ip_tier, f"{ip}:{route_key}", now_ms)
            if ip_res.exceeded:
                return self._denied(ip_res, now_ms)

        # Allowed responses always report the global tier
        return RateLimitDecision(
            allowed=True,
            limit=global_res.tier.limit,
            remaining=global_res.remaining,
            reset_at=_ceil_div(now_ms + global_res.ms_to_window_end, 1000),
        )

    def _denied(self, res: _TierResult, now_ms: int) -> RateLimitDecision:
        wait_ms = res.retry_after_ms()
        logger.info(
            "rate_limit_denied",
            tier=res.tier.name,
            limit=res.tier.limit,
            count=round(res.count, 2),
            retry_after_ms=wait_ms,
        )
        return RateLimitDecision(
            allowed=False,
            limit=res.tier.limit,
            remaining=0,
            reset_at=_ceil_div(now_ms + wait_ms, 1000),
            denied_tier=res.tier.name,
            retry_after=_ceil_div(wait_ms, 1000),
        )

    def _hit(self, tier: Tier, identity: str, now_ms: int) -> _TierResult:
        window_ms = tier.window_seconds * 1000
        index, elapsed_ms = divmod(now_ms, window_ms)
        base = self.counter_key(tier.name, identity)
        current_key = f"{base}:{index}"
        previous_key = f"{base}:{index - 1}"

        try:
            pipe = self._redis.pipeline(transaction=True)
            pipe.incr(current_key)
            # Kept through the next window, where it is read as "previous"
            pipe.pexpire(current_key, 2 * window_ms)
            pipe.get(previous_key)
            current, _, previous = pipe.execute()
        except RedisError as exc:
            logger.error("counter_store_unavailable", tier=tier.name, error=str(exc))
            raise DependencyError(
                ErrorCode.COUNTER_STORE_UNAVAILABLE.value, "rate limit store unavailable"
            ) from exc

        return _TierResult(
            tier=tier,
            current=int(current),
            previous=int(previous or 0),
            elapsed_ms=elapsed_ms,
            window_ms=window_ms,
        )


def get_admission_controller() -> AdmissionController:
    tiers = get_tiers()
    return AdmissionController(
        get_redis(),
        global_tier=tiers.global_tier,
        user_tier=tiers.user_tier,
        ip_tier=tiers.ip_tier,
        prefix=settings.rate_limit_prefix,
    )
