from __future__ import annotations

import dataclasses

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from bulkimport.core.config import settings
from bulkimport.services.admission import (
    TIER_GLOBAL,
    TIER_IP,
    TIER_USER,
    AdmissionController,
    Tier,
    load_tiers,
    parse_rate,
)
from bulkimport.services.exceptions import DependencyError


class _Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _controller(redis, clock=None, *, global_limit=5000, user_limit=10, ip_limit=5):
    return AdmissionController(
        redis,
        global_tier=Tier(TIER_GLOBAL, global_limit, 86400),
        user_tier=Tier(TIER_USER, user_limit, 60),
        ip_tier=Tier(TIER_IP, ip_limit, 60),
        clock=clock or _Clock(),
    )


def test_parse_rate_formats():
    assert parse_rate("5000/day") == (5000, 86400)
    assert parse_rate("10/minute") == (10, 60)
    assert parse_rate(" 5 / min ") == (5, 60)
    assert parse_rate("120/hour") == (120, 3600)
    with pytest.raises(ValueError):
        parse_rate("10")
    with pytest.raises(ValueError):
        parse_rate("10/fortnight")


def test_user_denied_on_eleventh_call_within_window(fake_redis):
    clock = _Clock()
    controller = _controller(fake_redis, clock)

    decisions = []
    for _ in range(11):
        decisions.append(controller.evaluate(user_id="user-1", ip="10.0.0.1", route_key="ask"))
        clock.advance(1)

    assert all(d.allowed for d in decisions[:10])
    last = decisions[10]
    assert not last.allowed
    assert last.denied_tier == "user"
    assert last.limit == 10
    assert last.remaining == 0
    assert last.retry_after is not None and 0 < last.retry_after <= 60


def test_ip_tier_applies_only_without_user(fake_redis):
    controller = _controller(fake_redis)

    for _ in range(5):
        assert controller.evaluate(ip="10.0.0.2", route_key="ask").allowed

    denied = controller.evaluate(ip="10.0.0.2", route_key="ask")
    assert not denied.allowed
    assert denied.denied_tier == "ip"

    # A signed-in user on the same IP is judged by the user tier instead
    assert controller.evaluate(user_id="user-2", ip="10.0.0.2", route_key="ask").allowed


def test_anonymous_request_without_ip_checks_only_global(fake_redis):
    controller = _controller(fake_redis, global_limit=3)

    assert [controller.evaluate(route_key="ask").allowed for _ in range(4)] == [
        True,
        True,
        True,
        False,
    ]


def test_global_budget_exhausted_denies_brand_new_identity(fake_redis):
    clock = _Clock()
    controller = _controller(fake_redis, clock)
    fake_redis.set(controller.window_key(Tier(TIER_GLOBAL, 5000, 86400), "ask", clock()), 5000)

    decision = controller.evaluate(user_id="never-seen", ip="203.0.113.9", route_key="ask")

    assert not decision.allowed
    assert decision.denied_tier == "global"
    assert decision.limit == 5000
    # The user tier was never touched
    assert fake_redis.keys("rl:user:*") == []


def test_global_wins_when_both_tiers_exhausted(fake_redis):
    controller = _controller(fake_redis, global_limit=2, user_limit=2)

    controller.evaluate(user_id="u", route_key="ask")
    controller.evaluate(user_id="u", route_key="ask")
    decision = controller.evaluate(user_id="u", route_key="ask")

    assert decision.denied_tier == "global"


def test_routes_are_counted_independently(fake_redis):
    controller = _controller(fake_redis, user_limit=1)

    assert controller.evaluate(user_id="u", route_key="ask").allowed
    assert not controller.evaluate(user_id="u", route_key="ask").allowed
    assert controller.evaluate(user_id="u", route_key="generate").allowed


def test_allowed_decision_reports_global_metadata(fake_redis):
    clock = _Clock()
    controller = _controller(fake_redis, clock, global_limit=100)

    decision = controller.evaluate(user_id="u", route_key="ask")

    assert decision.allowed
    assert decision.denied_tier is None
    assert decision.limit == 100
    assert decision.remaining == 99
    # end of the current one-day window
    assert decision.reset_at == (int(clock()) // 86400 + 1) * 86400
    assert decision.retry_after is None
    assert "Retry-After" not in decision.headers()
    assert decision.headers()["X-RateLimit-Limit"] == "100"


def test_window_slides_and_frees_quota(fake_redis):
    # the clock starts 20s into a minute window
    clock = _Clock()
    controller = _controller(fake_redis, clock, user_limit=2)

    assert controller.evaluate(user_id="u", route_key="ask").allowed
    clock.advance(30)
    assert controller.evaluate(user_id="u", route_key="ask").allowed
    clock.advance(1)
    assert not controller.evaluate(user_id="u", route_key="ask").allowed

    # 21s into the next window the previous three still weigh 3 * 39/60
    clock.advance(30)
    assert not controller.evaluate(user_id="u", route_key="ask").allowed
    clock.advance(61)
    assert controller.evaluate(user_id="u", route_key="ask").allowed


def test_previous_window_weight_decays(fake_redis):
    clock = _Clock(1_700_000_040.0)  # on a minute boundary
    controller = _controller(fake_redis, clock, user_limit=4)
    for _ in range(4):
        assert controller.evaluate(user_id="u", route_key="ask").allowed

    # 30s into the next window half of the previous four still count
    clock.advance(90)
    assert controller.evaluate(user_id="u", route_key="ask").allowed
    assert controller.evaluate(user_id="u", route_key="ask").allowed
    assert not controller.evaluate(user_id="u", route_key="ask").allowed


def test_retry_after_is_computed_from_milliseconds(fake_redis):
    # 20.7s into the minute window
    clock = _Clock(1_700_000_000.7)
    controller = _controller(fake_redis, clock, user_limit=2)

    for _ in range(2):
        assert controller.evaluate(user_id="u", route_key="ask").allowed
    denied = controller.evaluate(user_id="u", route_key="ask")

    # 39.3s to the window edge, then 40s for three hits to decay below one free slot
    assert not denied.allowed
    assert denied.retry_after == 80
    assert denied.headers()["Retry-After"] == "80"
    assert denied.reset_at == 1_700_000_080


def test_retry_after_is_enough_to_be_admitted(fake_redis):
    clock = _Clock(1_700_000_000.4)
    controller = _controller(fake_redis, clock, user_limit=10)

    for _ in range(10):
        controller.evaluate(user_id="u", route_key="ask")
    denied = controller.evaluate(user_id="u", route_key="ask")
    assert not denied.allowed

    clock.advance(denied.retry_after)
    assert controller.evaluate(user_id="u", route_key="ask").allowed


def test_denied_attempts_consume_global_quota(fake_redis):
    controller = _controller(fake_redis, user_limit=1)

    controller.evaluate(user_id="u", route_key="ask")
    controller.evaluate(user_id="u", route_key="ask")
    controller.evaluate(user_id="u", route_key="ask")

    [global_key] = fake_redis.keys("rl:global:ask:*")
    assert fake_redis.get(global_key) == "3"


def test_memory_per_key_stays_constant_under_abuse(fake_redis):
    controller = _controller(fake_redis, global_limit=3)

    for _ in range(2000):
        controller.evaluate(route_key="ask")

    [global_key] = fake_redis.keys("rl:*")
    assert fake_redis.type(global_key) == "string"
    assert fake_redis.get(global_key) == "2000"


def test_counter_keys_expire(fake_redis):
    controller = _controller(fake_redis)
    controller.evaluate(user_id="u", route_key="ask")

    [user_key] = fake_redis.keys("rl:user:u:ask:*")
    ttl = fake_redis.pttl(user_key)
    assert 60_000 < ttl <= 120_000


def test_counter_store_failure_is_reported_not_swallowed():
    class _BrokenRedis:
        def pipeline(self, transaction=True):
            raise RedisConnectionError("connection refused")

    controller = _controller(_BrokenRedis())

    with pytest.raises(DependencyError) as exc_info:
        controller.evaluate(user_id="u", route_key="ask")
    assert exc_info.value.code == "COUNTER_STORE_UNAVAILABLE"


def test_load_tiers_reads_settings():
    tiers = load_tiers(settings)

    assert tiers.global_tier == Tier(TIER_GLOBAL, 5000, 86400)
    assert tiers.user_tier == Tier(TIER_USER, 10, 60)
    assert tiers.ip_tier == Tier(TIER_IP, 5, 60)


def test_load_tiers_names_the_bad_setting():
    bad = dataclasses.replace(settings, rate_limit_user="10/fortnight")

    with pytest.raises(ValueError, match="RATE_LIMIT_USER"):
        load_tiers(bad)
