"""
Tests for Request Spacing Policies

Verifies delay computation from rate-limit headers, including multi-valued
headers and the exhausted-budget edge cases.
"""
import pytest

from syncline.core.errors import RateLimitHeaderError
from syncline.ingestion.rate_limit import (
    CLOCK_SKEW_PAD_MS,
    MISSING_RESET_WAIT_MS,
    ExponentialBackoff,
    FixedSpacing,
    RemainingBudgetSpacing,
    ResetHeaderSpacing,
    sleep_until_reset_ms,
)
from syncline.ingestion.types import DEFAULT_SPACING_MS, Response, Source

NOW_S = 1_700_000_000


def response(status=200, **headers):
    return Response(
        url="https://api.test/items",
        status_code=status,
        headers={k.replace("_", "-"): v for k, v in headers.items()},
        body="[]",
    )


class TestDefaults:

    def test_source_without_policy_uses_default_spacing(self):
        class Plain(Source):
            name = "plain"
            streams = []

        assert Plain().request_spacing(response()) == DEFAULT_SPACING_MS == 500

    def test_fixed_spacing(self):
        assert FixedSpacing(250).delay_ms(response(status=500)) == 250


class TestSleepUntilReset:

    def test_future_reset_adds_pad(self):
        assert sleep_until_reset_ms(10_000, 4_000) == 6_000 + CLOCK_SKEW_PAD_MS

    def test_past_reset_never_below_pad(self):
        assert sleep_until_reset_ms(1_000, 60_000) == CLOCK_SKEW_PAD_MS


class TestResetHeaderSpacing:
    """GitHub-style primary and secondary limits."""

    @pytest.fixture
    def policy(self):
        return ResetHeaderSpacing(clock=lambda: NOW_S)

    def test_exhausted_budget_sleeps_until_reset(self, policy):
        r = response(x_ratelimit_remaining="0", x_ratelimit_reset=str(NOW_S + 30))
        assert policy.delay_ms(r) == 30_000 + CLOCK_SKEW_PAD_MS

    def test_multi_valued_headers_use_first_value(self, policy):
        r = response(
            x_ratelimit_remaining=["0", "4999"],
            x_ratelimit_reset=[str(NOW_S + 10), str(NOW_S + 999)],
        )
        assert policy.delay_ms(r) == 10_000 + CLOCK_SKEW_PAD_MS

    def test_exhausted_budget_without_reset_raises(self, policy):
        with pytest.raises(RateLimitHeaderError):
            policy.delay_ms(response(x_ratelimit_remaining="0"))

    def test_retry_after_fallback(self, policy):
        r = response(status=403, x_ratelimit_remaining="12", retry_after="7")
        assert policy.delay_ms(r) == 7_000

    def test_budget_left_uses_default(self, policy):
        assert policy.delay_ms(response(x_ratelimit_remaining="4999")) == DEFAULT_SPACING_MS

    def test_infinite_header_values_are_ignored(self, policy):
        assert policy.delay_ms(response(x_ratelimit_remaining="inf")) == DEFAULT_SPACING_MS
        assert policy.delay_ms(response(x_ratelimit_remaining="4999", retry_after="-inf")) == DEFAULT_SPACING_MS
        with pytest.raises(RateLimitHeaderError):
            policy.delay_ms(response(x_ratelimit_remaining="0", x_ratelimit_reset="inf"))


class TestRemainingBudgetSpacing:
    """Cost-based limits where a floor above zero counts as throttled."""

    @pytest.fixture
    def policy(self):
        return RemainingBudgetSpacing(
            remaining_header="x-ratelimit-requests-remaining",
            reset_header="x-ratelimit-requests-reset",
            floor=10,
            reset_unit="milliseconds",
            clock=lambda: NOW_S,
        )

    def test_below_floor_waits_for_reset(self, policy):
        reset_ms = NOW_S * 1000 + 2_500
        r = response(x_ratelimit_requests_remaining="3", x_ratelimit_requests_reset=str(reset_ms))
        assert policy.delay_ms(r) == 2_500 + CLOCK_SKEW_PAD_MS

    def test_below_floor_without_reset_waits_fixed_fallback(self, policy):
        r = response(x_ratelimit_requests_remaining="0")
        assert policy.delay_ms(r) == MISSING_RESET_WAIT_MS == 300_000

    def test_at_or_above_floor_uses_default(self, policy):
        assert policy.delay_ms(response(x_ratelimit_requests_remaining="10")) == DEFAULT_SPACING_MS
        assert policy.delay_ms(response()) == DEFAULT_SPACING_MS

    def test_iso_reset_header(self):
        policy = RemainingBudgetSpacing(
            remaining_header="x-remaining",
            reset_header="x-reset",
            reset_unit="iso",
            clock=lambda: 0,
        )
        r = response(x_remaining="0", x_reset="1970-01-01T00:00:20Z")
        assert policy.delay_ms(r) == 20_000 + CLOCK_SKEW_PAD_MS


class TestExponentialBackoff:

    def test_doubles_per_consecutive_throttle_and_caps(self):
        policy = ExponentialBackoff(base_ms=100, max_multiplier=16)
        delays = [policy.delay_ms(response(status=429)) for _ in range(6)]
        assert delays == [200, 400, 800, 1600, 1600, 1600]

    def test_non_throttled_response_resets(self):
        policy = ExponentialBackoff(base_ms=100)
        policy.delay_ms(response(status=429))
        policy.delay_ms(response(status=429))

        assert policy.delay_ms(response()) == 100
        assert policy.backoff_count == 0

    def test_custom_throttle_predicate(self):
        policy = ExponentialBackoff(
            base_ms=100,
            throttle_statuses=(),
            is_throttled=lambda r: r.header("x-complexity-exceeded") == "true",
        )
        assert policy.delay_ms(response(x_complexity_exceeded="true")) == 200
        assert policy.delay_ms(response(status=429)) == 100
