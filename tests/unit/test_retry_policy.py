"""Unit tests for the retry orchestrator.

Tests cover:
- Retryability decisions per error kind and status
- Delay computation bounds
- Attempt counting and exhaustion through retry_async
"""

import asyncio
import random

import pytest

from nfe.lib.errors import ErrorKind, NfeError, from_http_response
from nfe.lib.resilience import RetryPolicy, is_retryable, retry_async


class _MaxRandom:
    def random(self):
        return 0.999999


class _ZeroRandom:
    def random(self):
        return 0.0


class TestIsRetryable:
    """Tests for is_retryable."""

    @pytest.mark.parametrize("status", [429, 401, 500, 502, 503, 504, 507])
    def test_retryable_statuses(self, status):
        assert is_retryable(from_http_response(status, None)) is True

    @pytest.mark.parametrize("status", [400, 403, 404, 409, 422])
    def test_non_retryable_statuses(self, status):
        assert is_retryable(from_http_response(status, None)) is False

    @pytest.mark.parametrize(
        "kind", [ErrorKind.CONNECTION, ErrorKind.TIMEOUT, ErrorKind.SERVER]
    )
    def test_transport_kinds_without_status(self, kind):
        assert is_retryable(NfeError(kind, "x")) is True

    @pytest.mark.parametrize(
        "kind",
        [
            ErrorKind.CONFIGURATION,
            ErrorKind.POLLING_TIMEOUT,
            ErrorKind.INVOICE_PROCESSING,
            ErrorKind.GENERIC,
        ],
    )
    def test_other_kinds(self, kind):
        assert is_retryable(NfeError(kind, "x")) is False

    def test_protocol_violation_on_202_not_retryable(self):
        assert is_retryable(NfeError(ErrorKind.GENERIC, "no location", status=202)) is False

    def test_plain_exceptions_not_retryable(self):
        assert is_retryable(ValueError("bug")) is False


class TestRetryPolicyDelay:
    """Tests for RetryPolicy.compute_delay."""

    def test_delay_never_exceeds_max(self):
        policy = RetryPolicy(max_retries=10, base_delay_ms=1000, max_delay_ms=30000)
        for attempt in range(12):
            assert policy.compute_delay(attempt, _MaxRandom()) <= 30000

    @pytest.mark.parametrize("multiplier", [2.0, 10.0, 2])
    def test_huge_attempt_clamps_to_max(self, multiplier):
        policy = RetryPolicy(
            max_retries=5000,
            base_delay_ms=1000.0,
            max_delay_ms=30000,
            backoff_multiplier=multiplier,
        )
        assert policy.compute_delay(1100, _ZeroRandom()) == 30000
        assert policy.compute_delay(4999, _MaxRandom()) == 30000
        assert policy.exponential_delay(1100) == float("inf")

    def test_delay_at_least_exponential_when_below_max(self):
        policy = RetryPolicy(max_retries=10, base_delay_ms=1000, max_delay_ms=30000)
        rng = random.Random(1234)
        for attempt in range(12):
            exponential = 1000 * 2.0**attempt
            delay = policy.compute_delay(attempt, rng)
            assert delay <= 30000
            if exponential <= 30000:
                assert delay >= exponential

    def test_jitter_bounded_by_ten_percent(self):
        policy = RetryPolicy(base_delay_ms=1000, max_delay_ms=1_000_000)
        assert policy.compute_delay(2, _ZeroRandom()) == 4000
        assert policy.compute_delay(2, _MaxRandom()) < 4400

    def test_exponential_is_monotonic(self):
        policy = RetryPolicy(base_delay_ms=250, backoff_multiplier=3.0)
        delays = [policy.exponential_delay(a) for a in range(6)]
        assert delays == sorted(delays)
        assert delays[0] == 250


class TestRetryPolicyConfig:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.base_delay_ms == 1000
        assert policy.max_delay_ms == 30000
        assert policy.backoff_multiplier == 2.0

    def test_dict_round_trip(self):
        policy = RetryPolicy(max_retries=5, base_delay_ms=200, max_delay_ms=5000)
        assert RetryPolicy.from_dict(policy.to_dict()) == policy

    def test_from_dict_defaults(self):
        assert RetryPolicy.from_dict({"max_retries": 1}) == RetryPolicy(max_retries=1)

    def test_validation_errors(self):
        errors = RetryPolicy(max_retries=-1, backoff_multiplier=1.0).validation_errors()
        assert "max_retries must be >= 0" in errors
        assert "backoff_multiplier must be > 1" in errors
        assert RetryPolicy().validation_errors() == []

    def test_is_immutable(self):
        policy = RetryPolicy()
        with pytest.raises(Exception):
            policy.max_retries = 7  # type: ignore[misc]


class TestRetryAsync:
    """Tests for retry_async attempt counting."""

    @staticmethod
    def _run(operation, policy, sleeps):
        async def sleep(seconds):
            sleeps.append(seconds)

        return asyncio.run(retry_async(operation, policy, sleep=sleep))

    def test_server_error_retried_until_ceiling(self):
        calls = []
        sleeps = []

        async def operation():
            calls.append(1)
            raise from_http_response(503, {"message": "unavailable"})

        with pytest.raises(NfeError) as exc_info:
            self._run(operation, RetryPolicy(max_retries=3, base_delay_ms=10), sleeps)

        assert len(calls) == 4
        assert len(sleeps) == 3
        assert exc_info.value.kind is ErrorKind.SERVER
        assert exc_info.value.status == 503

    def test_not_found_fails_immediately(self):
        calls = []
        sleeps = []

        async def operation():
            calls.append(1)
            raise from_http_response(404, {"message": "no such company"})

        with pytest.raises(NfeError) as exc_info:
            self._run(operation, RetryPolicy(max_retries=3), sleeps)

        assert len(calls) == 1
        assert sleeps == []
        assert exc_info.value.kind is ErrorKind.NOT_FOUND

    def test_unauthorized_retried_until_ceiling(self):
        calls = []

        async def operation():
            calls.append(1)
            raise from_http_response(401, {"message": "bad key"})

        with pytest.raises(NfeError) as exc_info:
            self._run(operation, RetryPolicy(max_retries=2, base_delay_ms=1), [])

        assert len(calls) == 3
        assert exc_info.value.kind is ErrorKind.AUTHENTICATION

    def test_recovers_after_transient_failure(self):
        calls = []
        sleeps = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise NfeError(ErrorKind.CONNECTION, "reset")
            return "ok"

        policy = RetryPolicy(max_retries=3, base_delay_ms=100, max_delay_ms=10_000)
        assert self._run(operation, policy, sleeps) == "ok"
        assert len(calls) == 3
        # seconds; attempt 0 waits ~0.1s, attempt 1 waits ~0.2s
        assert 0.1 <= sleeps[0] < 0.11
        assert 0.2 <= sleeps[1] < 0.22

    def test_zero_retries_single_attempt(self):
        calls = []

        async def operation():
            calls.append(1)
            raise NfeError(ErrorKind.TIMEOUT, "slow")

        with pytest.raises(NfeError):
            self._run(operation, RetryPolicy.none(), [])
        assert len(calls) == 1

    def test_programming_errors_propagate_unretried(self):
        calls = []

        async def operation():
            calls.append(1)
            raise KeyError("missing")

        with pytest.raises(KeyError):
            self._run(operation, RetryPolicy(max_retries=3), [])
        assert len(calls) == 1
