"""Unit tests for the retry/backoff policy."""

import pytest

from modelrelay.agent.schemas import FailureKind
from modelrelay.core.retry_policy import RetryPolicy


class TestBackoff:
    """delay(n) = min(base * 2**n, cap)."""

    def test_default_delays(self):
        policy = RetryPolicy()
        assert [policy.delay(n) for n in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_monotonic_and_capped(self):
        policy = RetryPolicy(base_delay=0.25, cap_delay=3.0)
        delays = [policy.delay(n) for n in range(50)]

        assert delays == sorted(delays)
        assert max(delays) == 3.0

    def test_huge_attempt_index(self):
        """Very large indexes still return the cap."""
        assert RetryPolicy().delay(10_000) == 10.0

    def test_negative_index_treated_as_first(self):
        assert RetryPolicy().delay(-3) == 1.0


class TestShouldRetry:
    """Which failures are retried on the same model."""

    @pytest.mark.parametrize("kind", [
        FailureKind.SERVICE_BUSY,
        FailureKind.NETWORK_ERROR,
        FailureKind.TIMEOUT,
    ])
    def test_transient_failures_retried_within_budget(self, kind):
        policy = RetryPolicy()
        assert policy.should_retry(kind, attempt_index=0, max_retries=2)
        assert policy.should_retry(kind, attempt_index=1, max_retries=2)
        assert not policy.should_retry(kind, attempt_index=2, max_retries=2)

    @pytest.mark.parametrize("kind", [
        FailureKind.RATE_LIMITED,
        FailureKind.AUTH_INVALID,
        FailureKind.EMPTY_RESPONSE,
        FailureKind.UNKNOWN,
    ])
    def test_other_failures_never_retried(self, kind):
        assert not RetryPolicy().should_retry(kind, attempt_index=0, max_retries=5)

    def test_zero_budget_means_no_retry(self):
        assert not RetryPolicy().should_retry(FailureKind.SERVICE_BUSY, attempt_index=0, max_retries=0)

    def test_auth_is_fatal(self):
        assert RetryPolicy.is_fatal(FailureKind.AUTH_INVALID)
        assert not RetryPolicy.is_fatal(FailureKind.RATE_LIMITED)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
