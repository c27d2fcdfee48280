"""Retry/backoff policy for upstream attempts.

Pure functions of the attempt index and failure kind. No state is kept
between calls, so a single policy instance can serve every turn.
"""

from dataclasses import dataclass

from modelrelay.agent.schemas import FailureKind

# Exponent ceiling for very large attempt indexes
_MAX_EXPONENT = 32

# Failures worth another try on the same model
SAME_MODEL_RETRYABLE = frozenset({
    FailureKind.SERVICE_BUSY,
    FailureKind.NETWORK_ERROR,
    FailureKind.TIMEOUT,
})


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff capped at ``cap_delay``.

    delay(n) = min(base_delay * 2**n, cap_delay), in seconds.
    """
    base_delay: float = 1.0
    cap_delay: float = 10.0

    def delay(self, attempt_index: int) -> float:
        exponent = min(max(attempt_index, 0), _MAX_EXPONENT)
        return min(self.base_delay * (2 ** exponent), self.cap_delay)

    def should_retry(self, kind: FailureKind, attempt_index: int, max_retries: int) -> bool:
        """Whether to retry the same model after ``kind`` on attempt ``attempt_index``.

        Rate limits and credential errors are never retried in place.
        """
        if kind not in SAME_MODEL_RETRYABLE:
            return False
        return attempt_index < max_retries

    @staticmethod
    def is_fatal(kind: FailureKind) -> bool:
        """Failures that end the whole turn rather than one model."""
        return kind == FailureKind.AUTH_INVALID
