"""Exception hierarchy for modelrelay.

Failures fall into three groups:
- Boundary errors (InvalidRequestError) rejected before any upstream call
- Fatal errors (ConfigurationError) that end a turn immediately
- Attempt failures (AttemptFailure) classified by FailureKind and handled
  by the failover engine
"""

from typing import Optional

from modelrelay.agent.schemas import FailureKind


class ModelRelayError(Exception):
    """Base exception for all modelrelay errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ConfigurationError(ModelRelayError):
    """Provider credential missing or a placeholder value."""


class InvalidRequestError(ModelRelayError):
    """Input rejected at the API boundary."""

    def __init__(self, message: str = "", error_code: str = "invalid_request"):
        super().__init__(message)
        self.error_code = error_code


class AttemptFailure(ModelRelayError):
    """A single upstream attempt failed.

    Raised inside the transport and converted into an AttemptOutcome before it
    reaches the failover engine.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message or kind.value)
        self.kind = kind
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"AttemptFailure(kind={self.kind.value}, status={self.status_code}, message={self.message!r})"


class ProjectGenerationError(ModelRelayError):
    """The multi-agent code pipeline aborted."""


class WeatherLookupError(ModelRelayError):
    """Weather provider unavailable or returned an unusable payload."""


class LocationNotFoundError(WeatherLookupError):
    """Geocoding found no match for the requested place."""
