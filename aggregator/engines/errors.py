"""Failure taxonomy for the aggregation engine.

Provider-level errors are caught by the orchestrator and turned into
per-(point, provider) annotations. Only `AggregationFailed` leaves the
engine.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import ProviderFailure


class ProviderError(Exception):
    """Base class for failures attributable to one provider."""

    kind: str = "provider_error"
    retryable: bool = False

    def __init__(
        self, message: str, *, provider_id: str | None = None
    ) -> None:
        super().__init__(message)
        self.provider_id = provider_id


class NotConfigured(ProviderError):
    """Credentials are missing. Permanent until configuration changes."""

    kind = "not_configured"


class RateLimited(ProviderError):
    """Local or upstream rate limit exhausted. Clears on window reset."""

    kind = "rate_limited"


class ProviderTimeout(ProviderError, TimeoutError):
    """An attempt did not finish before its deadline."""

    kind = "timeout"
    retryable = True


class UpstreamError(ProviderError):
    """Upstream returned a non-success response or an unusable payload.

    `status_code` is None for transport failures and malformed bodies.
    """

    kind = "upstream_error"

    def __init__(
        self,
        message: str,
        *,
        provider_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider_id=provider_id)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        if self.status_code is None:
            return True
        return self.status_code >= 500


class UnknownProvider(ProviderError):
    """Caller asked for a provider id that is not registered."""

    kind = "unknown_provider"


class CacheUnavailable(Exception):
    """The backing store failed. Callers degrade to a cache miss."""

    kind = "cache_unavailable"


class AggregationFailed(Exception):
    """Raised when no (point, provider) pair produced a forecast."""

    kind = "aggregation_failed"

    def __init__(
        self, message: str, *, failures: Sequence[ProviderFailure] = ()
    ) -> None:
        super().__init__(message)
        self.failures = list(failures)
