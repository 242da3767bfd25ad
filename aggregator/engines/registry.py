from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .base import WeatherProvider
from .errors import UnknownProvider
from .open_meteo import OpenMeteoProvider
from .openweathermap import OpenWeatherMapProvider
from .types import RateLimitState
from .visual_crossing import VisualCrossingProvider
from .weatherapi import WeatherApiProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderStatus:
    id: str
    name: str
    configured: bool
    available: bool
    api_key_required: bool
    requests_per_minute: int
    requests_per_day: int
    rate_limit: RateLimitState


class ProviderRegistry:
    """Maps provider ids to adapter instances, in registration order."""

    def __init__(self, providers: Iterable[WeatherProvider] = ()) -> None:
        self._providers: dict[str, WeatherProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: WeatherProvider) -> None:
        self._providers[provider.id] = provider

    def provider_ids(self) -> list[str]:
        return list(self._providers)

    def get_provider(self, provider_id: str) -> WeatherProvider:
        try:
            return self._providers[provider_id]
        except KeyError:
            raise UnknownProvider(
                f"Unknown weather provider: {provider_id}",
                provider_id=provider_id,
            ) from None

    def configured_providers(self) -> list[str]:
        return [
            pid for pid, provider in self._providers.items()
            if provider.is_configured()
        ]

    def available_providers(self) -> set[str]:
        """Ids that are configured and currently under every rate limit."""

        return set(self._available_in_order())

    def resolve_requested(self, ids: Iterable[str] | None) -> list[str]:
        """Intersect requested ids with availability, keeping request order.

        An empty or missing request means "all available".
        """

        available = self._available_in_order()
        requested = _dedupe(ids or ())
        if not requested:
            return available
        usable = set(available)
        return [pid for pid in requested if pid in usable]

    def statuses(self) -> list[ProviderStatus]:
        result: list[ProviderStatus] = []
        for pid, provider in self._providers.items():
            configured = provider.is_configured()
            result.append(
                ProviderStatus(
                    id=pid,
                    name=provider.config.name,
                    configured=configured,
                    available=configured and provider.can_make_request(),
                    api_key_required=provider.config.api_key_required,
                    requests_per_minute=provider.config.requests_per_minute,
                    requests_per_day=provider.config.requests_per_day,
                    rate_limit=provider.rate_limit_state(),
                )
            )
        return result

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def _available_in_order(self) -> list[str]:
        return [
            pid
            for pid, provider in self._providers.items()
            if provider.is_configured() and provider.can_make_request()
        ]


def _dedupe(ids: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for raw in ids:
        pid = str(raw).strip().lower()
        if pid:
            seen.setdefault(pid, None)
    return list(seen)


def build_registry(
    api_keys: Mapping[str, str | None] | None = None,
) -> ProviderRegistry:
    """Instantiate supported providers from settings.

    Keyed providers are always registered so callers can see them as
    unconfigured instead of unknown.
    """

    keys = dict(api_keys or {})
    registry = ProviderRegistry(
        [
            OpenMeteoProvider(),
            WeatherApiProvider(api_key=keys.get("weatherapi")),
            VisualCrossingProvider(api_key=keys.get("visual-crossing")),
            OpenWeatherMapProvider(api_key=keys.get("openweathermap")),
        ]
    )
    logger.info(
        "aggregator.registry.built configured=%s",
        ",".join(registry.configured_providers()),
    )
    return registry
