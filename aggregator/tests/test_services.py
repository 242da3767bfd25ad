from __future__ import annotations

# ruff: noqa: S101
import asyncio
from collections.abc import Iterator

import pytest

from aggregator import services
from aggregator.engines.errors import AggregationFailed, UpstreamError
from aggregator.engines.registry import ProviderRegistry
from aggregator.engines.types import (
    AggregationRequest,
    AggregationResult,
    AggregationSettings,
    RoutePoint,
)
from aggregator.services import AggregationEngine
from aggregator.tests.fakes import FakeClock, FakeProvider, fresh_cache

BERLIN = RoutePoint(lat=52.52, lon=13.405)
PARIS = RoutePoint(lat=48.8566, lon=2.3522)

FAST = AggregationSettings(
    max_retries=0, per_request_timeout_ms=1_000, overall_timeout_ms=5_000
)


def _engine(*providers: FakeProvider) -> AggregationEngine:
    clock = FakeClock()
    return AggregationEngine(
        ProviderRegistry(providers), fresh_cache(clock), clock=clock
    )


def _run(
    engine: AggregationEngine,
    points: list[RoutePoint],
    providers: tuple[str, ...] = (),
    options: AggregationSettings = FAST,
) -> AggregationResult:
    request = AggregationRequest(
        points=points, providers=providers, settings=options
    )
    return asyncio.run(engine.aggregate(request))


@pytest.fixture
def engine_reset() -> Iterator[None]:
    services.reset_engine()
    yield
    services.reset_engine()


def test_second_request_is_served_from_cache() -> None:
    provider = FakeProvider("open-meteo")
    engine = _engine(provider)

    first = _run(engine, [BERLIN, PARIS], ("open-meteo",))
    assert first.upstream_fetches == 2
    assert first.cache_hits == 0
    assert first.succeeded == 2

    second = _run(engine, [BERLIN, PARIS], ("open-meteo",))
    assert second.upstream_fetches == 0
    assert second.cache_hits == 2
    assert len(provider.calls) == 2
    assert engine.cache_stats().hit_count == 2
    assert [p.primary for p in second.points] == [
        p.primary for p in first.points
    ]


def test_results_keep_input_point_order() -> None:
    engine = _engine(FakeProvider("open-meteo"))

    result = _run(engine, [PARIS, BERLIN])

    assert [p.point for p in result.points] == [PARIS, BERLIN]
    assert result.points[0].primary is not None
    assert result.points[0].primary.lat == pytest.approx(PARIS.lat)


def test_unconfigured_provider_is_annotated_per_point() -> None:
    engine = _engine(
        FakeProvider("open-meteo"),
        FakeProvider("openweathermap", configured=False),
    )

    result = _run(engine, [BERLIN, PARIS], ("open-meteo", "openweathermap"))

    assert result.providers == ("open-meteo", "openweathermap")
    assert result.available_providers == ("open-meteo",)
    for point in result.points:
        assert [f.source for f in point.forecasts] == ["open-meteo"]
        assert [(e.provider_id, e.kind) for e in point.errors] == [
            ("openweathermap", "not_configured")
        ]


def test_unknown_and_rate_limited_providers_are_annotated() -> None:
    limited = FakeProvider("weatherapi", requests_per_minute=1)
    limited.limiter.record_request()
    engine = _engine(FakeProvider("open-meteo"), limited)

    result = _run(engine, [BERLIN], ("darksky", "weatherapi", "open-meteo"))

    kinds = {e.provider_id: e.kind for e in result.points[0].errors}
    assert kinds == {
        "darksky": "unknown_provider",
        "weatherapi": "rate_limited",
    }
    assert limited.calls == []
    assert result.points[0].primary is not None
    assert result.points[0].primary.source == "open-meteo"


def test_primary_follows_requested_provider_order() -> None:
    engine = _engine(
        FakeProvider("open-meteo", temp=10.0),
        FakeProvider("openweathermap", temp=14.0),
    )

    result = _run(engine, [BERLIN], ("openweathermap", "open-meteo"))
    point = result.points[0]

    assert point.primary is not None
    assert point.primary.source == "openweathermap"
    assert point.consensus is not None
    assert point.consensus.temp.value == pytest.approx(12.0)
    assert point.consensus.temp.spread == pytest.approx(2.0)
    assert point.comparison is not None
    assert point.comparison.temp_range.diff == pytest.approx(4.0)


def test_single_source_has_no_consensus() -> None:
    engine = _engine(FakeProvider("open-meteo"))

    point = _run(engine, [BERLIN]).points[0]

    assert point.consensus is None
    assert point.comparison is None


def test_alerts_come_from_primary_forecast() -> None:
    engine = _engine(FakeProvider("open-meteo", temp=35.0))

    point = _run(engine, [BERLIN]).points[0]

    assert [a.title for a in point.alerts] == ["Hot Weather Advisory"]


def test_points_beyond_max_are_dropped() -> None:
    provider = FakeProvider("open-meteo")
    engine = _engine(provider)
    points = [RoutePoint(lat=50.0 + i, lon=10.0) for i in range(5)]
    options = AggregationSettings(max_points=2, max_retries=0)

    result = _run(engine, points, options=options)

    assert result.point_count == 2
    assert result.dropped_points == 3
    assert len(result.points) == 2
    assert len(provider.calls) == 2


def test_non_positive_max_points_is_rejected() -> None:
    engine = _engine(FakeProvider("open-meteo"))
    with pytest.raises(ValueError):
        _run(engine, [BERLIN], options=AggregationSettings(max_points=0))


def test_retries_recover_transient_failures() -> None:
    provider = FakeProvider(
        "open-meteo",
        failures=[UpstreamError("busy", status_code=503)],
    )
    engine = _engine(provider)
    options = AggregationSettings(max_retries=1, per_request_timeout_ms=500)

    result = _run(engine, [BERLIN], options=options)

    assert result.succeeded == 1
    assert len(provider.calls) == 2


def test_partial_failure_is_reported_not_raised() -> None:
    engine = _engine(
        FakeProvider("open-meteo"),
        FakeProvider(
            "openweathermap",
            failures=[UpstreamError("bad gateway", status_code=502)],
        ),
    )

    result = _run(engine, [BERLIN])
    errors = result.points[0].errors

    assert len(result.points[0].forecasts) == 1
    assert errors[0].provider_id == "openweathermap"
    assert errors[0].kind == "upstream_error"
    assert errors[0].status_code == 502


def test_all_failures_raise_aggregation_failed() -> None:
    engine = _engine(
        FakeProvider(
            "open-meteo",
            failures=[UpstreamError("down", status_code=500)] * 2,
        )
    )

    with pytest.raises(AggregationFailed) as excinfo:
        _run(engine, [BERLIN, PARIS])

    assert "every point" in str(excinfo.value)
    assert {f.kind for f in excinfo.value.failures} == {"upstream_error"}
    assert len(excinfo.value.failures) == 2


def test_no_available_providers_raises() -> None:
    engine = _engine(FakeProvider("weatherapi", configured=False))

    with pytest.raises(AggregationFailed, match="No weather providers"):
        _run(engine, [BERLIN])


def test_empty_point_list_returns_empty_result() -> None:
    engine = _engine(FakeProvider("open-meteo"))

    result = _run(engine, [])

    assert result.points == ()
    assert result.point_count == 0
    assert result.upstream_fetches == 0


def test_overall_deadline_returns_partial_result() -> None:
    slow = FakeProvider("openweathermap", delay=1.0)
    engine = _engine(FakeProvider("open-meteo"), slow)
    options = AggregationSettings(
        max_retries=0, per_request_timeout_ms=5_000, overall_timeout_ms=50
    )

    result = _run(engine, [BERLIN], options=options)
    point = result.points[0]

    assert result.timed_out is True
    assert [f.source for f in point.forecasts] == ["open-meteo"]
    assert point.errors[0].provider_id == "openweathermap"
    assert point.errors[0].kind == "timeout"
    assert point.errors[0].message == "Aggregation deadline exceeded"


def test_concurrency_is_capped() -> None:
    active = 0
    peak = 0

    class Tracking(FakeProvider):
        async def fetch_weather_data(self, point):  # type: ignore[override]
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            try:
                await asyncio.sleep(0.01)
                return await super().fetch_weather_data(point)
            finally:
                active -= 1

    clock = FakeClock()
    engine = AggregationEngine(
        ProviderRegistry([Tracking("open-meteo")]),
        fresh_cache(clock),
        max_concurrency=2,
        clock=clock,
    )
    points = [RoutePoint(lat=40.0 + i, lon=5.0) for i in range(6)]

    result = _run(engine, points)

    assert result.succeeded == 6
    assert peak == 2


def test_points_sharing_a_cache_key_fetch_once() -> None:
    provider = FakeProvider("open-meteo", delay=0.01)
    engine = _engine(provider)
    nearby = RoutePoint(lat=52.52001, lon=13.40501)

    result = _run(engine, [BERLIN, nearby], ("open-meteo",))

    assert len(provider.calls) == 1
    assert result.upstream_fetches == 1
    assert result.succeeded == 2
    assert result.points[1].point == nearby
    assert result.points[0].primary == result.points[1].primary


def test_queued_fetches_do_not_start_after_the_deadline() -> None:
    provider = FakeProvider("open-meteo", delay=0.2)
    clock = FakeClock()
    engine = AggregationEngine(
        ProviderRegistry([provider]),
        fresh_cache(clock),
        max_concurrency=1,
        clock=clock,
    )
    points = [RoutePoint(lat=40.0 + i, lon=5.0) for i in range(4)]
    options = AggregationSettings(
        max_retries=0, per_request_timeout_ms=5_000, overall_timeout_ms=100
    )

    async def scenario() -> tuple[int, int]:
        with pytest.raises(AggregationFailed):
            await engine.aggregate(
                AggregationRequest(points=points, settings=options)
            )
        at_deadline = len(provider.calls)
        # Give the in-flight fetch time to finish and free the semaphore.
        await asyncio.sleep(0.5)
        return at_deadline, len(provider.calls)

    at_deadline, later = asyncio.run(scenario())

    assert at_deadline == 1
    assert later == 1


def test_probe_reports_provider_health() -> None:
    engine = _engine(
        FakeProvider("open-meteo"),
        FakeProvider("weatherapi", configured=False),
        FakeProvider(
            "openweathermap",
            failures=[UpstreamError("down", status_code=500)],
        ),
    )

    assert asyncio.run(engine.test_provider("open-meteo")) is True
    assert asyncio.run(engine.test_provider("weatherapi")) is False
    assert asyncio.run(engine.test_provider("openweathermap")) is False
    assert asyncio.run(engine.test_provider("darksky")) is False


def test_probe_skips_the_cache() -> None:
    provider = FakeProvider("open-meteo")
    engine = _engine(provider)

    asyncio.run(engine.test_provider("open-meteo"))
    asyncio.run(engine.test_provider("open-meteo"))

    assert len(provider.calls) == 2
    assert engine.cache_stats().entry_count == 0


def test_module_level_api_uses_the_shared_engine(engine_reset: None) -> None:
    clock = FakeClock()
    services.init_engine(
        ProviderRegistry([FakeProvider("open-meteo")]),
        fresh_cache(clock),
        clock=clock,
    )

    result = asyncio.run(services.aggregate([BERLIN], options=FAST))

    assert result.succeeded == 1
    assert services.available_providers() == {"open-meteo"}
    assert services.cache_stats().entry_count == 1
    assert asyncio.run(services.test_provider("open-meteo")) is True


def test_get_engine_builds_default_engine_lazily(engine_reset: None) -> None:
    engine = services.get_engine()

    assert services.get_engine() is engine
    assert "open-meteo" in engine.registry
