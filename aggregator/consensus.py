"""Cross-provider consensus and disagreement for a single point."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Sequence
from statistics import fmean, pstdev

from .engines.conditions import DEFAULT_ICON, UNKNOWN
from .engines.types import (
    CanonicalForecast,
    ConsensusForecast,
    MetricConsensus,
    SourceComparison,
    ValueRange,
)

OUTLIER_STD_FACTOR = 2.0
AGREEMENT_PENALTY_PER_DEGREE = 10.0


def build_consensus(
    forecasts: Sequence[CanonicalForecast],
) -> ConsensusForecast | None:
    """Mean and population spread of each metric. Needs two sources."""

    if len(forecasts) < 2:
        return None
    sources = tuple(f.source for f in forecasts)

    def metric(
        getter: Callable[[CanonicalForecast], float],
    ) -> MetricConsensus:
        values = [getter(f) for f in forecasts]
        return MetricConsensus(
            value=fmean(values), spread=pstdev(values), sources=sources
        )

    condition, icon = _most_common_condition(forecasts)
    return ConsensusForecast(
        temp=metric(lambda f: f.temp),
        humidity=metric(lambda f: f.humidity),
        wind_speed=metric(lambda f: f.wind_speed),
        wind_deg=metric(lambda f: f.wind_deg),
        pressure=metric(lambda f: f.pressure),
        clouds=metric(lambda f: f.clouds),
        precipitation=metric(lambda f: f.precipitation),
        condition=condition,
        icon=icon,
    )


def compare_sources(
    forecasts: Sequence[CanonicalForecast],
) -> SourceComparison | None:
    """Value ranges, a 0-100 agreement score and temperature outliers."""

    if len(forecasts) < 2:
        return None
    temps = [f.temp for f in forecasts]
    mean_temp = fmean(temps)
    temp_std = pstdev(temps)
    outliers = tuple(
        f.source
        for f in forecasts
        if abs(f.temp - mean_temp) > temp_std * OUTLIER_STD_FACTOR
    )
    return SourceComparison(
        temp_range=_range(temps),
        humidity_range=_range([f.humidity for f in forecasts]),
        wind_speed_range=_range([f.wind_speed for f in forecasts]),
        precipitation_range=_range([f.precipitation for f in forecasts]),
        agreement_score=max(
            0.0, 100.0 - temp_std * AGREEMENT_PENALTY_PER_DEGREE
        ),
        outlier_sources=outliers,
    )


def _range(values: Sequence[float]) -> ValueRange:
    low, high = min(values), max(values)
    return ValueRange(min=low, max=high, diff=high - low)


def _most_common_condition(
    forecasts: Sequence[CanonicalForecast],
) -> tuple[str, str]:
    mains = [f.weather[0].main if f.weather else UNKNOWN for f in forecasts]
    # Counter.most_common keeps first-seen order on ties.
    condition = Counter(mains).most_common(1)[0][0]
    for forecast in forecasts:
        if forecast.weather and forecast.weather[0].main == condition:
            return condition, forecast.weather[0].icon
    return condition, DEFAULT_ICON
