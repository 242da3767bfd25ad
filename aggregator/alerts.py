from __future__ import annotations

from .engines.types import CanonicalForecast, WeatherAlert

# m/s
WIND_HIGH = 10.0
WIND_EXTREME = 17.0
# C
TEMP_FREEZING = 0.0
TEMP_HOT = 30.0
TEMP_EXTREME_HOT = 40.0
TEMP_EXTREME_COLD = -10.0
# mm/h
PRECIPITATION_HEAVY = 10.0
PRECIPITATION_EXTREME = 50.0
# meters
VISIBILITY_POOR = 1_000.0
VISIBILITY_VERY_POOR = 200.0


def generate_alerts(forecast: CanonicalForecast) -> list[WeatherAlert]:
    """Threshold alerts for one forecast, at most one per alert type."""

    alerts: list[WeatherAlert] = []
    for check in (_wind, _temperature, _precipitation, _visibility):
        alert = check(forecast)
        if alert is not None:
            alerts.append(alert)
    return alerts


def _wind(forecast: CanonicalForecast) -> WeatherAlert | None:
    speed = round(forecast.wind_speed)
    if forecast.wind_speed >= WIND_EXTREME:
        return WeatherAlert(
            type="wind",
            severity="extreme",
            title="Extreme Wind Warning",
            description=(
                f"Very strong winds of {speed} m/s. "
                "Outdoor activities not recommended."
            ),
        )
    if forecast.wind_speed >= WIND_HIGH:
        return WeatherAlert(
            type="wind",
            severity="high",
            title="High Wind Advisory",
            description=f"Strong winds of {speed} m/s. Exercise caution.",
        )
    return None


def _temperature(forecast: CanonicalForecast) -> WeatherAlert | None:
    temp = forecast.temp
    shown = round(temp)
    if temp >= TEMP_EXTREME_HOT:
        return WeatherAlert(
            type="temperature",
            severity="extreme",
            title="Extreme Heat Warning",
            description=(
                f"Dangerous heat of {shown}°C. Risk of heat exhaustion."
            ),
        )
    if temp >= TEMP_HOT:
        return WeatherAlert(
            type="temperature",
            severity="medium",
            title="Hot Weather Advisory",
            description=f"High temperature of {shown}°C. Stay hydrated.",
        )
    if temp <= TEMP_EXTREME_COLD:
        return WeatherAlert(
            type="temperature",
            severity="extreme",
            title="Extreme Cold Warning",
            description=f"Dangerous cold of {shown}°C. Risk of hypothermia.",
        )
    if temp <= TEMP_FREEZING:
        return WeatherAlert(
            type="temperature",
            severity="medium",
            title="Freezing Temperature",
            description=(
                f"Temperature at or below freezing ({shown}°C). "
                "Watch for ice."
            ),
        )
    return None


def _precipitation(forecast: CanonicalForecast) -> WeatherAlert | None:
    # Rain takes precedence over snow when both are reported.
    if forecast.rain_1h:
        amount, kind = forecast.rain_1h, "rain"
    elif forecast.snow_1h:
        amount, kind = forecast.snow_1h, "snow"
    else:
        return None
    if amount >= PRECIPITATION_EXTREME:
        return WeatherAlert(
            type="precipitation",
            severity="extreme",
            title="Extreme Precipitation Warning",
            description=f"Very heavy {kind} of {amount:.1f}mm/h.",
        )
    if amount >= PRECIPITATION_HEAVY:
        return WeatherAlert(
            type="precipitation",
            severity="high",
            title="Heavy Precipitation Alert",
            description=f"Heavy {kind} of {amount:.1f}mm/h.",
        )
    return None


def _visibility(forecast: CanonicalForecast) -> WeatherAlert | None:
    visibility = forecast.visibility
    shown = f"{visibility:g}"
    if visibility <= VISIBILITY_VERY_POOR:
        return WeatherAlert(
            type="visibility",
            severity="high",
            title="Very Poor Visibility",
            description=(
                f"Visibility reduced to {shown}m. Exercise extreme caution."
            ),
        )
    if visibility <= VISIBILITY_POOR:
        return WeatherAlert(
            type="visibility",
            severity="medium",
            title="Poor Visibility",
            description=f"Reduced visibility of {shown}m.",
        )
    return None
