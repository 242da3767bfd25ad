"""Shared condition enumeration.

Every provider maps its native condition codes onto OpenWeatherMap-style
categories (`main`) and icon codes. Anything that cannot be matched becomes
the generic `Unknown` category instead of failing the fetch.
"""

from __future__ import annotations

from typing import Final

from .types import WeatherCondition

UNKNOWN: Final[str] = "Unknown"
DEFAULT_ICON: Final[str] = "01d"

# Reference: https://open-meteo.com/en/docs (WMO weather interpretation codes)
WMO_CONDITIONS: Final[dict[int, tuple[str, str, str]]] = {
    0: ("Clear", "Clear sky", "01d"),
    1: ("Clear", "Mainly clear", "01d"),
    2: ("Clouds", "Partly cloudy", "02d"),
    3: ("Clouds", "Overcast", "04d"),
    45: ("Fog", "Fog", "50d"),
    48: ("Fog", "Depositing rime fog", "50d"),
    51: ("Drizzle", "Light drizzle", "09d"),
    53: ("Drizzle", "Moderate drizzle", "09d"),
    55: ("Drizzle", "Dense drizzle", "09d"),
    56: ("Drizzle", "Light freezing drizzle", "09d"),
    57: ("Drizzle", "Dense freezing drizzle", "09d"),
    61: ("Rain", "Slight rain", "10d"),
    63: ("Rain", "Moderate rain", "10d"),
    65: ("Rain", "Heavy rain", "10d"),
    66: ("Rain", "Light freezing rain", "13d"),
    67: ("Rain", "Heavy freezing rain", "13d"),
    71: ("Snow", "Slight snow", "13d"),
    73: ("Snow", "Moderate snow", "13d"),
    75: ("Snow", "Heavy snow", "13d"),
    77: ("Snow", "Snow grains", "13d"),
    80: ("Rain", "Slight rain showers", "09d"),
    81: ("Rain", "Moderate rain showers", "09d"),
    82: ("Rain", "Violent rain showers", "09d"),
    85: ("Snow", "Slight snow showers", "13d"),
    86: ("Snow", "Heavy snow showers", "13d"),
    95: ("Thunderstorm", "Thunderstorm", "11d"),
    96: ("Thunderstorm", "Thunderstorm with slight hail", "11d"),
    99: ("Thunderstorm", "Thunderstorm with heavy hail", "11d"),
}

# Ordered most specific first: "thunder rain" must resolve to Thunderstorm.
_LEXICAL_CATEGORIES: Final[tuple[tuple[tuple[str, ...], str, int], ...]] = (
    (("thunder",), "Thunderstorm", 200),
    (("snow", "blizzard", "sleet", "ice pellets"), "Snow", 600),
    (("drizzle",), "Drizzle", 300),
    (("rain", "shower"), "Rain", 500),
    (("fog", "mist", "haze"), "Fog", 741),
    (("cloud", "overcast"), "Clouds", 803),
    (("clear", "sunny"), "Clear", 800),
)

_CATEGORY_ICONS: Final[dict[str, str]] = {
    "Thunderstorm": "11",
    "Snow": "13",
    "Drizzle": "09",
    "Rain": "10",
    "Fog": "50",
    "Clouds": "04",
    "Clear": "01",
}

VISUAL_CROSSING_ICONS: Final[dict[str, str]] = {
    "clear-day": "01d",
    "clear-night": "01n",
    "partly-cloudy-day": "02d",
    "partly-cloudy-night": "02n",
    "cloudy": "04d",
    "rain": "10d",
    "showers-day": "09d",
    "showers-night": "09n",
    "snow": "13d",
    "snow-showers-day": "13d",
    "snow-showers-night": "13n",
    "thunder": "11d",
    "thunder-rain": "11d",
    "thunder-showers-day": "11d",
    "fog": "50d",
    "wind": "50d",
}


def from_wmo_code(code: int | None) -> WeatherCondition:
    if code is None or code not in WMO_CONDITIONS:
        return WeatherCondition(
            id=code if code is not None else 0,
            main=UNKNOWN,
            description="Unknown weather",
            icon=DEFAULT_ICON,
        )
    main, description, icon = WMO_CONDITIONS[code]
    return WeatherCondition(
        id=code, main=main, description=description, icon=icon
    )


def category_from_text(text: str | None) -> tuple[str, int]:
    """Return (category, OWM-style code) for a free-text condition."""

    lowered = (text or "").lower()
    for needles, category, code in _LEXICAL_CATEGORIES:
        if any(needle in lowered for needle in needles):
            return category, code
    return UNKNOWN, 0


def icon_for_category(category: str, *, night: bool = False) -> str:
    prefix = _CATEGORY_ICONS.get(category)
    if prefix is None:
        return DEFAULT_ICON
    return f"{prefix}{'n' if night else 'd'}"


def from_owm_code(
    code: int, description: str, icon: str | None
) -> WeatherCondition:
    """Map an OpenWeatherMap condition id using its numeric groups."""

    if 200 <= code < 300:
        main = "Thunderstorm"
    elif 300 <= code < 400:
        main = "Drizzle"
    elif 500 <= code < 600:
        main = "Rain"
    elif 600 <= code < 700:
        main = "Snow"
    elif 700 <= code < 800:
        main = "Fog"
    elif code == 800:
        main = "Clear"
    elif 800 < code < 900:
        main = "Clouds"
    else:
        main = UNKNOWN
    return WeatherCondition(
        id=code,
        main=main,
        description=description or main,
        icon=icon or icon_for_category(main),
    )
