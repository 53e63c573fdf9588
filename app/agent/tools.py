"""
Agent tools: function-calling schemas and the executors behind them.

Tools: get_related_questions (forced call, exactly five strings) and extract_location.
WeatherClient runs the Open-Meteo lookup behind the weather agent.
"""

import json
import logging
from typing import Any

import httpx

from app.core.config import (
    OPEN_METEO_FORECAST,
    OPEN_METEO_GEOCODE,
    RELATED_QUESTIONS_COUNT,
    TOOLS_HTTP_TIMEOUT,
)
from app.core.errors import ParseError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_RELATED_QUESTIONS = [
    "Tell me more about this topic",
    "What are the main benefits?",
    "Can you explain it differently?",
    "What are some examples?",
    "What are the limitations?",
]

# OpenAI function-calling format
RELATED_QUESTIONS_TOOL = {
    "type": "function",
    "function": {
        "name": "get_related_questions",
        "description": "Generate related follow-up questions",
        "parameters": {
            "type": "object",
            "properties": {
                "questions": {
                    "type": "array",
                    "items": {"type": "string"},
                    "minItems": RELATED_QUESTIONS_COUNT,
                    "maxItems": RELATED_QUESTIONS_COUNT,
                }
            },
            "required": ["questions"],
        },
    },
}

EXTRACT_LOCATION_TOOL = {
    "type": "function",
    "function": {
        "name": "extract_location",
        "description": "Extract the city or place the user is asking about. Pass country and optionally region/state for small towns so the geocoder can find the place.",
        "parameters": {
            "type": "object",
            "properties": {
                "city": {
                    "type": "string",
                    "description": "City or place name (e.g. Mumbai, Sivasagar, London)",
                },
                "region": {
                    "type": "string",
                    "description": "Optional state/region name (e.g. Assam, California)",
                },
                "country": {
                    "type": "string",
                    "description": "Optional country name or code (e.g. India, IN, US)",
                },
            },
            "required": ["city"],
        },
    },
}

def forced_choice(tool: dict[str, Any]) -> dict[str, Any]:
    """tool_choice value that forces the model to call the given tool."""
    return {"type": "function", "function": {"name": tool["function"]["name"]}}


def parse_tool_args(text: str) -> dict[str, Any]:
    """Decode assembled tool-call argument text. Raises ParseError."""
    try:
        args = json.loads(text or "")
    except json.JSONDecodeError as e:
        raise ParseError(f"tool arguments are not valid JSON: {e}") from e
    if not isinstance(args, dict):
        raise ParseError("tool arguments must be a JSON object")
    return args


def parse_related_questions(text: str) -> list[str]:
    """
    Questions from a get_related_questions call. Needs at least five non-empty
    strings and keeps the first five; anything else raises ParseError.
    """
    questions = parse_tool_args(text).get("questions")
    if not isinstance(questions, list):
        raise ParseError("questions must be a list")
    cleaned = [q.strip() for q in questions if isinstance(q, str) and q.strip()]
    if len(cleaned) < RELATED_QUESTIONS_COUNT:
        raise ParseError(f"expected {RELATED_QUESTIONS_COUNT} questions, got {len(cleaned)}")
    return cleaned[:RELATED_QUESTIONS_COUNT]


# WMO weather codes (abbreviated) for Open-Meteo
_WMO_CODES = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}


def describe_weather_code(code: Any) -> str:
    return _WMO_CODES.get(code, f"Weather code {code}")


def forecast_url(latitude: float, longitude: float) -> str:
    return f"{OPEN_METEO_FORECAST}?latitude={latitude}&longitude={longitude}"


class WeatherClient:
    """Open-Meteo geocoding + current conditions (free, no API key)."""

    def __init__(
        self,
        timeout: float = TOOLS_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.transport = transport

    async def current(
        self, city: str, country: str | None = None, region: str | None = None
    ) -> dict[str, Any] | None:
        """
        Current weather as a report dict, or None when the geocoder knows no such place.
        Raises TransportError on network or HTTP failure.
        """
        city = (city or "").strip()
        if not city:
            return None
        parts = [city]
        if region and region.strip():
            parts.append(region.strip())
        if country and country.strip():
            parts.append(country.strip())
        query = ", ".join(parts)
        logger.info("[tools:weather] IN  location=%r", query)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                geo = await client.get(OPEN_METEO_GEOCODE, params={"name": city, "count": 5})
                if geo.status_code != 200:
                    raise TransportError(f"geocode returned {geo.status_code}")
                loc = _pick_location(geo.json().get("results") or [], region, country)
                if loc is None:
                    logger.info("[tools:weather] OUT no location for %r", query)
                    return None
                lat, lon = loc["latitude"], loc["longitude"]
                forecast = await client.get(
                    OPEN_METEO_FORECAST,
                    params={
                        "latitude": lat,
                        "longitude": lon,
                        "current": "temperature_2m,relative_humidity_2m,wind_speed_10m,weather_code",
                    },
                )
                if forecast.status_code != 200:
                    raise TransportError(f"forecast returned {forecast.status_code}")
                cur = forecast.json().get("current") or {}
        except httpx.HTTPError as e:
            raise TransportError(f"weather lookup failed: {e}") from e
        report = {
            "location": loc.get("name", city),
            "country": loc.get("country", ""),
            "latitude": lat,
            "longitude": lon,
            "temperature_c": cur.get("temperature_2m"),
            "humidity": cur.get("relative_humidity_2m"),
            "wind_speed_kmh": cur.get("wind_speed_10m"),
            "conditions": describe_weather_code(cur.get("weather_code", 0)),
        }
        logger.info("[tools:weather] OUT location=%r conditions=%r", report["location"], report["conditions"])
        return report


def _pick_location(
    results: list[dict[str, Any]], region: str | None, country: str | None
) -> dict[str, Any] | None:
    """First geocoder hit, preferring one whose admin1/country matches the hints."""
    usable = [r for r in results if r.get("latitude") is not None and r.get("longitude") is not None]
    if not usable:
        return None
    for hint, keys in ((region, ("admin1",)), (country, ("country", "country_code"))):
        if not hint:
            continue
        wanted = hint.strip().lower()
        for r in usable:
            if any(str(r.get(k) or "").lower() == wanted for k in keys):
                return r
    return usable[0]
