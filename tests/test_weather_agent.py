"""
Tests for the Open-Meteo weather client and the weather agent.
"""

import json

import httpx
import pytest
from conftest import ScriptedLLM

from app.agent.agents import AgentConfig, WeatherAgent
from app.agent.prompts import weather_prompt
from app.agent.tools import WeatherClient, parse_related_questions
from app.core.errors import ParseError, TransportError

GEOCODE = {
    "results": [
        {"name": "Paris", "country": "United States", "country_code": "US", "admin1": "Texas", "latitude": 33.66, "longitude": -95.55},
        {"name": "Paris", "country": "France", "country_code": "FR", "admin1": "Île-de-France", "latitude": 48.85, "longitude": 2.35},
    ]
}
FORECAST = {"current": {"temperature_2m": 21.5, "relative_humidity_2m": 40, "wind_speed_10m": 9.0, "weather_code": 2}}


def _open_meteo(request: httpx.Request) -> httpx.Response:
    if "geocoding" in request.url.host:
        if request.url.params["name"] == "Atlantis":
            return httpx.Response(200, json={})
        return httpx.Response(200, json=GEOCODE)
    return httpx.Response(200, json=FORECAST)


def _weather() -> WeatherClient:
    return WeatherClient(transport=httpx.MockTransport(_open_meteo))


@pytest.mark.asyncio
async def test_current_prefers_matching_country() -> None:
    report = await _weather().current("Paris", country="France")
    assert report["country"] == "France"
    assert report["latitude"] == 48.85
    assert report["conditions"] == "Partly cloudy"
    assert report["temperature_c"] == 21.5


@pytest.mark.asyncio
async def test_current_unknown_place_is_none() -> None:
    assert await _weather().current("Atlantis") is None


@pytest.mark.asyncio
async def test_current_http_error_raises_transport_error() -> None:
    client = WeatherClient(transport=httpx.MockTransport(lambda req: httpx.Response(500)))
    with pytest.raises(TransportError):
        await client.current("Paris")


def _agent(location_args: str) -> tuple[WeatherAgent, ScriptedLLM]:
    llm = ScriptedLLM(
        {"extract_location": location_args, "weather assistant": lambda msgs: "Sunny-ish in " + json.loads(msgs[-1]["content"].split("\n", 1)[1])["location"]}
    )
    return WeatherAgent(AgentConfig("weather", "weather", weather_prompt), llm, _weather()), llm


@pytest.mark.asyncio
async def test_process_formats_report() -> None:
    agent, llm = _agent(json.dumps({"city": "Paris", "country": "France"}))
    result = await agent.process("weather in Paris, France", "en")
    assert result.answer == "Sunny-ish in Paris"
    assert result.confidence == pytest.approx(0.95)
    assert result.sources[0].url == "https://api.open-meteo.com/v1/forecast?latitude=48.85&longitude=2.35"
    assert llm.keys() == ["extract_location", "weather assistant"]


@pytest.mark.asyncio
async def test_process_unknown_location_is_low_confidence() -> None:
    agent, _ = _agent(json.dumps({"city": "Atlantis"}))
    result = await agent.process("weather in Atlantis")
    assert result.confidence == pytest.approx(0.2)
    assert result.sources == []
    assert "Atlantis" in result.answer


@pytest.mark.asyncio
async def test_bad_tool_args_fall_back_to_query_text() -> None:
    agent, _ = _agent("not json")
    result = await agent.process("Atlantis")
    assert result.confidence == pytest.approx(0.2)


def test_parse_related_questions_keeps_first_five() -> None:
    text = json.dumps({"questions": [f"q{i}" for i in range(7)] + [""]})
    assert parse_related_questions(text) == ["q0", "q1", "q2", "q3", "q4"]


def test_parse_related_questions_rejects_short_lists() -> None:
    with pytest.raises(ParseError):
        parse_related_questions(json.dumps({"questions": ["a", "b", " ", "c", "d"]}))
