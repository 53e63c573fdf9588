"""
Backend wiring: build the provider clients and pipeline objects for BACKEND_MODE.

live: real providers only. mock: the mock backend only. auto: real providers with
the mock backend attached as transparent fallback.
"""

import logging
from dataclasses import dataclass

from app.agent.agents import AgentConfig, WeatherAgent
from app.agent.direct import DirectResponder
from app.agent.graph import Orchestrator
from app.agent.llm import CompletionClient, StreamingCompletionClient
from app.agent.prompts import weather_prompt
from app.agent.tools import WeatherClient
from app.core.config import BACKEND_MODE
from app.services.mock_service import MockCompletionClient, MockSearchClient, MockWeatherClient
from app.services.news_service import NewsService
from app.services.search_client import SearchClient
from app.services.search_gate import SearchNecessityGate

logger = logging.getLogger(__name__)

MODES = ("live", "mock", "auto")


@dataclass
class Services:
    llm: CompletionClient
    search: SearchClient | MockSearchClient
    orchestrator: Orchestrator
    direct: DirectResponder
    news: NewsService | MockSearchClient
    weather_agent: WeatherAgent


def build_services(mode: str = BACKEND_MODE) -> Services:
    if mode not in MODES:
        logger.warning("[backends] unknown BACKEND_MODE=%r; using auto", mode)
        mode = "auto"
    logger.info("[backends] building services mode=%s", mode)
    if mode == "mock":
        llm: CompletionClient = MockCompletionClient()
        search = MockSearchClient()
        news = search
        weather = MockWeatherClient()
    else:
        mock_search = MockSearchClient() if mode == "auto" else None
        llm = StreamingCompletionClient(fallback=MockCompletionClient() if mode == "auto" else None)
        search = SearchClient(fallback=mock_search)
        news = NewsService(search, fallback=mock_search)
        weather = WeatherClient()
    gate = SearchNecessityGate(llm)
    weather_agent = WeatherAgent(
        AgentConfig("weather", "Gets current weather information for a location", weather_prompt),
        llm,
        weather,
    )
    return Services(
        llm=llm,
        search=search,
        orchestrator=Orchestrator(llm, search, gate),
        direct=DirectResponder(llm, search, gate),
        news=news,
        weather_agent=weather_agent,
    )
