"""
Application configuration (env, settings, constants).

Responsibility: Centralize config loading, environment variables, and app-wide
constants. Keeps the rest of the app decoupled from how config is sourced.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


# Backend selection: "live", "mock", or "auto" (live with mock fallback on failure)
BACKEND_MODE: str = (os.getenv("BACKEND_MODE", "auto").strip().lower() or "auto")

# OpenAI-compatible completion endpoint (streaming chat completions)
OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_LLM_MODEL: str = (
    os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
)
COMPLETION_URL: str = (
    os.getenv("COMPLETION_URL", "https://api.openai.com/v1/chat/completions").strip()
    or "https://api.openai.com/v1/chat/completions"
)

# Tavily web search
TAVILY_API_KEY: str = os.getenv("TAVILY_API_KEY", "").strip()
TAVILY_SEARCH_URL: str = "https://api.tavily.com/search"

# API timeouts (seconds)
LLM_API_TIMEOUT: float = 60.0
SEARCH_API_TIMEOUT: float = 30.0
TOOLS_HTTP_TIMEOUT: float = 15.0

# Mock backend latency per streamed token (seconds)
MOCK_DELAY: float = _float_env("MOCK_DELAY", 0.03)

# Agent pipeline
SEARCH_QUERY_MAX_CHARS: int = 400
DEFAULT_CONFIDENCE: float = 0.7
HISTORY_MAX_MESSAGES: int = 6
RELATED_QUESTIONS_COUNT: int = 5

# Result deduplication: fuzzy title threshold for same-host results
DEDUP_SIMILARITY_THRESHOLD: float = _float_env("DEDUP_SIMILARITY_THRESHOLD", 0.8)

# Category news: fan-out search types, per-search cap, cache window
NEWS_SEARCH_TYPES: tuple[str, ...] = tuple(
    t.strip() for t in os.getenv("NEWS_SEARCH_TYPES", "latest,top").split(",") if t.strip()
) or ("latest", "top")
NEWS_MAX_RESULTS: int = 25
NEWS_RATE_LIMIT_SECONDS: float = 60.0

# Streaming UI updates: at most one per interval (seconds)
UPDATE_INTERVAL: float = 0.05

# Open-Meteo weather API (no key required)
OPEN_METEO_GEOCODE: str = "https://geocoding-api.open-meteo.com/v1/search"
OPEN_METEO_FORECAST: str = "https://api.open-meteo.com/v1/forecast"
