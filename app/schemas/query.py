"""Schemas for the query, news and weather endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from app.schemas.agent import Message, PlanStep, SearchResult, Source


class QueryRequest(BaseModel):
    """Request body for POST /query and POST /query/stream. History is owned by the caller."""

    question: str = Field(..., min_length=1, description="User question.")
    history: list[Message] = Field(default_factory=list, description="Prior conversation, oldest first.")
    language: str = Field("en", min_length=1, description="Language the answer must be written in.")
    mode: Literal["agent", "direct"] = Field(
        "agent", description="agent: plan → search → consolidate. direct: one streamed answer."
    )


class QueryResponse(BaseModel):
    """Response for POST /query."""

    answer: str = Field(..., description="Final answer.")
    sources: list[Source] = Field(default_factory=list, description="Cited sources with valid http(s) URLs.")
    confidence: float | None = Field(None, description="Agent confidence in [0, 1]. None in direct mode.")
    steps: list[PlanStep] | None = Field(None, description="Final pipeline step snapshot (agent mode).")
    related_questions: list[str] = Field(default_factory=list, description="Five follow-up questions.")


class NewsResponse(BaseModel):
    category: str
    articles: list[SearchResult] = Field(default_factory=list)


class WeatherRequest(BaseModel):
    query: str = Field(..., min_length=1, description="Weather question, e.g. 'weather in Paris'.")
    language: str = Field("en", min_length=1)


class ChatProxyRequest(BaseModel):
    """Body for POST /api/chat, forwarded to the OpenAI chat completions API."""

    messages: list[dict[str, Any]] = Field(..., min_length=1)
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    tools: list[dict[str, Any]] | None = None
    tool_choice: Any = None
    stream: bool = False


class SearchProxyRequest(BaseModel):
    query: str = Field(..., min_length=1)
    search_depth: Literal["basic", "advanced"] = "advanced"
    include_images: bool = True
    include_answer: bool = False
    max_results: int = Field(5, ge=1, le=50)


class NewsProxyRequest(BaseModel):
    category: str = Field(..., min_length=1)
    search_type: Literal["latest", "top"] = Field("latest", alias="searchType")
    max_results: int = Field(25, ge=1, le=50, alias="maxResults")

    model_config = {"populate_by_name": True}
