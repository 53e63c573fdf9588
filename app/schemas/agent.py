"""Domain models for the agent pipeline: messages, plan steps, search results, agent outputs."""

import math
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, TypeAdapter, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from app.core.config import DEFAULT_CONFIDENCE
from app.core.errors import ParseError

Role = Literal["system", "user", "assistant"]
StepStatus = Literal["pending", "loading", "complete"]

_STATUS_ORDER = {"pending": 0, "loading": 1, "complete": 2}


def is_valid_url(url: str | None) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def host_of(url: str) -> str:
    """Hostname without a leading 'www.'; empty string when the URL does not parse."""
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def parse_published_date(value: Any) -> datetime | None:
    """Accept ISO-8601 or RFC-2822 dates (Tavily news uses the latter); anything else is None."""
    if isinstance(value, datetime):
        return value
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None


def clamp_confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    """Coerce a model-reported confidence into [0, 1]; non-numbers become the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if math.isnan(value):
        return default
    return min(max(float(value), 0.0), 1.0)


class Message(BaseModel):
    """One conversation turn. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class PlanStep(BaseModel):
    """A pipeline step. Status only moves forward: pending -> loading -> complete."""

    model_config = ConfigDict(populate_by_name=True)

    id: PositiveInt
    description: str
    requires_search: bool = False
    requires_tools: list[str] = Field(default_factory=list)
    status: StepStatus = "pending"

    @field_validator("requires_tools", mode="before")
    @classmethod
    def _dedupe_tools(cls, value: Any) -> list[str]:
        if not value:
            return []
        seen: list[str] = []
        for tool in value:
            name = str(tool).strip()
            if name and name not in seen:
                seen.append(name)
        return seen

    def advance(self, status: StepStatus) -> None:
        if _STATUS_ORDER[status] < _STATUS_ORDER[self.status]:
            raise ValueError(f"step {self.id} cannot move from {self.status} to {status}")
        self.status = status


class SearchResult(BaseModel):
    """A ranked hit from the search provider (also used for news articles)."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    snippet: str = ""
    score: float = 0.0
    domain: str = ""
    published_date: datetime | None = None
    image_url: str | None = None
    image_description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_domain(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("domain"):
            data = {**data, "domain": host_of(str(data.get("url") or ""))}
        return data

    @classmethod
    def from_tavily(cls, raw: dict[str, Any], image: dict[str, Any] | None = None) -> "SearchResult":
        """Map one Tavily result dict (content -> snippet) into a SearchResult."""
        image = image or {}
        return cls(
            title=(raw.get("title") or "").strip(),
            url=(raw.get("url") or "").strip(),
            snippet=(raw.get("content") or raw.get("snippet") or "").strip(),
            score=float(raw.get("score") or 0.0),
            published_date=parse_published_date(raw.get("published_date")),
            image_url=image.get("url") or raw.get("image_url"),
            image_description=image.get("description"),
        )


class Source(BaseModel):
    title: str
    url: str


def valid_sources(sources: list[Any]) -> list[Source]:
    """Keep only sources with a title and a usable absolute URL, in order."""
    kept: list[Source] = []
    for item in sources or []:
        if isinstance(item, Source):
            src = item
        elif isinstance(item, dict):
            src = Source(title=str(item.get("title") or item.get("url") or ""), url=str(item.get("url") or ""))
        else:
            continue
        if is_valid_url(src.url):
            kept.append(src)
    return kept


def sources_from_results(results: list[SearchResult]) -> list[Source]:
    return valid_sources([Source(title=r.title, url=r.url) for r in results])


def cited_sources(sources: list[Any], results: list[SearchResult]) -> list[Source]:
    """Model-cited sources restricted to URLs the search actually returned."""
    urls = {r.url for r in results}
    return [s for s in valid_sources(sources) if s.url in urls]


class _StructuredOutput(BaseModel):
    answer: str
    sources: list[Source] = Field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE

    @field_validator("sources", mode="before")
    @classmethod
    def _usable_sources(cls, value: Any) -> list[Source]:
        return valid_sources(value) if isinstance(value, list) else []

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)


class PlanResult(_StructuredOutput):
    """Output of the planning agent. Steps always start pending, with unique ids."""

    kind: Literal["plan"] = "plan"
    steps: list[PlanStep] = Field(default_factory=list)

    @field_validator("steps", mode="before")
    @classmethod
    def _reset_status(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        steps = []
        for raw in value:
            if isinstance(raw, PlanStep):
                raw = raw.model_dump()
            steps.append({**raw, "status": "pending"} if isinstance(raw, dict) else raw)
        return steps

    @field_validator("steps")
    @classmethod
    def _unique_ids(cls, steps: list[PlanStep]) -> list[PlanStep]:
        if len({s.id for s in steps}) == len(steps):
            return steps
        return [s.model_copy(update={"id": i}) for i, s in enumerate(steps, 1)]


class ConsolidationResult(_StructuredOutput):
    """Output of the consolidation agent."""

    kind: Literal["consolidation"] = "consolidation"


AgentOutput = Annotated[Union[PlanResult, ConsolidationResult], Field(discriminator="kind")]
_agent_output = TypeAdapter(AgentOutput)


def parse_agent_output(kind: str, data: dict[str, Any]) -> PlanResult | ConsolidationResult:
    """Validate a model's JSON object as the output of the given phase. Raises ParseError."""
    try:
        return _agent_output.validate_python({**data, "kind": kind})
    except PydanticValidationError as e:
        raise ParseError(f"invalid {kind} output: {e.error_count()} error(s)") from e


class AgentResult(BaseModel):
    """Terminal artifact of one pipeline run, handed to the caller."""

    answer: str
    sources: list[Source] = Field(default_factory=list)
    confidence: float = 0.0
    steps: list[PlanStep] | None = None
    related_questions: list[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value, default=0.0)


class ChatResult(BaseModel):
    """Result of the direct (non-agent) response path."""

    answer: str
    sources: list[SearchResult] = Field(default_factory=list)
    related_questions: list[str] = Field(default_factory=list)
    cancelled: bool = False


def first_user_turn(history: list[Any]) -> str | None:
    """Content of the first non-empty user message; the conversation's topic."""
    for m in history or []:
        role = m.role if isinstance(m, Message) else m.get("role")
        content = m.content if isinstance(m, Message) else m.get("content")
        if role == "user" and content and content.strip():
            return content.strip()
    return None
