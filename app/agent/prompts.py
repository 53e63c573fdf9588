"""Language-aware system and user prompts for the agent personas."""

import json

from app.core.config import RELATED_QUESTIONS_COUNT, SEARCH_QUERY_MAX_CHARS


def _strict_language(language: str) -> str:
    return (
        f"You MUST respond ONLY in {language}. This is a strict requirement - "
        "do not use any other language under any circumstances."
    )


def main_assistant_prompt(language: str, has_search_context: bool) -> str:
    prompt = (
        f"You are a helpful assistant. {_strict_language(language)} If you cannot provide an answer "
        f"in {language}, respond with an error message in {language}."
    )
    if has_search_context:
        prompt += (
            "\n\nUse the search results provided to enhance your responses, and always cite your "
            "sources when using information from them."
        )
    return prompt


def search_necessity_system_prompt(language: str) -> str:
    return (
        f"You are a search necessity checker. You communicate in {language}. Your task is to determine "
        "if a web search would be helpful to answer the query accurately. Respond with 'true' or 'false' only."
    )


def search_check_prompt(query: str) -> str:
    return f'Query: "{query}"\nWould a web search help answer this query more accurately? Respond with true/false only.'


def related_questions_system_prompt(language: str) -> str:
    return (
        f"You are a helpful assistant. You MUST generate all questions ONLY in {language}. "
        "This is a strict requirement - do not use any other language under any circumstances. "
        "Generate relevant follow-up questions based on the conversation context."
    )


def related_questions_request(query: str, previous_topic: str | None = None) -> str:
    topic = f"Previous topic: {previous_topic}\nNew question: {query}" if previous_topic else query
    return (
        f"{topic}\n\nBased on the conversation above, generate {RELATED_QUESTIONS_COUNT} relevant "
        "follow-up questions that would help explore this topic further."
    )


def planning_prompt(language: str) -> str:
    return (
        f"You are a planning agent. {_strict_language(language)} Plan the steps needed to answer the "
        f"user's query.\n\nIMPORTANT: You MUST plan the steps in {language} only."
    )


def search_agent_prompt(language: str) -> str:
    return (
        f"You are a search agent. {_strict_language(language)} Generate focused search queries to find "
        f"relevant information.\n\nIMPORTANT: You MUST generate search queries in {language} only."
    )


def consolidation_prompt(language: str) -> str:
    return (
        f"You are a consolidation agent. {_strict_language(language)} Combine the search results into a "
        f"comprehensive answer.\n\nIMPORTANT: You MUST provide the final answer in {language} only."
    )


def weather_prompt(language: str) -> str:
    return (
        f"You are a weather assistant. {_strict_language(language)} Describe current conditions clearly "
        "and briefly, using the data you are given."
    )


PLAN_SCHEMA_INSTRUCTIONS = """IMPORTANT: Your response must be valid JSON matching this schema:
{
  "answer": "string - your detailed plan",
  "sources": [],
  "confidence": number between 0 and 1,
  "steps": [
    {
      "id": number,
      "description": "string",
      "requires_search": boolean,
      "requires_tools": string[],
      "status": "pending"
    }
  ]
}"""

CONSOLIDATION_SCHEMA_INSTRUCTIONS = """IMPORTANT: Your response must be valid JSON matching this schema:
{
  "answer": "string - your detailed answer with citations [1], [2], etc.",
  "sources": [{"title": "string", "url": "string"}],
  "confidence": number between 0 and 1
}"""

SEARCH_QUERY_INSTRUCTIONS = (
    f"IMPORTANT: Generate a concise search query of at most {SEARCH_QUERY_MAX_CHARS} characters. "
    "Focus on key terms and concepts. Do not include any explanations or JSON formatting."
)


def search_query_request(query: str, plan_json: str) -> str:
    return f"Original query: {query}\n\nPlan:\n{plan_json}"


def consolidation_request(query: str, plan_json: str, search_context: str) -> str:
    return f"Original query: {query}\n\nPlan:\n{plan_json}\n\nSearch Results:\n{search_context}"


def weather_format_request(language: str, report: dict) -> str:
    return f"Format this weather data into a natural response in {language}:\n{json.dumps(report, indent=2)}"
