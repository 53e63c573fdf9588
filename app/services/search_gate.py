"""
Search necessity gate: one cheap classification completion before spending a search call.

Fails open. Only an explicit "false" answer skips the search; anything ambiguous,
and any failure of the call, means search.
"""

import logging

from app.agent.llm import CompletionClient
from app.agent.prompts import search_check_prompt, search_necessity_system_prompt

logger = logging.getLogger(__name__)


class SearchNecessityGate:
    def __init__(self, llm: CompletionClient) -> None:
        self._llm = llm

    async def should_search(self, query: str, language: str = "en") -> bool:
        messages = [
            {"role": "system", "content": search_necessity_system_prompt(language)},
            {"role": "user", "content": search_check_prompt(query)},
        ]
        try:
            answer = await self._llm.create(messages, temperature=0, max_tokens=5)
        except Exception as e:
            logger.warning("[search_gate] check failed (%s); searching anyway", e)
            return True
        lowered = (answer or "").lower()
        decision = "true" in lowered or "false" not in lowered
        logger.info("[search_gate] OUT raw=%r should_search=%s", answer, decision)
        return decision
