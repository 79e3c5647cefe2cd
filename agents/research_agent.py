"""Research Agent: background facts that feed the story bible."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMError
from config.settings import Settings
from models.book import BookSettings
from models.enums import RequestPriority
from models.story_bible import ResearchData
from tools.completion_client import CompletionClient
from tools.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class ResearchAgent(BaseAgent):
    """Collects domain, character, setting, technical and cultural notes."""

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(llm_client, settings, rate_limiter)
        self._template = self._load_prompt("research")

    async def conduct_research(
        self, prompt: str, back_cover: str, settings: BookSettings,
    ) -> ResearchData:
        """Research the premise; an empty result is returned on failure."""
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Research Instructions").format(
            prompt=prompt, back_cover=back_cover, genre=settings.genre,
        )
        try:
            data = await self._complete_json(
                user_prompt, self.settings.llm_model_research, system_prompt,
                max_tokens=3000, priority=RequestPriority.LOW,
            )
        except LLMError as e:
            logger.warning("Research failed, continuing without research: %s", e)
            return self.empty_research()

        research = ResearchData.from_dict(data)
        logger.info("Research complete: %d facts", len(research.all_facts()))
        return research

    @staticmethod
    def empty_research() -> ResearchData:
        """Research payload used when the research stage is not available."""
        return ResearchData()

    @staticmethod
    def extract_relevant(
        research_focus: list[str], research: Optional[ResearchData], limit: int = 5,
    ) -> list[str]:
        """Facts mentioning any of the chapter's research focus terms."""
        if not research or not research_focus:
            return []
        terms = [t.lower() for t in research_focus if t]
        relevant = [
            fact for fact in research.all_facts()
            if any(term in fact.lower() for term in terms)
        ]
        return relevant[:limit]
