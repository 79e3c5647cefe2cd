"""Proofreader Agent: quick grammar and flow polish of generated prose."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMError
from config.settings import Settings
from models.book import BookSettings
from tools.completion_client import CompletionClient
from tools.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class ProofreaderAgent(BaseAgent):

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(llm_client, settings, rate_limiter)
        self._template = self._load_prompt("proofreader")

    async def quick_polish(self, content: str, settings: BookSettings) -> str:
        """Polish prose; the original text is returned on failure or empty output."""
        if not content.strip():
            return content
        system_prompt = self._extract_section(self._template, "System Prompt")
        user_prompt = self._extract_section(self._template, "Polish Instructions").format(
            content=content, tone=settings.tone, genre=settings.genre,
        )
        try:
            result = await self._complete(
                user_prompt, self.settings.llm_model_proofreading, system_prompt,
                max_tokens=3000, temperature=0.0,
            )
        except LLMError as e:
            logger.warning("Quick polish failed, keeping original text: %s", e)
            return content
        return result.text.strip() or content
