"""Base agent class with common completion and prompt utilities."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from config.exceptions import LLMResponseParseError
from config.settings import Settings
from models.enums import RequestPriority
from tools.completion_client import CompletionClient, CompletionResult
from tools.json_utils import parse_json_response
from tools.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

_PROMPTS_DIR = Path(__file__).parent.parent / "config" / "prompts"


@lru_cache(maxsize=32)
def _read_prompt_file(path: str) -> str:
    """Read and cache a prompt file by absolute path string."""
    return Path(path).read_text(encoding="utf-8")


class BaseAgent:
    """Base class for all agents in the pipeline.

    When a rate limiter is supplied, every completion first acquires a
    permit for its model and afterwards reports the tokens actually used.
    """

    def __init__(
        self,
        llm_client: Optional[CompletionClient] = None,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.settings = settings or Settings()
        self.llm = llm_client or CompletionClient(self.settings)
        self.rate_limiter = rate_limiter

    def _load_prompt(self, template_name: str) -> str:
        """Load a prompt template from config/prompts/ (cached after first read).

        Args:
            template_name: Filename without extension, e.g. 'section_writer'.

        Returns:
            The prompt template text.
        """
        path = _PROMPTS_DIR / f"{template_name}.md"
        if not path.exists():
            raise FileNotFoundError(f"Prompt template not found: {path}")
        return _read_prompt_file(str(path))

    def _extract_section(self, template: str, section_header: str) -> str:
        """Extract a specific section from a prompt template.

        Sections are delimited by '## ' headers in the markdown.
        """
        lines = template.split("\n")
        capturing = False
        result = []
        for line in lines:
            if line.strip().startswith("## ") and section_header in line:
                capturing = True
                continue
            elif line.strip().startswith("## ") and capturing:
                break
            elif capturing:
                result.append(line)
        return "\n".join(result).strip()

    async def _complete(
        self,
        prompt: str,
        model: str,
        system_prompt: str = "",
        max_tokens: int = 1000,
        temperature: Optional[float] = None,
        priority: RequestPriority = RequestPriority.NORMAL,
    ) -> CompletionResult:
        """Run one completion under the shared rate limiter."""
        estimated = RateLimiter.estimate_request_tokens(system_prompt + prompt, max_tokens)
        if self.rate_limiter is not None:
            await self.rate_limiter.request_permission(model, estimated, priority)

        result = await self.llm.complete(
            prompt,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            system_prompt=system_prompt,
        )

        if self.rate_limiter is not None:
            await self.rate_limiter.release(model, estimated, result.tokens_used)
            input_tokens = RateLimiter.estimate_tokens(system_prompt + prompt)
            self.rate_limiter.track_token_usage(
                model, input_tokens, max(0, result.tokens_used - input_tokens),
                context=type(self).__name__,
            )
        return result

    async def _complete_json(
        self,
        prompt: str,
        model: str,
        system_prompt: str = "",
        max_tokens: int = 1000,
        temperature: Optional[float] = None,
        priority: RequestPriority = RequestPriority.NORMAL,
    ) -> dict:
        """Run one completion and parse its text as a JSON object.

        Raises:
            LLMResponseParseError: If the response cannot be parsed as JSON.
        """
        result = await self._complete(
            prompt, model, system_prompt, max_tokens, temperature, priority,
        )
        try:
            return parse_json_response(result.text)
        except ValueError as e:
            raise LLMResponseParseError(str(e), raw_response=result.text) from e
