"""Text-completion client built on the Claude Agent SDK."""

import logging
import math
import os
from dataclasses import dataclass
from typing import Optional

from claude_agent_sdk import (
    query,
    ClaudeAgentOptions,
    ResultMessage,
    AssistantMessage,
)

from config.settings import Settings
from config.exceptions import LLMError, LLMResponseParseError
from tools.json_utils import parse_json_response

logger = logging.getLogger(__name__)

# Allow launching the Agent SDK even when running inside a Claude Code session.
# The SDK checks for this env var and refuses to start if set.
os.environ.pop("CLAUDECODE", None)


@dataclass
class CompletionResult:
    """Text returned by one completion and the tokens it consumed."""
    text: str = ""
    tokens_used: int = 0


def _estimate_tokens(*texts: str) -> int:
    return sum(math.ceil(len(t or "") / 4) for t in texts)


def _usage_tokens(usage) -> Optional[int]:
    if not isinstance(usage, dict):
        return None
    total = 0
    for key in ("input_tokens", "output_tokens",
                "cache_creation_input_tokens", "cache_read_input_tokens"):
        value = usage.get(key)
        if isinstance(value, int):
            total += value
    return total or None


class CompletionClient:
    """Single-turn completions through claude_agent_sdk.query().

    Authentication is handled by the Claude Code CLI. Every failure of the
    underlying query is surfaced as LLMError so callers can fall back.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.total_calls = 0
        self.total_tokens = 0
        self.calls_by_model: dict[str, int] = {}

    async def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: str = "",
    ) -> CompletionResult:
        """Send one prompt and return the text plus token usage.

        Args:
            prompt: User message content.
            model: Model name override. Defaults to the writing model.
            temperature: Sampling hint, recorded in the call log only.
            max_tokens: Output budget hint, recorded in the call log only.
            system_prompt: System message guiding the model's behavior.

        Raises:
            LLMError: If the query fails.
        """
        model = model or self.settings.llm_model_writing
        self.total_calls += 1
        self.calls_by_model[model] = self.calls_by_model.get(model, 0) + 1

        logger.debug(
            "Completion call: model=%s, temperature=%s, max_tokens=%s, prompt_chars=%d",
            model, temperature, max_tokens, len(prompt),
        )

        result_text = ""
        tokens: Optional[int] = None
        try:
            # Do NOT return/break early from inside the async for loop. The
            # query() generator uses anyio cancel scopes internally and must
            # be exhausted.
            async for message in query(
                prompt=prompt,
                options=ClaudeAgentOptions(
                    system_prompt=system_prompt,
                    model=model,
                    max_turns=1,
                ),
            ):
                if isinstance(message, ResultMessage):
                    result_text = message.result or result_text
                    tokens = _usage_tokens(message.usage)
                    logger.debug(
                        "Completion result: %d chars, cost=$%s",
                        len(result_text), message.total_cost_usd,
                    )
                elif isinstance(message, AssistantMessage) and not result_text:
                    parts = [
                        block.text for block in message.content
                        if getattr(block, "text", None)
                    ]
                    result_text = "".join(parts)
        except Exception as e:
            raise LLMError(f"Completion query failed: {e}", {"model": model}) from e

        if not result_text:
            logger.warning("Completion returned no content (model=%s)", model)

        if tokens is None:
            tokens = _estimate_tokens(system_prompt, prompt, result_text)
        self.total_tokens += tokens
        return CompletionResult(text=result_text, tokens_used=tokens)

    async def complete_json(
        self,
        prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: str = "",
    ) -> dict:
        """Complete and parse the response as a JSON object.

        Raises:
            LLMResponseParseError: If the response cannot be parsed as JSON.
        """
        result = await self.complete(prompt, model, temperature, max_tokens, system_prompt)
        try:
            return parse_json_response(result.text)
        except ValueError as e:
            raise LLMResponseParseError(str(e), raw_response=result.text) from e

    def get_usage_summary(self) -> dict:
        """Return call and token statistics."""
        return {
            "total_calls": self.total_calls,
            "total_tokens": self.total_tokens,
            "calls_by_model": dict(self.calls_by_model),
        }
