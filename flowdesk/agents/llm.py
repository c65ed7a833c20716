"""Text completion through the Anthropic API.

Agents only need ``complete(prompt) -> str``; anything with that method
(a MagicMock in tests) can stand in for LLMClient.
"""

from __future__ import annotations

import logging
import time

import anthropic

from flowdesk.config import DEFAULT_MODEL
from flowdesk.errors import LLMError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2.0  # seconds


class LLMClient:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        client: anthropic.Anthropic | None = None,
    ) -> None:
        self._client = client or anthropic.Anthropic(api_key=api_key)
        self.model = model

    def complete(self, prompt: str, max_tokens: int = 2048) -> str:
        """Send a single-turn prompt and return the concatenated text blocks.

        Rate limits are retried with exponential backoff; any other API
        error, or running out of retries, raises LLMError.
        """
        for attempt in range(MAX_RETRIES):
            try:
                response = self._client.messages.create(
                    model=self.model,
                    max_tokens=max_tokens,
                    messages=[{"role": "user", "content": prompt}],
                )
                break
            except anthropic.RateLimitError as e:
                if attempt < MAX_RETRIES - 1:
                    delay = RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning(f"Rate limited, retrying in {delay}s...")
                    time.sleep(delay)
                else:
                    logger.error(f"Rate limited after {MAX_RETRIES} retries, giving up")
                    raise LLMError("Rate limited by the model API") from e
            except anthropic.APIError as e:
                logger.error(f"Model API error: {e}")
                raise LLMError(str(e)) from e

        if not response.content:
            logger.warning("Empty model response")
            return ""
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
