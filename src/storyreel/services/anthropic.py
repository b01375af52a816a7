"""Anthropic Claude client for the storyboard assistant."""

import logging
import time
from typing import List, Optional

from anthropic import Anthropic, APIError, APIConnectionError, RateLimitError

from ..config import config

logger = logging.getLogger(__name__)

ChatTurn = dict  # {"role": "user" | "assistant", "content": str}


class AnthropicClient:
    """Chat wrapper around the Anthropic Messages API with retry on rate limits."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client: Optional[Anthropic] = None,
    ) -> None:
        """Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
            model: Model to use. Defaults to config.default_model.
            max_retries: Maximum attempts for rate-limited or dropped requests.
            retry_delay: Base delay between retries in seconds (exponential backoff).
            client: Preconfigured SDK client, mainly for tests.
        """
        if client is None:
            api_key = api_key or config.anthropic_api_key
            if not api_key:
                raise ValueError(
                    "Anthropic API key not provided. Set ANTHROPIC_API_KEY env var."
                )
            client = Anthropic(api_key=api_key)

        self._client = client
        self._model = model or config.default_model
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    @property
    def model(self) -> str:
        return self._model

    def chat(
        self,
        prompt: str,
        history: Optional[List[ChatTurn]] = None,
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> str:
        """Send a user turn after prior conversation turns.

        Args:
            prompt: The new user message.
            history: Earlier turns, oldest first. Leading assistant turns
                are dropped and consecutive same-role turns are merged.
            system: Optional system prompt.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature (0.0-1.0).

        Returns:
            The text of Claude's reply.

        Raises:
            APIError: If the request fails after all retries.
        """
        messages = _normalize_history(history or [])
        if messages and messages[-1]["role"] == "user":
            messages[-1] = {"role": "user", "content": f"{messages[-1]['content']}\n\n{prompt}"}
        else:
            messages.append({"role": "user", "content": prompt})

        kwargs = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": messages,
            "temperature": temperature,
        }
        if system:
            kwargs["system"] = system

        for attempt in range(self._max_retries):
            try:
                logger.debug(
                    f"Sending {len(messages)} turn(s) to Claude "
                    f"(attempt {attempt + 1}/{self._max_retries})"
                )
                response = self._client.messages.create(**kwargs)
                return "".join(
                    block.text for block in response.content if hasattr(block, "text")
                )

            except (RateLimitError, APIConnectionError) as e:
                if attempt == self._max_retries - 1:
                    raise
                delay = self._retry_delay * (2**attempt)
                logger.warning(f"{type(e).__name__}: retrying in {delay:.1f}s...")
                time.sleep(delay)

            except APIError as e:
                logger.error(f"API error: {e}")
                raise

        raise RuntimeError("Max retries exceeded")


def _normalize_history(history: List[ChatTurn]) -> List[ChatTurn]:
    turns = [t for t in history if t.get("role") in ("user", "assistant") and t.get("content")]
    while turns and turns[0]["role"] != "user":
        turns.pop(0)

    # Merge consecutive turns from the same speaker
    merged: List[ChatTurn] = []
    for turn in turns:
        if merged and merged[-1]["role"] == turn["role"]:
            merged[-1] = {"role": turn["role"], "content": f"{merged[-1]['content']}\n\n{turn['content']}"}
        else:
            merged.append({"role": turn["role"], "content": turn["content"]})
    return merged
