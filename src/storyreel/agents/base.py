"""Base agent abstraction."""

import logging
from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar

from ..config import config
from ..services.anthropic import AnthropicClient, ChatTurn

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """Abstract base class for AI agents.

    Provides shared functionality for agents that use Claude for generation.
    Subclasses must implement the `run` method and define their prompts.
    """

    def __init__(
        self,
        client: Optional[AnthropicClient] = None,
        model: Optional[str] = None,
    ) -> None:
        """Initialize the agent.

        Args:
            client: AnthropicClient instance. Created if not provided.
            model: Model to use. Defaults to config.default_model.
        """
        self._model = model or config.default_model
        self._client = client or AnthropicClient(model=self._model)
        self._logger = logging.getLogger(f"{__name__}.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the agent's name."""
        ...

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model

    @abstractmethod
    def system_prompt(self, input_data: InputT) -> str:
        """Return the system prompt for this input."""
        ...

    @abstractmethod
    def run(self, input_data: InputT) -> OutputT:
        """Execute the agent's main task.

        Args:
            input_data: Input data for the agent.

        Returns:
            Structured output from the agent.
        """
        ...

    def _create_message(
        self,
        prompt: str,
        system: str,
        history: Optional[List[ChatTurn]] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> str:
        """Send a prompt after prior conversation turns and return the reply text."""
        self._logger.debug(
            f"Creating message with prompt length: {len(prompt)}, "
            f"{len(history or [])} history turn(s)"
        )

        try:
            response = self._client.chat(
                prompt=prompt,
                history=history,
                system=system,
                max_tokens=max_tokens,
                temperature=temperature,
            )
            self._logger.debug(f"Received response of length: {len(response)}")
            return response

        except Exception as e:
            self._logger.error(f"Error creating message: {e}")
            raise
