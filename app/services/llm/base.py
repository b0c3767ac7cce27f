from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


class LLMError(Exception):
    """Provider failure: rate limit, network error or malformed response."""


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """Abstract base class for chat completion providers."""

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        """Return the completion for a list of chat messages."""
        pass
