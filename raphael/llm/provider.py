"""Provider-agnostic LLM interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..session import Turn


# ════════════════════════════════════════════════════════
# LLM Exception Hierarchy: classify errors by type,
# not by string matching.  communication.errors maps these.
# ════════════════════════════════════════════════════════

class LLMError(Exception):
    """Base class for all LLM provider errors."""
    pass

class LLMUnavailableError(LLMError):
    """Backend unreachable (connection refused, DNS failure, server down)."""

    def __init__(self, base_url: str, message: Optional[str] = None):
        self.base_url = base_url
        super().__init__(message or f"LLM backend unavailable at {base_url}")

class LLMRateLimitError(LLMError):
    """429 — backend asked us to slow down."""
    pass

class LLMBadRequestError(LLMError):
    """400/404 — bad request (unknown model, malformed messages)."""
    pass

class LLMEmptyResponseError(LLMError):
    """Backend answered without any message content."""
    pass


@dataclass
class ChatResponse:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(
        self,
        messages: list[Turn],
        model: str,
        temperature: Optional[float] = None,
    ) -> ChatResponse:
        """Send a chat completion request."""
        ...

    @abstractmethod
    async def list_models(self) -> list[str]:
        """Names of the models the backend can serve."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...
