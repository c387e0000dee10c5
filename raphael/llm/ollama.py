"""Ollama provider — chat completions against a local Ollama server.

Connects to Ollama's REST API (default: http://127.0.0.1:11434).
An unreachable server is reported as LLMUnavailableError so the
messaging layer can tell the user to start `ollama serve`.
"""

import errno
import httpx
import logging
from typing import Optional
from ..session import Turn
from .provider import (
    LLMProvider,
    ChatResponse,
    LLMUnavailableError,
    LLMRateLimitError,
    LLMBadRequestError,
    LLMEmptyResponseError,
)

logger = logging.getLogger("raphael.llm.ollama")

DEFAULT_BASE_URL = "http://127.0.0.1:11434"


def is_connection_refused(error: BaseException) -> bool:
    """True when error (or anything in its cause chain) is a refused connection."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, (httpx.ConnectError, ConnectionRefusedError)):
            return True
        if isinstance(current, OSError) and current.errno == errno.ECONNREFUSED:
            return True
        if "ECONNREFUSED" in str(current) or "Connection refused" in str(current):
            return True
        current = current.__cause__ or current.__context__
    return False


class OllamaProvider(LLMProvider):
    """Ollama provider for chat."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 300.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "ollama"

    async def chat(
        self,
        messages: list[Turn],
        model: str,
        temperature: Optional[float] = None,
    ) -> ChatResponse:
        """Run one non-streaming chat completion via /api/chat."""
        payload = {
            "model": model,
            "messages": [m.to_dict() for m in messages],
            "stream": False,
        }
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/api/chat", json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            if code == 429:
                raise LLMRateLimitError(f"Ollama rate limited ({code})") from e
            if code in (400, 404):
                raise LLMBadRequestError(f"Ollama rejected the request for model {model} ({code})") from e
            raise
        except Exception as e:
            if is_connection_refused(e):
                logger.warning(f"Ollama unreachable at {self.base_url}: {e}")
                raise LLMUnavailableError(self.base_url) from e
            raise

        # Ollama returns {"message": {"role": "assistant", "content": "..."}, ...}
        message = data.get("message")
        if not isinstance(message, dict):
            raise LLMEmptyResponseError(f"Ollama returned no message for model {model}")
        return ChatResponse(
            content=message.get("content") or "",
            model=data.get("model", model),
            input_tokens=data.get("prompt_eval_count", 0),
            output_tokens=data.get("eval_count", 0),
        )

    async def list_models(self) -> list[str]:
        """List pulled models via /api/tags."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
                resp.raise_for_status()
                data = resp.json()
        except Exception as e:
            if is_connection_refused(e):
                raise LLMUnavailableError(self.base_url) from e
            raise
        return [m.get("name", "") for m in data.get("models", [])]


async def check_ollama_available(base_url: str = DEFAULT_BASE_URL) -> bool:
    """Check if Ollama server is running and reachable."""
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            resp = await client.get(f"{base_url.rstrip('/')}/api/tags")
            return resp.status_code == 200
    except httpx.HTTPError:
        return False
