"""Error classification for user-facing messages."""

import asyncio
import httpx

from ..llm.provider import (
    LLMUnavailableError,
    LLMRateLimitError,
    LLMBadRequestError,
    LLMEmptyResponseError,
)

GENERIC_ERROR = "Désolé, une erreur est survenue lors de l'appel à l'IA."


def classify_error(e: Exception) -> str:
    """Classify any exception into a short message for the Discord user."""
    # 1: Backend down, the one failure users can fix themselves
    if isinstance(e, LLMUnavailableError):
        return f"Ollama est injoignable sur {e.base_url}. Lance 'ollama serve' puis réessaie."

    # 2-4: Typed LLM exceptions
    if isinstance(e, LLMRateLimitError):
        return "Ollama est surchargé. Patiente un instant puis réessaie."
    if isinstance(e, LLMBadRequestError):
        return "Ollama a refusé la requête. Vérifie le modèle actif avec /modele."
    if isinstance(e, LLMEmptyResponseError):
        return "Le modèle a renvoyé une réponse vide. Réessaie."

    # 5: httpx HTTP status errors
    if isinstance(e, httpx.HTTPStatusError):
        code = e.response.status_code
        if 500 <= code < 600:
            return "Ollama rencontre une erreur serveur. Réessaie plus tard."
        return f"Ollama a répondu HTTP {code}. Réessaie plus tard."

    # 6-7: Timeouts
    if isinstance(e, httpx.TimeoutException):
        return "Le modèle met trop de temps à répondre. Réessaie."
    if isinstance(e, asyncio.TimeoutError):
        return "Le modèle met trop de temps à répondre. Réessaie."

    # 8: Fallback
    return GENERIC_ERROR
