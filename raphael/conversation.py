"""Chat relay — prompt assembly, backend call, history, reply processing."""

import logging
from typing import Optional

from .communication.outbound import StructuredReply, process_reply
from .communication.sanitize import EmojiCatalog
from .llm.provider import LLMProvider
from .prompts import SYSTEM_PROMPT
from .session import SessionStore, Turn

logger = logging.getLogger("raphael.conversation")


class ChatRelay:
    """Forwards user text to the model and structures what comes back.

    History is read before the call and written after it, so two
    exchanges on the same session key must not overlap.
    """

    def __init__(
        self,
        provider: LLMProvider,
        store: SessionStore,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.provider = provider
        self.store = store
        self.system_prompt = system_prompt

    def build_messages(self, key: str, prompt: str) -> list[Turn]:
        """System prompt, then the session's history, then the new user turn."""
        return [
            Turn(role="system", content=self.system_prompt),
            *self.store.get(key),
            Turn(role="user", content=prompt),
        ]

    async def chat(
        self,
        prompt: str,
        key: str,
        emoji_catalog: Optional[EmojiCatalog] = None,
    ) -> StructuredReply:
        """Run one exchange for a session.

        Args:
            prompt: User text (with the user-context block appended)
            key: Session key
            emoji_catalog: Guild emojis for reference repair, None in DMs

        Returns:
            The processed reply

        Raises:
            LLMUnavailableError: Ollama is not reachable
        """
        messages = self.build_messages(key, prompt)
        model = self.store.active_model

        logger.info(f"[PROMPT IN] {key}")
        logger.info(f"User: {prompt}")
        logger.info(f"History: {len(messages) - 2} messages")

        response = await self.provider.chat(messages, model=model)
        assistant_content = response.content or ""

        logger.info(f"[PROMPT OUT] {key}")
        logger.info(f"Assistant: {assistant_content}")

        # Raw reply goes to history so the model sees its own directives
        self.store.append(key, prompt, assistant_content)
        return process_reply(assistant_content, emoji_catalog)
