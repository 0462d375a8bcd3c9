"""Completion service client — complete(history, augmentation) -> text via OpenAI."""
import logging
import time
from typing import List, Optional, Sequence

from openai import AsyncOpenAI

from .config import settings
from .conversation import Message, ROLE_NOTE, ROLE_SYSTEM
from .errors import CompletionError

logger = logging.getLogger(__name__)

_client: Optional[AsyncOpenAI] = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        _client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        )
    return _client


def to_chat_messages(history: Sequence[Message], augmentation: str = "") -> List[dict]:
    """Map conversation messages onto chat roles; notes go out as system messages."""
    messages = []
    for msg in history:
        role = ROLE_SYSTEM if msg.role == ROLE_NOTE else msg.role
        messages.append({"role": role, "content": msg.text})
    if augmentation:
        messages.append({"role": "system", "content": augmentation})
    return messages


async def complete(history: Sequence[Message], augmentation: str = "") -> str:
    """One chat completion over the history. Any failure raises CompletionError."""
    messages = to_chat_messages(history, augmentation)
    t0 = time.monotonic()
    try:
        response = await _get_client().chat.completions.create(
            model=settings.openai_chat_model,
            messages=messages,
            max_tokens=settings.max_tokens,
        )
    except Exception as e:
        logger.error(f"LLM request failed: {e}")
        raise CompletionError(f"Completion request failed: {e}") from e

    if not response.choices or response.choices[0].message.content is None:
        raise CompletionError("No response from completion service")

    reply = response.choices[0].message.content.strip()
    logger.info(f"LLM: {len(messages)} messages -> {len(reply)} chars ({time.monotonic()-t0:.2f}s)")
    return reply
