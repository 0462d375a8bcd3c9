"""Conversation store — per-conversation append-only message logs."""
import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_NOTE = "system-note"

ROLES = (ROLE_SYSTEM, ROLE_USER, ROLE_ASSISTANT, ROLE_NOTE)


@dataclass(frozen=True)
class Message:
    role: str
    text: str
    seq: int = 0


class ConversationStore:
    """Keyed collection of conversation histories.

    Every conversation starts with exactly one instructions message, created
    implicitly on first reference. ``reset`` puts it back to that single
    message; nothing ever removes it. Entries never expire.
    """

    def __init__(self, instructions: str):
        self.instructions = instructions
        self._conversations: Dict[str, List[Message]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._seq = itertools.count(1)

    def _fresh(self) -> List[Message]:
        return [Message(role=ROLE_SYSTEM, text=self.instructions, seq=next(self._seq))]

    def _get(self, conversation_id: str) -> List[Message]:
        history = self._conversations.get(conversation_id)
        if history is None:
            history = self._fresh()
            self._conversations[conversation_id] = history
            logger.info(f"[{conversation_id}] Conversation created")
        return history

    def append(self, conversation_id: str, role: str, text: str) -> Message:
        """Append a message, creating the conversation if needed."""
        if role not in ROLES:
            raise ValueError(f"Unknown message role: {role}")
        history = self._get(conversation_id)
        message = Message(role=role, text=text, seq=next(self._seq))
        history.append(message)
        return message

    def snapshot(self, conversation_id: str) -> Tuple[Message, ...]:
        """Immutable copy of the current history."""
        return tuple(self._get(conversation_id))

    def reset(self, conversation_id: str):
        """Replace the history with a single fresh instructions message."""
        self._conversations[conversation_id] = self._fresh()
        logger.info(f"[{conversation_id}] Conversation history cleared")

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """Per-conversation lock; hold it for the whole turn."""
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def conversation_ids(self) -> List[str]:
        return list(self._conversations)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)
