"""
Data types for chat-based LLM interactions.

This module defines the message types exchanged with the chat transport:
- Role: The author of a chat message (system, user or assistant)
- ChatMessage: One immutable, timestamped entry of a conversation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, List

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage


class Role(str, Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: str | "Role" | None) -> "Role":
        """Parse a role name case-insensitively; unknown names map to USER."""
        if isinstance(value, Role):
            return value
        normalized = (value or "").strip().lower()
        for role in cls:
            if role.value == normalized:
                return role
        return cls.USER


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChatMessage:
    """
    A single message in a conversation.

    Attributes:
        role: Who authored the message
        content: The message text
        timestamp: When the message was created (UTC)
    """

    role: Role
    content: str
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "role", Role.parse(self.role))
        object.__setattr__(self, "content", self.content or "")

    def to_dict(self) -> dict[str, str]:
        """Return the ``{role, content}`` shape sent upstream."""
        return {"role": self.role.value, "content": self.content}


def system_message(content: str) -> ChatMessage:
    return ChatMessage(Role.SYSTEM, content)


def user_message(content: str) -> ChatMessage:
    return ChatMessage(Role.USER, content)


def assistant_message(content: str) -> ChatMessage:
    return ChatMessage(Role.ASSISTANT, content)


def to_langchain_messages(messages: Iterable[ChatMessage]) -> List[BaseMessage]:
    """
    Convert chat messages to LangChain message objects, preserving order.

    Args:
        messages: Messages in the order they should be sent

    Returns:
        List of SystemMessage / HumanMessage / AIMessage
    """
    converted: List[BaseMessage] = []
    for message in messages:
        if message.role is Role.SYSTEM:
            converted.append(SystemMessage(content=message.content))
        elif message.role is Role.ASSISTANT:
            converted.append(AIMessage(content=message.content))
        else:
            converted.append(HumanMessage(content=message.content))
    return converted
