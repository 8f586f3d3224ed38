from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from .models import Role


class MessageRole(str, Enum):
    """Role enum as stored by the persistence layer."""

    USER = "USER"
    ASSISTANT = "ASSISTANT"
    SYSTEM = "SYSTEM"

    def to_wire(self) -> Role:
        if self is MessageRole.USER:
            return "user"
        if self is MessageRole.ASSISTANT:
            return "assistant"
        return "system"


def to_wire_role(role: Any) -> Role:
    """Map a persisted role (enum member or raw string) to a wire role.

    Anything that is neither USER nor ASSISTANT maps to "system".
    """

    value = role.value if isinstance(role, MessageRole) else str(role or "").upper()
    if value == MessageRole.USER.value:
        return "user"
    if value == MessageRole.ASSISTANT.value:
        return "assistant"
    return "system"


@dataclass
class Conversation:
    id: str
    user_id: str
    title: Optional[str]
    created_at: datetime
    updated_at: datetime
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MessageRecord:
    id: str
    conversation_id: str
    role: MessageRole
    content: str
    model: Optional[str]
    provider: Optional[str]
    tokens: Optional[int]
    cost: Optional[float]
    created_at: datetime
    meta: Dict[str, Any] = field(default_factory=dict)


class ConversationStore(Protocol):
    """Owner-scoped conversation persistence."""

    async def create(self, user_id: str, title: Optional[str]) -> Conversation:
        ...

    async def find_unique(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        ...

    async def find_many(self, user_id: str) -> List[Conversation]:
        ...

    async def update(self, conversation_id: str, user_id: str, **fields: Any) -> Conversation:
        ...

    async def delete(self, conversation_id: str, user_id: str) -> None:
        ...


class MessageStore(Protocol):
    """Append-only message history of a conversation."""

    async def find_many(self, conversation_id: str) -> List[MessageRecord]:
        """Return the messages of a conversation in creation order."""

        ...

    async def create(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        tokens: Optional[int] = None,
        cost: Optional[float] = None,
    ) -> MessageRecord:
        ...

    async def update(self, message_id: str, **fields: Any) -> MessageRecord:
        ...
