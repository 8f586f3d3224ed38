"""Unified chat data models.

This module defines the provider-agnostic structures shared by every layer:

- ChatMessage: one wire message (system/user/assistant).
- ChatOptions: a complete request handed to a provider adapter.
- ChatResponse: the canonical, normalized adapter result.
- StreamChunk: one event of the streaming chat protocol.
- ChatTurnRequest: the validated inbound chat turn.
- ChatTurnResult: the blocking chat turn outcome.

Provider adapters depend only on these models and translate between them and
their own JSON bodies.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Canonical wire roles understood by every adapter
Role = Literal["system", "user", "assistant"]

StreamChunkType = Literal["content", "metadata", "done", "error"]

CONVERSATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


@dataclass
class ChatMessage:
    """One message of the context window sent to a provider."""

    role: Role
    content: str


@dataclass
class ChatOptions:
    """A full adapter call.

    ``model`` is the provider's own model id. ``stream`` asks the adapter to use
    the upstream's streaming format; adapters still return one assembled
    ChatResponse.
    """

    model: str
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False


@dataclass
class ChatResponse:
    """Normalized provider result.

    - content: assistant text.
    - model: model id reported by the upstream (or requested model).
    - provider: provider name that produced the answer.
    - tokens_in / tokens_out: reported or deterministically estimated usage.
    - raw: upstream payload, for debugging only.
    """

    content: str
    model: str
    provider: str
    tokens_in: int
    tokens_out: int
    raw: Any = None

    @property
    def total_tokens(self) -> int:
        return self.tokens_in + self.tokens_out


@dataclass
class StreamChunk:
    """One event of the streaming chat protocol.

    Emitted in order: zero or more ``metadata``, zero or more ``content``, then
    exactly one ``done`` or ``error``.
    """

    type: StreamChunkType
    content: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    code: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in ("done", "error")

    @classmethod
    def text(cls, content: str) -> "StreamChunk":
        return cls(type="content", content=content)

    @classmethod
    def meta(cls, **metadata: Any) -> "StreamChunk":
        return cls(type="metadata", metadata=metadata)

    @classmethod
    def done(cls, **metadata: Any) -> "StreamChunk":
        return cls(type="done", metadata=metadata)

    @classmethod
    def failure(cls, message: str, code: Optional[str] = None) -> "StreamChunk":
        return cls(type="error", error=message, code=code)

    def to_wire(self) -> Dict[str, Any]:
        """Render as the ``{type, data}`` object carried by one SSE frame."""

        if self.type == "content":
            data: Any = self.content or ""
        elif self.type == "error":
            data = {"error": self.error, "code": self.code}
        else:
            data = self.metadata or {}
        return {"type": self.type, "data": data}


class ChatTurnRequest(BaseModel):
    """Inbound chat turn.

    ``provider``/``model`` are optional: when absent the turn is routed through
    fusion (if enabled) or the default provider. ``request_id`` is the
    idempotency key; one is generated when the caller does not supply it.
    """

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    content: str
    model: Optional[str] = None
    provider: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0, alias="maxTokens")
    stream: bool = False
    request_id: Optional[str] = Field(default=None, alias="requestId")

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("content must not be empty")
        return v

    @field_validator("conversation_id")
    @classmethod
    def validate_conversation_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not CONVERSATION_ID_PATTERN.match(v):
            raise ValueError("conversationId is not a valid resource id")
        return v

    @field_validator("provider", "model")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


@dataclass
class ChatTurnResult:
    """Outcome of a blocking chat turn."""

    content: str
    model: str
    provider: str
    tokens_in: int
    tokens_out: int
    conversation_id: str
    message_id: str
    request_id: str
    cost: float = 0
    raw: Any = None
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "model": self.model,
            "provider": self.provider,
            "tokensIn": self.tokens_in,
            "tokensOut": self.tokens_out,
            "cost": self.cost,
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
            "requestId": self.request_id,
            "raw": self.raw,
            **({"meta": self.meta} if self.meta else {}),
        }
