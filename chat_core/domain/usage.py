"""Usage metering and credit ledger contracts.

The request path only ever reads the credit balance (optimistic pre-check) and
records usage events keyed by the request id. The authoritative debit happens
in the billing consumer, keyed by the same id.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Protocol


class UsageType(str, Enum):
    CHAT = "CHAT"
    IMAGE = "IMAGE"
    AUDIO = "AUDIO"
    VIDEO = "VIDEO"
    AGENT = "AGENT"
    EMBEDDING = "EMBEDDING"
    TRANSCRIPTION = "TRANSCRIPTION"


@dataclass
class UsageEvent:
    """A metered unit of work. ``request_id`` is the idempotency key."""

    user_id: str
    model: str
    provider: str
    type: UsageType
    tokens_in: int
    tokens_out: int
    cost: float
    request_id: str
    conversation_id: Optional[str] = None
    agent_id: Optional[str] = None

    @property
    def tokens(self) -> int:
        return self.tokens_in + self.tokens_out


@dataclass
class UsageRecord:
    """Stored form of a usage event."""

    id: str
    event: UsageEvent
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def request_id(self) -> str:
        return self.event.request_id


@dataclass
class RateLimitConfig:
    limit: int
    window: int  # seconds
    key_prefix: str = "ratelimit"


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # seconds until the window resets


class UsageLedger(Protocol):
    async def check_idempotency(self, request_id: str) -> Optional[UsageRecord]:
        """Return the existing record for ``request_id``, if any."""

        ...

    async def record_usage_event(self, event: UsageEvent) -> UsageRecord:
        """Store the event; a duplicate request id raises ConflictError."""

        ...


class CreditLedger(Protocol):
    async def ensure_initial_credits(self, user_id: str) -> float:
        ...

    async def check_credits(self, user_id: str, amount: float) -> bool:
        ...

    async def get_credits(self, user_id: str) -> float:
        ...

    async def deduct_credits(self, user_id: str, amount: float, reference_id: str) -> float:
        """Debit ``amount``; only the billing consumer calls this."""

        ...


class RateLimiter(Protocol):
    async def check_rate_limit(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        ...
