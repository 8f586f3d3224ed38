"""In-process collaborators.

Used by tests and single-process deployments. Nothing here survives a
restart.
"""

import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from uuid import uuid4

from chat_core.config.settings import settings as default_settings
from chat_core.domain.conversation import Conversation, MessageRecord, MessageRole
from chat_core.domain.exceptions import ConflictError, InsufficientCreditsError, NotFoundError
from chat_core.domain.usage import RateLimitConfig, RateLimitResult, UsageEvent, UsageRecord


class InMemoryConversationStore:
    def __init__(self):
        self._items: Dict[str, Conversation] = {}

    async def create(self, user_id: str, title: Optional[str]) -> Conversation:
        now = datetime.now(timezone.utc)
        conv = Conversation(id=f"c-{uuid4().hex}", user_id=user_id, title=title, created_at=now, updated_at=now)
        self._items[conv.id] = conv
        return conv

    async def find_unique(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        conv = self._items.get(conversation_id)
        if conv is None or conv.user_id != user_id:
            return None
        return conv

    async def find_many(self, user_id: str) -> List[Conversation]:
        items = [c for c in self._items.values() if c.user_id == user_id]
        return sorted(items, key=lambda c: c.updated_at, reverse=True)

    async def update(self, conversation_id: str, user_id: str, **fields: Any) -> Conversation:
        conv = await self.find_unique(conversation_id, user_id)
        if conv is None:
            raise NotFoundError.for_resource("Conversation")
        for key in ("title", "updated_at", "meta"):
            if key in fields:
                setattr(conv, key, fields[key])
        return conv

    async def delete(self, conversation_id: str, user_id: str) -> None:
        if await self.find_unique(conversation_id, user_id) is None:
            raise NotFoundError.for_resource("Conversation")
        del self._items[conversation_id]


class InMemoryMessageStore:
    def __init__(self):
        self._items: List[MessageRecord] = []

    async def find_many(self, conversation_id: str) -> List[MessageRecord]:
        return [m for m in self._items if m.conversation_id == conversation_id]

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
        record = MessageRecord(
            id=f"m-{uuid4().hex}",
            conversation_id=conversation_id,
            role=MessageRole(role),
            content=content,
            model=model,
            provider=provider,
            tokens=tokens,
            cost=cost,
            created_at=datetime.now(timezone.utc),
        )
        self._items.append(record)
        return record

    async def update(self, message_id: str, **fields: Any) -> MessageRecord:
        for record in self._items:
            if record.id == message_id:
                for key in ("content", "model", "provider", "tokens", "cost", "meta"):
                    if key in fields:
                        setattr(record, key, fields[key])
                return record
        raise NotFoundError.for_resource("Message")


class InMemoryUsageLedger:
    """Usage events keyed by request id.

    ``on_record`` receives every newly stored event, e.g. a BillingWorker's
    ``submit``; duplicates never reach it.
    """

    def __init__(self, on_record: Optional[Callable[[UsageEvent], Awaitable[None]]] = None):
        self._records: Dict[str, UsageRecord] = {}
        self._on_record = on_record

    async def check_idempotency(self, request_id: str) -> Optional[UsageRecord]:
        return self._records.get(request_id)

    async def record_usage_event(self, event: UsageEvent) -> UsageRecord:
        if event.request_id in self._records:
            raise ConflictError(message="Request already processed", requestId=event.request_id)
        record = UsageRecord(id=f"u-{uuid4().hex}", event=event)
        self._records[event.request_id] = record
        if self._on_record is not None:
            await self._on_record(event)
        return record

    @property
    def records(self) -> List[UsageRecord]:
        return list(self._records.values())


class InMemoryCreditLedger:
    """Credit balances plus the references already debited."""

    def __init__(self, initial_credits: Optional[float] = None, balances: Optional[Dict[str, float]] = None):
        self._initial = default_settings.initial_credits if initial_credits is None else initial_credits
        self._balances: Dict[str, float] = dict(balances or {})
        self._debited: Dict[str, float] = {}
        self._seen: Set[str] = set()

    async def ensure_initial_credits(self, user_id: str) -> float:
        # the grant is decided once per user, on first sight
        if user_id not in self._seen:
            self._seen.add(user_id)
            if self._balances.get(user_id, 0) <= 0:
                self._balances[user_id] = self._balances.get(user_id, 0) + self._initial
        return self._balances.get(user_id, 0)

    async def check_credits(self, user_id: str, amount: float) -> bool:
        return self._balances.get(user_id, 0) >= amount

    async def get_credits(self, user_id: str) -> float:
        return self._balances.get(user_id, 0)

    async def deduct_credits(self, user_id: str, amount: float, reference_id: str) -> float:
        if reference_id in self._debited:
            raise ConflictError(message="Reference already debited", referenceId=reference_id)
        available = self._balances.get(user_id, 0)
        if available < amount:
            raise InsufficientCreditsError(required=amount, available=available)
        self._balances[user_id] = available - amount
        self._debited[reference_id] = amount
        return self._balances[user_id]


class InMemoryRateLimiter:
    """Fixed-window counter, same keying as the Redis limiter."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._counts: Dict[str, int] = {}

    async def check_rate_limit(self, identity: str, config: RateLimitConfig) -> RateLimitResult:
        now = int(self._clock())
        window_start = now - (now % config.window)
        reset = window_start + config.window - now
        key = f"{config.key_prefix}:{identity}:{window_start}"
        count = self._counts.get(key, 0)
        if count >= config.limit:
            return RateLimitResult(allowed=False, limit=config.limit, remaining=0, reset=reset)
        self._counts[key] = count + 1
        return RateLimitResult(
            allowed=True,
            limit=config.limit,
            remaining=max(0, config.limit - count - 1),
            reset=reset,
        )
