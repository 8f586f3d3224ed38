"""Billing consumer.

Usage events are recorded with ``cost = 0`` on the request path; this
consumer prices them and debits the credit ledger, keyed by request id so a
redelivered event is billed once.
"""

import asyncio
import contextlib
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from chat_core.domain.exceptions import BillingError, BusinessError, ConflictError
from chat_core.domain.usage import CreditLedger, UsageEvent
from chat_core.infrastructure.logging.logger import logger

# USD per 1M tokens: (input, output)
PRICING: Dict[str, Dict[str, Tuple[float, float]]] = {
    "openai": {
        "gpt-4o": (2.5, 10),
        "gpt-4o-mini": (0.15, 0.6),
        "gpt-4-turbo": (10, 30),
        "gpt-3.5-turbo": (0.5, 1.5),
    },
    "anthropic": {
        "claude-3-5-sonnet-20241022": (3, 15),
        "claude-3-5-haiku-20241022": (0.8, 4),
        "claude-3-opus-20240229": (15, 75),
    },
    "google": {
        "gemini-2.0-flash-exp": (0, 0),
        "gemini-1.5-pro": (1.25, 5),
        "gemini-1.5-flash": (0.075, 0.3),
    },
}

CREDITS_PER_USD = 100


def calculate_cost(provider: str, model: str, tokens_in: int, tokens_out: int) -> float:
    """Dollar cost of one call; unknown provider/model uses the default rate."""

    # fusion answers are reported as "fusion:<model>"
    model = model.split(":", 1)[1] if model.startswith("fusion:") else model
    price = PRICING.get(provider, {}).get(model)
    if price is None:
        return (tokens_in * 0.001 + tokens_out * 0.002) / 1_000_000
    return tokens_in / 1_000_000 * price[0] + tokens_out / 1_000_000 * price[1]


def cost_to_credits(cost: float) -> int:
    return math.ceil(cost * CREDITS_PER_USD)


@dataclass
class BillingOutcome:
    request_id: str
    cost: float
    credits: int
    balance: Optional[float]
    already_processed: bool = False


class BillingProcessor:
    def __init__(self, credit_ledger: CreditLedger):
        self._credits = credit_ledger

    async def process(self, event: UsageEvent) -> BillingOutcome:
        cost = calculate_cost(event.provider, event.model, event.tokens_in, event.tokens_out)
        credits = cost_to_credits(cost)
        try:
            balance = await self._credits.deduct_credits(event.user_id, credits, event.request_id)
        except ConflictError:
            logger.info("billing.already_processed", extra={"extra": {"request_id": event.request_id}})
            return BillingOutcome(event.request_id, cost, credits, None, already_processed=True)
        except BusinessError:
            raise
        except Exception as exc:
            raise BillingError(message=f"Billing failed: {exc}", requestId=event.request_id) from exc
        logger.info(
            "billing.processed",
            extra={
                "extra": {
                    "request_id": event.request_id,
                    "user_id": event.user_id,
                    "cost": cost,
                    "credits": credits,
                    "balance": balance,
                }
            },
        )
        return BillingOutcome(event.request_id, cost, credits, balance)


class BillingWorker:
    """Drains a queue of usage events through a BillingProcessor.

    A BillingError (ledger unavailable, ...) is retried up to ``max_attempts``
    times with exponential backoff; other business errors such as
    InsufficientCreditsError are final and only logged.
    """

    def __init__(
        self,
        processor: BillingProcessor,
        queue: Optional[asyncio.Queue] = None,
        max_attempts: int = 3,
        backoff: float = 1.0,
    ):
        self._processor = processor
        self.queue: asyncio.Queue = queue or asyncio.Queue()
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff
        self._task: Optional[asyncio.Task] = None

    async def submit(self, event: UsageEvent) -> None:
        await self.queue.put(event)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Wait for the queued events, then stop the run loop."""

        if self._task is None:
            return
        await self.queue.join()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def run(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self.handle(event)
            finally:
                self.queue.task_done()

    async def drain(self) -> None:
        """Process everything queued so far, then return."""

        while not self.queue.empty():
            event = self.queue.get_nowait()
            try:
                await self.handle(event)
            finally:
                self.queue.task_done()

    async def handle(self, event: UsageEvent) -> Optional[BillingOutcome]:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return await self._processor.process(event)
            except BillingError as exc:
                if attempt == self._max_attempts:
                    self._log_failure(event, exc, attempt)
                    return None
                delay = self._backoff * 2 ** (attempt - 1)
                logger.warning(
                    "billing.retry",
                    extra={"extra": {"request_id": event.request_id, "attempt": attempt, "delay": delay}},
                )
                await asyncio.sleep(delay)
            except BusinessError as exc:
                self._log_failure(event, exc, attempt)
                return None
        return None

    @staticmethod
    def _log_failure(event: UsageEvent, exc: BusinessError, attempt: int) -> None:
        logger.error(
            "billing.failed",
            extra={"extra": {"request_id": event.request_id, "attempts": attempt, **exc.to_dict()}},
        )
