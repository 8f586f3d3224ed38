import pytest

from chat_core.domain.exceptions import BillingError
from chat_core.domain.usage import UsageEvent, UsageType
from chat_core.infrastructure.billing import (
    BillingProcessor,
    BillingWorker,
    calculate_cost,
    cost_to_credits,
)
from chat_core.infrastructure.storage.memory_store import InMemoryCreditLedger


def _event(request_id="req-1", user_id="u1", model="gpt-4o", provider="openai", tokens_in=1000, tokens_out=2000):
    return UsageEvent(
        user_id=user_id,
        model=model,
        provider=provider,
        type=UsageType.CHAT,
        tokens_in=tokens_in,
        tokens_out=tokens_out,
        cost=0,
        request_id=request_id,
    )


def test_calculate_cost_known_model():
    # 1k in at $2.5/M + 2k out at $10/M
    assert calculate_cost("openai", "gpt-4o", 1000, 2000) == pytest.approx(0.0225)


def test_calculate_cost_strips_fusion_prefix():
    assert calculate_cost("anthropic", "fusion:claude-3-opus-20240229", 1_000_000, 0) == pytest.approx(15)


def test_calculate_cost_default_rate():
    assert calculate_cost("mistral", "mistral-large", 1_000_000, 1_000_000) == pytest.approx(0.003)


def test_cost_to_credits_rounds_up():
    assert cost_to_credits(0.0225) == 3
    assert cost_to_credits(0) == 0


@pytest.mark.asyncio
async def test_processor_debits_once_per_request():
    ledger = InMemoryCreditLedger(balances={"u1": 100})
    processor = BillingProcessor(ledger)

    first = await processor.process(_event())
    again = await processor.process(_event())

    assert (first.credits, first.balance, first.already_processed) == (3, 97, False)
    assert again.already_processed is True
    assert await ledger.get_credits("u1") == 97


class _BrokenLedger:
    async def deduct_credits(self, user_id, amount, reference_id):
        raise OSError("ledger offline")


@pytest.mark.asyncio
async def test_processor_wraps_ledger_failures():
    with pytest.raises(BillingError) as exc_info:
        await BillingProcessor(_BrokenLedger()).process(_event())
    assert exc_info.value.extra == {"requestId": "req-1"}


@pytest.mark.asyncio
async def test_worker_drain_continues_after_failure():
    ledger = InMemoryCreditLedger(balances={"u1": 100, "poor": 1})
    worker = BillingWorker(BillingProcessor(ledger))

    await worker.submit(_event("req-a"))
    await worker.submit(_event("req-b", user_id="poor", tokens_in=1_000_000))
    await worker.submit(_event("req-c"))
    await worker.drain()

    assert worker.queue.empty()
    assert await ledger.get_credits("u1") == 94
    assert await ledger.get_credits("poor") == 1


class _FlakyLedger(InMemoryCreditLedger):
    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.calls = 0

    async def deduct_credits(self, user_id, amount, reference_id):
        self.calls += 1
        if self.calls <= self.failures:
            raise OSError("ledger offline")
        return await super().deduct_credits(user_id, amount, reference_id)


@pytest.mark.asyncio
async def test_worker_retries_transient_ledger_failure():
    ledger = _FlakyLedger(failures=1, balances={"u1": 100})
    worker = BillingWorker(BillingProcessor(ledger), backoff=0)

    outcome = await worker.handle(_event())

    assert outcome is not None
    assert outcome.balance == 97
    assert ledger.calls == 2


@pytest.mark.asyncio
async def test_worker_gives_up_after_max_attempts(caplog):
    ledger = _FlakyLedger(failures=10, balances={"u1": 100})
    worker = BillingWorker(BillingProcessor(ledger), max_attempts=3, backoff=0)

    assert await worker.handle(_event()) is None
    assert ledger.calls == 3
    assert await ledger.get_credits("u1") == 100
    assert "billing.failed" in [r.getMessage() for r in caplog.records]


@pytest.mark.asyncio
async def test_worker_run_loop_bills_submitted_events():
    ledger = InMemoryCreditLedger(balances={"u1": 100})
    worker = BillingWorker(BillingProcessor(ledger))

    worker.start()
    await worker.submit(_event("req-a"))
    await worker.submit(_event("req-a"))
    await worker.stop()

    assert worker.queue.empty()
    assert await ledger.get_credits("u1") == 97
