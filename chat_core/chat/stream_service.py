"""Streaming chat turn.

A producer task runs the turn and pushes StreamChunks into a bounded queue;
``stream_chat`` is the consumer. Closing the consumer cancels the producer,
so a turn abandoned before Persist leaves no messages and no usage behind.
Once Persist has started, Persist and UsageEmit run to completion in a
shielded task even if the consumer goes away.
"""

import asyncio
import contextlib
from typing import AsyncIterator, List, Optional

from chat_core.chat.pipeline import ChatPipeline, TurnContext, TurnState
from chat_core.domain.exceptions import BusinessError, InternalError
from chat_core.domain.models import ChatTurnRequest, StreamChunk
from chat_core.infrastructure.logging.logger import logger


def split_content(content: str, size: int):
    for start in range(0, len(content), size):
        yield content[start:start + size]


class ChatStreamService(ChatPipeline):
    async def stream_chat(self, user_id: str, request: ChatTurnRequest) -> AsyncIterator[StreamChunk]:
        """Yield the chunks of one turn; the last one is ``done`` or ``error``."""

        queue: asyncio.Queue = asyncio.Queue(maxsize=self._settings.stream_queue_size)
        settling: List[asyncio.Task] = []
        producer = asyncio.create_task(self._produce(user_id, request, queue, settling))
        try:
            while True:
                chunk = await queue.get()
                yield chunk
                if chunk.is_terminal:
                    break
            await producer
        finally:
            if not producer.done():
                producer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await producer
                logger.info("chat.stream.cancelled", extra={"extra": {"user_id": user_id}})
                for result in await asyncio.gather(*settling, return_exceptions=True):
                    if isinstance(result, BaseException):
                        logger.error(
                            "chat.stream.settle_failed",
                            exc_info=result,
                            extra={"extra": {"user_id": user_id, "error": str(result)}},
                        )

    async def _produce(
        self,
        user_id: str,
        request: ChatTurnRequest,
        queue: asyncio.Queue,
        settling: List[asyncio.Task],
    ) -> None:
        ctx: Optional[TurnContext] = None
        try:
            ctx = self.begin(user_id, request)
            await self.check_idempotency(ctx)
            await self.resolve_conversation(ctx)
            await queue.put(StreamChunk.meta(conversationId=ctx.conversation_id, requestId=ctx.request_id))
            await self.load_history(ctx)
            await self.check_credits(ctx)
            response = await self.call_provider(ctx, stream=True)
            await queue.put(StreamChunk.meta(model=response.model, provider=response.provider))

            delay = self._settings.stream_chunk_delay_ms / 1000
            for piece in split_content(response.content, self._settings.stream_chunk_size):
                await queue.put(StreamChunk.text(piece))
                if delay:
                    await asyncio.sleep(delay)

            settle = asyncio.ensure_future(self._settle(ctx))
            settling.append(settle)
            await asyncio.shield(settle)
            await queue.put(
                StreamChunk.done(
                    conversationId=ctx.conversation_id,
                    messageId=ctx.message_id,
                    model=response.model,
                    provider=response.provider,
                    tokensIn=response.tokens_in,
                    tokensOut=response.tokens_out,
                    requestId=ctx.request_id,
                )
            )
        except BusinessError as exc:
            self.fail(ctx, exc)
            await queue.put(StreamChunk.failure(exc.message, exc.code))
        except Exception as exc:
            self.fail(ctx, exc)
            await queue.put(StreamChunk.failure("Internal server error", InternalError.code))

    async def _settle(self, ctx: TurnContext) -> None:
        await self.persist(ctx)
        await self.emit_usage(ctx)
        self.transition(ctx, TurnState.DONE)
