"""Blocking chat turn."""

from chat_core.chat.pipeline import ChatPipeline, TurnContext, TurnState
from chat_core.domain.exceptions import BusinessError, InternalError
from chat_core.domain.models import ChatTurnRequest, ChatTurnResult
from chat_core.infrastructure.logging.logger import logger


class ChatService(ChatPipeline):
    async def chat(self, user_id: str, request: ChatTurnRequest) -> ChatTurnResult:
        """Run one chat turn to completion.

        Raises the BusinessError of the failing step; anything untyped is
        wrapped in InternalError.
        """

        ctx = None
        try:
            ctx = self.begin(user_id, request)
            await self.check_idempotency(ctx)
            await self.resolve_conversation(ctx)
            await self.load_history(ctx)
            await self.check_credits(ctx)
            await self.call_provider(ctx, stream=False)
            await self.persist(ctx)
            await self.emit_usage(ctx)
            self.transition(ctx, TurnState.DONE)
        except BusinessError as exc:
            self.fail(ctx, exc)
            raise
        except Exception as exc:
            self.fail(ctx, exc)
            raise InternalError(
                message="Internal server error",
                requestId=ctx.request_id if ctx else None,
            ) from exc
        return self._result(ctx)

    @staticmethod
    def _result(ctx: TurnContext) -> ChatTurnResult:
        response = ctx.response
        logger.info(
            "chat.turn.done",
            extra={"extra": {"request_id": ctx.request_id, "conversation_id": ctx.conversation_id}},
        )
        return ChatTurnResult(
            content=response.content,
            model=response.model,
            provider=response.provider,
            tokens_in=response.tokens_in,
            tokens_out=response.tokens_out,
            conversation_id=ctx.conversation_id,
            message_id=ctx.message_id,
            request_id=ctx.request_id,
            cost=0,
            raw=response.raw,
        )
