"""Chat turn state machine.

    Init -> IdempotencyCheck -> ConversationResolve -> HistoryLoad ->
    CreditCheck -> ProviderCall -> Persist -> UsageEmit -> Done

Any step may end in Error. ChatService and ChatStreamService drive the same
steps; they only differ in how the provider answer reaches the caller.
"""

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from chat_core.config.settings import settings as default_settings
from chat_core.domain.conversation import ConversationStore, MessageRole, MessageStore, to_wire_role
from chat_core.domain.exceptions import (
    BusinessError,
    ConflictError,
    InsufficientCreditsError,
    NotFoundError,
    ProviderError,
    ProviderUnavailableError,
)
from chat_core.domain.models import ChatMessage, ChatOptions, ChatResponse, ChatTurnRequest
from chat_core.domain.usage import CreditLedger, UsageEvent, UsageLedger, UsageType
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.fusion_client import FUSION_MODEL, FUSION_PROVIDER, FusionProvider
from chat_core.providers.registry import ProviderRegistry


class TurnState(str, Enum):
    INIT = "Init"
    IDEMPOTENCY_CHECK = "IdempotencyCheck"
    CONVERSATION_RESOLVE = "ConversationResolve"
    HISTORY_LOAD = "HistoryLoad"
    CREDIT_CHECK = "CreditCheck"
    PROVIDER_CALL = "ProviderCall"
    PERSIST = "Persist"
    USAGE_EMIT = "UsageEmit"
    DONE = "Done"
    ERROR = "Error"


@dataclass(frozen=True)
class Route:
    """Where a turn is answered."""

    provider: str
    model: str
    fusion: bool = False


@dataclass
class TurnContext:
    user_id: str
    request: ChatTurnRequest
    request_id: str
    route: Route
    state: TurnState = TurnState.INIT
    conversation_id: Optional[str] = None
    history: List[ChatMessage] = field(default_factory=list)
    response: Optional[ChatResponse] = None
    message_id: Optional[str] = None


def new_request_id() -> str:
    return f"req_{secrets.token_hex(16)}"


def conversation_title(content: str, length: int) -> Optional[str]:
    title = (content or "").strip()[:length]
    return title or None


class ChatPipeline:
    """Shared steps of a chat turn.

    All collaborators are required; ``fusion`` is optional and only needed for
    turns routed through fusion.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        conversations: ConversationStore,
        messages: MessageStore,
        usage_ledger: UsageLedger,
        credit_ledger: CreditLedger,
        fusion: Optional[FusionProvider] = None,
        settings=default_settings,
    ):
        self._registry = registry
        self._conversations = conversations
        self._messages = messages
        self._usage = usage_ledger
        self._credits = credit_ledger
        self._fusion = fusion
        self._settings = settings

    def resolve_route(self, request: ChatTurnRequest) -> Route:
        """Decide provider and model of a turn.

        Explicit fields win. ``provider="fusion"``, or no provider and no model
        while auto-routing is on, goes through fusion. Everything else uses the
        default provider and its first model.
        """

        provider = (request.provider or "").lower() or None
        wants_fusion = provider == FUSION_PROVIDER or (
            provider is None
            and request.model is None
            and self._settings.fusion_auto_route
            and self._fusion is not None
        )
        if wants_fusion:
            if self._fusion is None:
                raise ProviderUnavailableError(
                    message=f"Provider {FUSION_PROVIDER} is not available",
                    provider=FUSION_PROVIDER,
                )
            return Route(provider=FUSION_PROVIDER, model=FUSION_MODEL, fusion=True)

        provider = provider or self._settings.default_provider
        if not self._registry.is_available(provider):
            raise ProviderUnavailableError(
                message=f"Provider {provider} is not available",
                provider=provider,
            )
        model = request.model
        if not model:
            models = self._registry.get_available_models(provider)
            if not models:
                raise ProviderUnavailableError(message=f"Provider {provider} has no models", provider=provider)
            model = models[0]
        return Route(provider=provider, model=model)

    def begin(self, user_id: str, request: ChatTurnRequest) -> TurnContext:
        request_id = request.request_id or new_request_id()
        logger.info(
            "chat.turn.start",
            extra={
                "extra": {
                    "request_id": request_id,
                    "user_id": user_id,
                    "has_conversation": bool(request.conversation_id),
                    "provider": request.provider,
                    "model": request.model,
                    "stream": request.stream,
                }
            },
        )
        # route validation happens before anything is persisted
        route = self.resolve_route(request)
        return TurnContext(user_id=user_id, request=request, request_id=request_id, route=route)

    def transition(self, ctx: TurnContext, state: TurnState) -> None:
        ctx.state = state
        logger.info(
            "chat.turn.state",
            extra={"extra": {"request_id": ctx.request_id, "state": state.value}},
        )

    def fail(self, ctx: Optional[TurnContext], exc: BaseException) -> None:
        payload = {"error": str(exc), "error_type": type(exc).__name__}
        if ctx is not None:
            payload.update({"request_id": ctx.request_id, "failed_in": ctx.state.value})
            ctx.state = TurnState.ERROR
        if isinstance(exc, BusinessError):
            payload["code"] = exc.code
            logger.warning("chat.turn.error", extra={"extra": payload})
        else:
            logger.error("chat.turn.error", exc_info=exc, extra={"extra": payload})

    async def check_idempotency(self, ctx: TurnContext) -> None:
        self.transition(ctx, TurnState.IDEMPOTENCY_CHECK)
        existing = await self._usage.check_idempotency(ctx.request_id)
        if existing is not None:
            raise ConflictError(message="Request already processed", requestId=ctx.request_id)

    async def resolve_conversation(self, ctx: TurnContext) -> None:
        self.transition(ctx, TurnState.CONVERSATION_RESOLVE)
        conversation_id = ctx.request.conversation_id
        if not conversation_id:
            title = conversation_title(ctx.request.content, self._settings.conversation_title_length)
            conversation = await self._conversations.create(ctx.user_id, title)
        else:
            conversation = await self._conversations.find_unique(conversation_id, ctx.user_id)
            if conversation is None:
                raise NotFoundError.for_resource("Conversation")
        ctx.conversation_id = conversation.id

    async def load_history(self, ctx: TurnContext) -> None:
        self.transition(ctx, TurnState.HISTORY_LOAD)
        records = await self._messages.find_many(ctx.conversation_id)
        ctx.history = [ChatMessage(role=to_wire_role(r.role), content=r.content) for r in records]
        ctx.history.append(ChatMessage(role="user", content=ctx.request.content))

    async def check_credits(self, ctx: TurnContext) -> None:
        self.transition(ctx, TurnState.CREDIT_CHECK)
        estimate = self._settings.estimated_chat_cost
        await self._credits.ensure_initial_credits(ctx.user_id)
        if not await self._credits.check_credits(ctx.user_id, estimate):
            available = await self._credits.get_credits(ctx.user_id)
            raise InsufficientCreditsError(required=estimate, available=available)

    async def call_provider(self, ctx: TurnContext, stream: bool) -> ChatResponse:
        self.transition(ctx, TurnState.PROVIDER_CALL)
        route = ctx.route
        options = ChatOptions(
            model=route.model,
            messages=list(ctx.history),
            temperature=ctx.request.temperature,
            max_tokens=ctx.request.max_tokens,
            stream=stream,
        )
        try:
            if route.fusion:
                response = await self._fusion.chat(options)
            else:
                response = await self._registry.chat(route.provider, options)
        except BusinessError:
            raise
        except Exception as exc:
            raise ProviderError(message=f"AI provider error: {exc}", provider=route.provider) from exc

        if not response or not response.content:
            raise ProviderError(message="AI provider returned empty response", provider=route.provider)
        logger.info(
            "chat.turn.provider_response",
            extra={
                "extra": {
                    "request_id": ctx.request_id,
                    "provider": response.provider,
                    "model": response.model,
                    "tokens_in": response.tokens_in,
                    "tokens_out": response.tokens_out,
                }
            },
        )
        ctx.response = response
        return response

    async def persist(self, ctx: TurnContext) -> None:
        self.transition(ctx, TurnState.PERSIST)
        response = ctx.response
        await self._messages.create(ctx.conversation_id, MessageRole.USER, ctx.request.content)
        assistant = await self._messages.create(
            ctx.conversation_id,
            MessageRole.ASSISTANT,
            response.content,
            model=response.model,
            provider=response.provider,
            tokens=response.total_tokens,
        )
        ctx.message_id = assistant.id
        await self._touch_conversation(ctx)

    async def _touch_conversation(self, ctx: TurnContext) -> None:
        try:
            await self._conversations.update(
                ctx.conversation_id,
                ctx.user_id,
                updated_at=datetime.now(timezone.utc),
            )
        except Exception as exc:
            logger.warning(
                "chat.turn.touch_failed",
                extra={"extra": {"request_id": ctx.request_id, "conversation_id": ctx.conversation_id, "error": str(exc)}},
            )

    async def emit_usage(self, ctx: TurnContext) -> None:
        self.transition(ctx, TurnState.USAGE_EMIT)
        response = ctx.response
        event = UsageEvent(
            user_id=ctx.user_id,
            model=response.model,
            provider=response.provider,
            type=UsageType.CHAT,
            tokens_in=response.tokens_in,
            tokens_out=response.tokens_out,
            cost=0,
            request_id=ctx.request_id,
            conversation_id=ctx.conversation_id,
        )
        try:
            await self._usage.record_usage_event(event)
        except ConflictError:
            # a concurrent turn with the same request id passed the idempotency
            # check too; its event is the one billed, this turn's messages stay
            logger.warning(
                "chat.turn.usage_conflict",
                extra={
                    "extra": {
                        "request_id": ctx.request_id,
                        "conversation_id": ctx.conversation_id,
                        "message_id": ctx.message_id,
                    }
                },
            )
            raise
