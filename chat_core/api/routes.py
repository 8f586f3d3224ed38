from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, StreamingResponse

from chat_core.api.deps import check_rate_limit, get_container, rate_limit_headers, require_user
from chat_core.api.service import ChatContainer
from chat_core.chat.sse import sse_frames
from chat_core.domain.models import ChatTurnRequest
from chat_core.domain.usage import RateLimitResult

router = APIRouter(prefix="/api/v1")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _stream(container: ChatContainer, user_id: str, body: ChatTurnRequest, limit: RateLimitResult):
    chunks = container.stream_service.stream_chat(user_id, body)
    return StreamingResponse(
        sse_frames(chunks),
        media_type="text/event-stream",
        headers={**SSE_HEADERS, **rate_limit_headers(limit)},
    )


@router.post("/chat")
async def chat(
    body: ChatTurnRequest,
    user_id: str = Depends(require_user),
    limit: RateLimitResult = Depends(check_rate_limit),
    container: ChatContainer = Depends(get_container),
):
    if body.stream:
        return _stream(container, user_id, body, limit)
    result = await container.chat_service.chat(user_id, body)
    return JSONResponse(content=jsonable_encoder(result.to_dict()), headers=rate_limit_headers(limit))


@router.post("/chat/stream")
async def chat_stream(
    body: ChatTurnRequest,
    user_id: str = Depends(require_user),
    limit: RateLimitResult = Depends(check_rate_limit),
    container: ChatContainer = Depends(get_container),
):
    return _stream(container, user_id, body, limit)


@router.get("/providers")
async def list_providers(container: ChatContainer = Depends(get_container)):
    registry = container.registry
    providers = [
        {"name": name, "models": registry.get_available_models(name)}
        for name in registry.get_available_providers()
    ]
    if container.fusion is not None:
        providers.append(
            {"name": container.fusion.get_provider_name(), "models": container.fusion.get_available_models()}
        )
    return {"providers": providers, "defaultProvider": container.settings.default_provider}
