# Shared FastAPI dependencies for the chat API.

from typing import Dict, Optional

from fastapi import Depends, Header, Request

from chat_core.api.service import ChatContainer
from chat_core.domain.exceptions import RateLimitError, UnauthorizedError
from chat_core.domain.usage import RateLimitResult
from chat_core.infrastructure.rate_limit import chat_rate_limit_config


def get_container(request: Request) -> ChatContainer:
    return request.app.state.container


async def require_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Caller identity, resolved upstream and forwarded as ``X-User-Id``."""

    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError(message="Authentication required")
    return x_user_id.strip()


async def check_rate_limit(
    user_id: str = Depends(require_user),
    container: ChatContainer = Depends(get_container),
) -> RateLimitResult:
    config = chat_rate_limit_config(container.settings)
    if container.settings.rate_limit_skip:
        return RateLimitResult(allowed=True, limit=config.limit, remaining=config.limit, reset=config.window)
    result = await container.rate_limiter.check_rate_limit(user_id, config)
    if not result.allowed:
        raise RateLimitError(
            message=f"Too many requests. Try again in {result.reset} seconds.",
            limit=result.limit,
            remaining=result.remaining,
            reset=result.reset,
        )
    return result


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }
