"""Server-Sent Events framing.

Each chunk becomes ``data: {"type": ..., "data": ...}\\n\\n``; the stream always
ends with ``data: [DONE]\\n\\n``, also after a failure.
"""

import json
from typing import Any, AsyncIterator, Dict

from chat_core.domain.exceptions import InternalError
from chat_core.domain.models import StreamChunk
from chat_core.infrastructure.logging.logger import logger

DONE_FRAME = "data: [DONE]\n\n"


def format_sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


async def sse_frames(chunks: AsyncIterator[StreamChunk]) -> AsyncIterator[str]:
    try:
        async for chunk in chunks:
            yield format_sse(chunk.to_wire())
    except Exception as exc:
        logger.error("chat.stream.transport_error", exc_info=exc, extra={"extra": {"error": str(exc)}})
        yield format_sse(StreamChunk.failure("Stream error", InternalError.code).to_wire())
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
    yield DONE_FRAME
