"""Chat Core top-level package.

AI request routing and streaming chat pipeline: provider adapters and their
registry, intent-based fusion routing, the blocking and streaming chat
services with idempotent usage metering, and the FastAPI transport.
"""

from chat_core.chat.service import ChatService
from chat_core.chat.stream_service import ChatStreamService
from chat_core.providers.registry import ProviderRegistry

__all__ = ["ChatService", "ChatStreamService", "ProviderRegistry"]
