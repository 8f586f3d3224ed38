"""Chat orchestration.

- pipeline: the turn state machine steps shared by both variants.
- service: blocking chat turn (ChatService).
- stream_service: streaming chat turn (ChatStreamService).
- sse: Server-Sent Events framing of stream chunks.
"""
