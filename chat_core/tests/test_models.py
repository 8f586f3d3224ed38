import pytest
from pydantic import ValidationError as PydanticValidationError

from chat_core.domain.conversation import MessageRole, to_wire_role
from chat_core.domain.exceptions import (
    InsufficientCreditsError,
    NoAvailableModelsError,
    NotFoundError,
    ProviderRateLimitError,
)
from chat_core.domain.models import ChatResponse, ChatTurnRequest, StreamChunk


def test_turn_request_accepts_camel_case_aliases():
    req = ChatTurnRequest.model_validate(
        {"conversationId": "c-abc_123", "content": "hi", "maxTokens": 50, "requestId": "req_1"}
    )
    assert req.conversation_id == "c-abc_123"
    assert req.max_tokens == 50
    assert req.request_id == "req_1"
    assert req.stream is False


def test_turn_request_empty_conversation_id_is_none():
    req = ChatTurnRequest(content="hi", conversation_id="")
    assert req.conversation_id is None


@pytest.mark.parametrize(
    "payload",
    [
        {"content": "   "},
        {"content": "hi", "conversationId": "bad id!"},
        {"content": "hi", "temperature": 2.5},
        {"content": "hi", "maxTokens": 0},
    ],
)
def test_turn_request_rejects_invalid_input(payload):
    with pytest.raises(PydanticValidationError):
        ChatTurnRequest.model_validate(payload)


def test_stream_chunk_wire_shapes():
    assert StreamChunk.text("abc").to_wire() == {"type": "content", "data": "abc"}
    assert StreamChunk.meta(model="m").to_wire() == {"type": "metadata", "data": {"model": "m"}}
    assert StreamChunk.failure("boom", "X").to_wire() == {"type": "error", "data": {"error": "boom", "code": "X"}}
    assert StreamChunk.done(messageId="m1").is_terminal
    assert not StreamChunk.text("a").is_terminal


def test_chat_response_total_tokens():
    assert ChatResponse(content="x", model="m", provider="p", tokens_in=3, tokens_out=4).total_tokens == 7


def test_role_mapping():
    assert MessageRole.USER.to_wire() == "user"
    assert to_wire_role("ASSISTANT") == "assistant"
    assert to_wire_role("TOOL") == "system"


def test_business_error_serialization():
    err = InsufficientCreditsError(required=100, available=10)
    assert err.http_status == 402
    assert err.to_dict() == {
        "code": "INSUFFICIENT_CREDITS",
        "message": "Insufficient credits. Required: 100, Available: 10",
        "context": {"required": 100, "available": 10},
    }
    assert NotFoundError.for_resource("Conversation").message == "Conversation not found"
    assert ProviderRateLimitError().http_status == 429
    assert ProviderRateLimitError().code == "AI_PROVIDER_ERROR"
    assert NoAvailableModelsError().http_status == 503
