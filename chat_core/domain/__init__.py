"""Domain models and protocols.

- models: ChatMessage / ChatOptions / ChatResponse / StreamChunk and the chat
  turn request/result.
- conversation: conversation and message records plus their store protocols.
- usage: usage events, credit ledger and rate limiter protocols.
- exceptions: business error types.
"""
