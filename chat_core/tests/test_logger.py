import json
import logging

from chat_core.infrastructure.logging.logger import JsonFormatter


def _record(msg, **extra):
    record = logging.LogRecord("chat_core", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_merges_extra():
    line = JsonFormatter().format(_record("chat.turn.state", extra={"request_id": "req_1", "state": "Done"}))
    payload = json.loads(line)
    assert payload["msg"] == "chat.turn.state"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "req_1"
    assert payload["state"] == "Done"
    assert payload["ts"].endswith("Z")


def test_json_formatter_redacts_long_messages():
    payload = json.loads(JsonFormatter(redact_content=True).format(_record("x" * 200)))
    assert payload["msg"] == "x" * 64
