from api.middleware.logging import LoggingMiddleware
from core.logging_config import redact_sensitive


def test_request_body_is_sanitized():
    middleware = LoggingMiddleware.__new__(LoggingMiddleware)
    body = {
        "username": "bob",
        "password": "secret1",
        "nested": [{"new_password": "secret2", "nickname": "b"}],
    }
    assert middleware._sanitize_data(body) == {
        "username": "bob",
        "password": "***",
        "nested": [{"new_password": "***", "nickname": "b"}],
    }


def test_structlog_processor_masks_sensitive_keys():
    event = redact_sensitive(None, "info", {"event": "login", "token": "abc", "Authorization": "Bearer x", "user_id": 1})
    assert event["token"] == "***"
    assert event["Authorization"] == "***"
    assert event["user_id"] == 1
