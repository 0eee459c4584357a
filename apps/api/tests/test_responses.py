from datetime import datetime, timezone

from services.conversations import TurnRecord
from services.errors import AuthError, PersistenceError, RateLimitedError
from services.responses import compose_error, compose_success, error_response


def test_success_envelope_shape():
    reply = TurnRecord(role="assistant", content="Hi there", timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc))

    payload = compose_success(reply, "a" * 24, 4)

    assert payload == {
        "success": True,
        "reply": {"role": "assistant", "content": "Hi there", "timestamp": 1767225600000, "isImage": False},
        "chatId": "a" * 24,
        "creditsRemaining": 4,
    }


def test_error_envelope_hides_internal_detail_outside_development():
    try:
        try:
            raise RuntimeError("disk full")
        except RuntimeError as exc:
            raise PersistenceError() from exc
    except PersistenceError as error:
        hidden = compose_error(error, debug=False)
        shown = compose_error(error, debug=True)

    assert hidden == {
        "success": False,
        "message": "Reply was generated but could not be saved",
        "code": "PersistenceError",
    }
    assert shown["error"] == "disk full"


def test_rate_limited_response_sets_retry_after_header():
    response = error_response(RateLimitedError(retry_after=42))

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "42"


def test_expired_auth_error_is_forbidden():
    assert AuthError("Token has expired", expired=True).status_code == 403
    assert AuthError("Invalid token signature").status_code == 401
