import pytest

from services.errors import ValidationError
from services.validation import validate_message_input


VALID_CHAT_ID = "a" * 24


def test_valid_payload_is_parsed():
    message = validate_message_input({"chatId": VALID_CHAT_ID, "prompt": "  Hello  "})
    assert message.chat_id == VALID_CHAT_ID
    assert message.prompt == "  Hello  "


def test_missing_fields_are_reported_individually():
    with pytest.raises(ValidationError) as exc_info:
        validate_message_input({})

    errors = exc_info.value.errors
    assert errors == {"chatId": "Chat ID is required", "prompt": "Message content is required"}
    assert exc_info.value.status_code == 400


def test_short_chat_id_and_blank_prompt_both_fail():
    with pytest.raises(ValidationError) as exc_info:
        validate_message_input({"chatId": "short", "prompt": "   "})

    errors = exc_info.value.errors
    assert errors["chatId"] == "Invalid chat ID format"
    assert errors["prompt"] == "Message cannot be empty"


def test_blank_prompt_alone_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_message_input({"chatId": VALID_CHAT_ID, "prompt": "\n\t "})

    assert exc_info.value.errors == {"chatId": None, "prompt": "Message cannot be empty"}
    assert exc_info.value.message == "Prompt must be a non-empty string"


def test_non_string_values_are_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_message_input({"chatId": 123456789012345678901234567, "prompt": ["Hello"]})

    errors = exc_info.value.errors
    assert errors["chatId"] == "Invalid chat ID format"
    assert errors["prompt"] == "Prompt must be a string"


def test_numeric_prompt_gets_a_type_message():
    with pytest.raises(ValidationError) as exc_info:
        validate_message_input({"chatId": VALID_CHAT_ID, "prompt": 123})

    assert exc_info.value.errors == {"chatId": None, "prompt": "Prompt must be a string"}


def test_non_object_payload_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_message_input(None)

    assert set(exc_info.value.errors) == {"chatId", "prompt"}
