import sys

import pytest
from loguru import logger

from toolchat import logging_utils
from toolchat.logging_utils import (
    configure_logging,
    current_conversation,
    reset_current_conversation,
    set_current_conversation,
)


def test_conversation_context_is_scoped() -> None:
    assert current_conversation() == "-"

    token = set_current_conversation("abc123")
    try:
        assert current_conversation() == "abc123"
    finally:
        reset_current_conversation(token)

    assert current_conversation() == "-"


def test_default_profile_tags_records_with_conversation(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(logging_utils, "_CONFIGURED_PROFILE", None)
    try:
        configure_logging(level="INFO")
        token = set_current_conversation("abc123")
        try:
            logger.info("conversation.round.start round={}", 1)
            logger.debug("hidden")
        finally:
            reset_current_conversation(token)
    finally:
        logger.remove()
        logger.add(sys.__stderr__)

    err = capsys.readouterr().err
    assert "| abc123 | conversation.round.start round=1" in err
    assert "hidden" not in err
