"""Tests for logging setup and per-account context."""

import pytest
import structlog
from pydantic import ValidationError

from referral_ledger.logging_config import account_context, add_app_context
from referral_ledger.settings import Settings, settings


def test_app_context_is_added():
    event = add_app_context(None, "info", {"event": "referral_applied"})

    assert event["app"] == settings.app_name
    assert event["env"] == settings.env


def test_app_context_keeps_explicit_values():
    event = add_app_context(None, "info", {"event": "x", "app": "worker"})

    assert event["app"] == "worker"


def test_account_context_binds_and_unbinds():
    with account_context(7, transaction_id=3):
        assert structlog.contextvars.get_contextvars() == {"owner_id": 7, "transaction_id": 3}

    assert structlog.contextvars.get_contextvars() == {}


def test_account_context_unbinds_on_error():
    with pytest.raises(RuntimeError):
        with account_context(7):
            raise RuntimeError("boom")

    assert structlog.contextvars.get_contextvars() == {}


def test_log_level_is_normalized():
    assert Settings(log_level=" debug ").log_level == "DEBUG"


def test_unknown_log_level_is_rejected():
    with pytest.raises(ValidationError):
        Settings(log_level="chatty")
