from __future__ import annotations

import logging

import pydantic
import pytest

from inkwell import Settings, configure_logging


def test_defaults() -> None:
    settings = Settings()
    assert settings.bulk_limit == 50
    assert settings.refund_gateway_to_wallet is False
    assert settings.database_url.startswith("sqlite+aiosqlite://")


def test_from_env_reads_prefixed_variables() -> None:
    settings = Settings.from_env({
        "INKWELL_BULK_LIMIT": "20",
        "INKWELL_REFUND_GATEWAY_TO_WALLET": "true",
        "INKWELL_GATEWAY_TIMEOUT_SECONDS": "2.5",
        "INKWELL_UNKNOWN": "ignored",
        "BULK_LIMIT": "7",
    })
    assert settings.bulk_limit == 20
    assert settings.refund_gateway_to_wallet is True
    assert settings.gateway_timeout_seconds == 2.5


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(pydantic.ValidationError):
        Settings.from_env({"INKWELL_BULK_LIMIT": "0"})


def test_settings_are_frozen() -> None:
    settings = Settings()
    with pytest.raises(pydantic.ValidationError):
        settings.bulk_limit = 10  # type: ignore[misc]


def test_configure_logging_sets_level() -> None:
    configure_logging(Settings(log_level="debug"))
    assert logging.getLogger("inkwell").level == logging.DEBUG
