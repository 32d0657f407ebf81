"""Tests for the exchangelib adapter that need no server."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest

from exchange_sweeper.config.settings import EwsSettings
from exchange_sweeper.errors import ConfigurationError
from exchange_sweeper.ews.client import ExchangeError, ExchangeProtocol, ExchangeSession, _to_remote_item
from exchange_sweeper.ews.protocol import PageView


def _settings(**overrides: object) -> EwsSettings:
    values: dict[str, object] = {
        "url": "https://mail.example.com/EWS/Exchange.asmx",
        "username": "svc",
        "password": "secret",
        "domain": "CORP",
        "service_address": "svc@example.com",
        **overrides,
    }
    return EwsSettings(**values)


def test_missing_credentials_fail_at_construction() -> None:
    with pytest.raises(ConfigurationError):
        ExchangeProtocol(settings=_settings(password=None))


def test_domain_is_prefixed_to_bare_usernames() -> None:
    protocol = ExchangeProtocol(settings=_settings())
    assert protocol._credentials().username == "CORP\\svc"


def test_row_projection() -> None:
    received = datetime(2024, 1, 1, tzinfo=UTC)
    row = SimpleNamespace(
        id="AAMk",
        changekey="CQAA",
        subject="Win",
        author=SimpleNamespace(email_address="spam@x.com"),
        sender=None,
        datetime_received=received,
        message_id="<m@x.com>",
        has_attachments=True,
        size=10,
        text_body="hello",
    )
    item = _to_remote_item(row)
    assert item.item_id is not None
    assert (item.item_id.id, item.item_id.change_key) == ("AAMk", "CQAA")
    assert item.from_address == "spam@x.com"
    assert item.sender_address is None
    assert item.received_at == received


def test_unbound_session_is_rejected() -> None:
    protocol = ExchangeProtocol(settings=_settings())
    session = ExchangeSession(config=None, credentials=protocol._credentials())
    with pytest.raises(ExchangeError):
        asyncio.run(protocol.find_items(session, "inbox", "kind:email", PageView(page_size=1)))
