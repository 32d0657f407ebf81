"""Tests for request validation."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from exchange_sweeper.models.requests import DeleteRequest, PurgeRequest, SearchFilter
from exchange_sweeper.models.types import ExecutionMode, Importance, PurgeMethod, SubjectMode


def test_search_filter_accepts_camel_case_and_normalizes() -> None:
    request = SearchFilter.model_validate(
        {
            "sender": "  ",
            "subject": " Hello ",
            "keywords": ["", " a "],
            "importance": "HIGH",
            "maxPerMailbox": 10,
        },
    )
    assert request.sender is None
    assert request.subject == "Hello"
    assert request.keywords == ["a"]
    assert request.importance is Importance.high
    assert request.max_per_mailbox == 10


@pytest.mark.parametrize(
    "payload",
    [
        {"sender": "not-an-address"},
        {"subject": "x" * 257},
        {"maxPerMailbox": 0},
        {"maxPerMailbox": 2001},
        {
            "receivedFrom": datetime(2024, 2, 1, tzinfo=UTC),
            "receivedTo": datetime(2024, 1, 1, tzinfo=UTC),
        },
        {"unexpected": True},
    ],
)
def test_search_filter_rejects_invalid_input(payload: dict) -> None:
    with pytest.raises(ValidationError):
        SearchFilter.model_validate(payload)


def test_delete_requires_sender_or_subject() -> None:
    with pytest.raises(ValidationError, match="Sender email or subject"):
        DeleteRequest(body="only a body")
    assert DeleteRequest(subject="Win").simulate is True


def test_purge_request_defaults() -> None:
    request = PurgeRequest(sender_email="spam@x.com")
    assert request.simulate is True
    assert request.allow_hard_delete is False
    assert request.method is PurgeMethod.compliance_search
    assert request.days_back == 30
    assert request.subject_mode is SubjectMode.none
    assert request.execution_mode is ExecutionMode.simulation


def test_purge_subject_modes_and_blank_subjects() -> None:
    contains = PurgeRequest(sender_email="spam@x.com", subject_contains="Win", subject_equal="")
    assert contains.subject_mode is SubjectMode.contains
    assert contains.subject_value == "Win"
    equals = PurgeRequest(sender_email="spam@x.com", subject_equal="Exact")
    assert equals.subject_mode is SubjectMode.equals


def test_purge_rejects_conflicting_subjects() -> None:
    with pytest.raises(ValidationError):
        PurgeRequest(sender_email="spam@x.com", subject_contains="a", subject_equal="b")


@pytest.mark.parametrize("days_back", [0, 366])
def test_purge_days_back_range(days_back: int) -> None:
    with pytest.raises(ValidationError):
        PurgeRequest(sender_email="spam@x.com", days_back=days_back)


def test_purge_execution_mode_labels() -> None:
    soft = PurgeRequest(sender_email="spam@x.com", simulate=False)
    hard = PurgeRequest(sender_email="spam@x.com", simulate=False, allow_hard_delete=True)
    assert soft.execution_mode is ExecutionMode.soft_delete
    assert hard.execution_mode is ExecutionMode.hard_delete
    assert PurgeRequest(sender_email="spam@x.com", allow_hard_delete=True).execution_mode is (
        ExecutionMode.simulation
    )


def test_purge_requires_sender() -> None:
    with pytest.raises(ValidationError):
        PurgeRequest.model_validate({"subjectContains": "x"})


def test_naive_and_aware_bounds_compare_as_utc() -> None:
    """A naive bound is taken as UTC, so mixed bounds validate instead of crashing."""
    request = SearchFilter.model_validate(
        {"receivedFrom": "2024-01-01T00:00:00", "receivedTo": "2024-02-01T00:00:00Z"},
    )
    assert request.received_from == datetime(2024, 1, 1, tzinfo=UTC)
    with pytest.raises(ValidationError, match="receivedTo"):
        SearchFilter.model_validate(
            {"receivedFrom": "2024-03-01T00:00:00", "receivedTo": "2024-02-01T00:00:00+00:00"},
        )


def test_purge_mixed_timezone_bounds() -> None:
    request = PurgeRequest.model_validate(
        {
            "senderEmail": "spam@x.com",
            "receivedFrom": "2024-01-01T00:00:00+02:00",
            "receivedTo": "2024-01-01T00:00:00",
        },
    )
    assert request.received_to == datetime(2024, 1, 1, tzinfo=UTC)
    with pytest.raises(ValidationError):
        PurgeRequest.model_validate(
            {
                "senderEmail": "spam@x.com",
                "receivedFrom": "2024-01-02T00:00:00Z",
                "receivedTo": "2024-01-01T00:00:00",
            },
        )
