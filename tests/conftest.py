"""Shared fixtures for Gmail Mirror tests."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from gmail_mirror.core.models import ListPage, Profile
from gmail_mirror.sync.backoff import BackoffPolicy
from tests.factories import raw_message


@pytest.fixture
def raw_message_1() -> dict[str, Any]:
    return raw_message("id-message-1", "12345")


@pytest.fixture
def raw_message_2() -> dict[str, Any]:
    return raw_message("id-message-2", "12346")


@pytest.fixture
def profile() -> Profile:
    return Profile(
        email_address="me@example.com",
        messages_total=1000,
        threads_total=700,
        history_id=99999,
    )


@pytest.fixture
def fast_backoff() -> BackoffPolicy:
    """Backoff that gives up after two retries."""
    return BackoffPolicy(initial_delay=0.0, base=1.0, max_delay=0.0, max_retries=2)


@pytest.fixture
def mock_client(profile: Profile) -> MagicMock:
    """GmailClient double listing no entries by default."""
    client = MagicMock()
    client.get_profile.return_value = profile
    client.list_entries.return_value = ListPage(entries=(), result_size_estimate=0)
    client.list_labels.return_value = []
    return client
