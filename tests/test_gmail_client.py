"""Tests for GmailClient with a mocked Gmail API service."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from gmail_mirror.core.exceptions import GmailMirrorError, RateLimitError
from gmail_mirror.core.gmail_client import GmailClient, _is_rate_limit_error
from gmail_mirror.core.models import Label, MailboxFilter


@pytest.fixture
def mock_service() -> MagicMock:
    """Create a fully-mocked Gmail API Resource."""
    return MagicMock()


@pytest.fixture
def client(mock_service: MagicMock) -> GmailClient:
    """Create a GmailClient wrapping the mocked service."""
    return GmailClient(mock_service, user_id="me", num_retries=0)


# ---------- _is_rate_limit_error ----------


class TestIsRateLimitError:
    """Tests for the module-level rate limit detection helper."""

    def test_detects_http_error_429(self) -> None:
        """HttpError with status_code 429 is detected as rate limit."""
        from googleapiclient.errors import HttpError

        exc = HttpError(resp=MagicMock(status=429), content=b"rate limit")
        assert _is_rate_limit_error(exc) is True

    def test_detects_rate_limit_exceeded_in_string(self) -> None:
        """Generic exception with 'rateLimitExceeded' is detected."""
        assert _is_rate_limit_error(Exception("rateLimitExceeded")) is True

    def test_non_rate_limit_error(self) -> None:
        """Non-rate-limit errors return False."""
        assert _is_rate_limit_error(Exception("Server error 500")) is False

    def test_http_error_non_429(self) -> None:
        """HttpError with non-429 status is not a rate limit."""
        from googleapiclient.errors import HttpError

        exc = HttpError(resp=MagicMock(status=500), content=b"server error")
        assert _is_rate_limit_error(exc) is False


# ---------- _execute ----------


class TestExecute:
    """Failures are classified, never retried here."""

    def test_passes_num_retries_to_execute(self, mock_service: MagicMock) -> None:
        """num_retries is passed through to request.execute()."""
        client = GmailClient(mock_service, num_retries=7)
        mock_request = MagicMock()
        mock_request.execute.return_value = {"result": "ok"}

        assert client._execute(mock_request, "test") == {"result": "ok"}
        mock_request.execute.assert_called_once_with(num_retries=7)

    def test_rate_limit_raises_immediately(self, client: GmailClient) -> None:
        mock_request = MagicMock()
        mock_request.execute.side_effect = Exception("HttpError 429: rateLimitExceeded")

        with pytest.raises(RateLimitError, match="Rate limited during get profile"):
            client._execute(mock_request, "get profile")

        assert mock_request.execute.call_count == 1

    def test_other_errors_wrapped(self, client: GmailClient) -> None:
        mock_request = MagicMock()
        mock_request.execute.side_effect = Exception("Server error 500")

        with pytest.raises(GmailMirrorError, match="Failed to get profile: Server error 500"):
            client._execute(mock_request, "get profile")


# ---------- list_labels ----------


class TestListLabels:
    """Tests for GmailClient.list_labels()."""

    def test_returns_labels(self, client: GmailClient, mock_service: MagicMock) -> None:
        mock_service.users().labels().list().execute.return_value = {
            "labels": [
                {"id": "INBOX", "name": "INBOX", "type": "system"},
                {"id": "Label_1", "name": "Work", "type": "user"},
            ]
        }

        assert client.list_labels() == [Label("INBOX", "INBOX"), Label("Label_1", "Work")]

    def test_returns_empty_list_when_no_labels(
        self, client: GmailClient, mock_service: MagicMock
    ) -> None:
        mock_service.users().labels().list().execute.return_value = {}
        assert client.list_labels() == []

    def test_raises_gmail_error_on_api_failure(
        self, client: GmailClient, mock_service: MagicMock
    ) -> None:
        """list_labels() wraps API exceptions in GmailMirrorError."""
        mock_service.users().labels().list().execute.side_effect = Exception("API unavailable")

        with pytest.raises(GmailMirrorError, match="Failed to list labels"):
            client.list_labels()


# ---------- list_entries ----------


class TestListEntries:
    """Tests for GmailClient.list_entries()."""

    def test_lists_messages_by_label(self, client: GmailClient, mock_service: MagicMock) -> None:
        messages = mock_service.users().messages()
        messages.list.return_value.execute.return_value = {
            "messages": [{"id": "m1", "threadId": "t1"}, {"id": "m2", "threadId": "t1"}],
            "resultSizeEstimate": 12,
            "nextPageToken": "next",
        }

        page = client.list_entries(MailboxFilter.label("INBOX"), 50)

        messages.list.assert_called_with(userId="me", maxResults=50, labelIds=["INBOX"])
        assert page.ids == ["m1", "m2"]
        assert page.result_size_estimate == 12
        assert page.next_page_token == "next"
        assert all(not entry.is_loaded for entry in page.entries)

    def test_search_with_page_token(self, client: GmailClient, mock_service: MagicMock) -> None:
        messages = mock_service.users().messages()
        messages.list.return_value.execute.return_value = {}

        page = client.list_entries(MailboxFilter.search("from:bob"), 10, "tok")

        messages.list.assert_called_with(userId="me", maxResults=10, pageToken="tok", q="from:bob")
        assert page.entries == ()

    def test_lists_threads(self, client: GmailClient, mock_service: MagicMock) -> None:
        threads = mock_service.users().threads()
        threads.list.return_value.execute.return_value = {
            "threads": [{"id": "t1", "historyId": "5", "snippet": "hi"}],
        }

        page = client.list_entries(MailboxFilter.label("INBOX"), 10, threads=True)

        assert page.ids == ["t1"]
        assert page.entries[0].thread is not None
        assert page.entries[0].history_id == 5


# ---------- hydration ----------


class TestGetMessage:
    def test_fetches_full_format(
        self, client: GmailClient, mock_service: MagicMock, raw_message_1: dict[str, Any]
    ) -> None:
        messages = mock_service.users().messages()
        messages.get.return_value.execute.return_value = raw_message_1

        msg = client.get_message("id-message-1")

        messages.get.assert_called_with(userId="me", id="id-message-1", format="full")
        assert msg.message_id == "id-message-1"
        assert msg.history_id == 12345
        assert msg.is_loaded

    def test_failure_wrapped(self, client: GmailClient, mock_service: MagicMock) -> None:
        mock_service.users().messages().get.return_value.execute.side_effect = Exception("boom")
        with pytest.raises(GmailMirrorError, match="Failed to get message m1"):
            client.get_message("m1")


class TestGetThread:
    def test_fetches_thread_with_messages(
        self,
        client: GmailClient,
        mock_service: MagicMock,
        raw_message_1: dict[str, Any],
        raw_message_2: dict[str, Any],
    ) -> None:
        threads = mock_service.users().threads()
        threads.get.return_value.execute.return_value = {
            "id": "t1",
            "historyId": "12346",
            "messages": [raw_message_1, raw_message_2],
        }

        thread = client.get_thread("t1")

        threads.get.assert_called_with(userId="me", id="t1", format="full")
        assert [m.message_id for m in thread.messages] == ["id-message-1", "id-message-2"]
        assert thread.history_id == 12346


# ---------- profile & history ----------


class TestProfileAndHistory:
    def test_get_profile(self, client: GmailClient, mock_service: MagicMock) -> None:
        mock_service.users().getProfile.return_value.execute.return_value = {
            "emailAddress": "me@example.com",
            "messagesTotal": 10,
            "threadsTotal": 7,
            "historyId": "321",
        }

        profile = client.get_profile()

        assert profile.email_address == "me@example.com"
        assert profile.messages_total == 10
        assert profile.threads_total == 7
        assert profile.history_id == 321

    def test_history_unchanged(self, client: GmailClient, mock_service: MagicMock) -> None:
        history = mock_service.users().history()
        history.list.return_value.execute.return_value = {"historyId": "500"}

        check = client.check_history_since(400)

        history.list.assert_called_with(userId="me", startHistoryId="400", maxResults=1)
        assert check.changed is False
        assert check.latest_history_id == 500

    def test_history_changed(self, client: GmailClient, mock_service: MagicMock) -> None:
        history = mock_service.users().history()
        history.list.return_value.execute.return_value = {
            "history": [{"id": "401", "messages": [{"id": "m1", "threadId": "t1"}]}],
            "historyId": "510",
        }

        check = client.check_history_since(400)

        assert check.changed is True
        assert check.latest_history_id == 510
        assert check.changed_ids == ("m1",)


# ---------- mutations ----------


class TestMutations:
    def test_modify_labels_on_message(self, client: GmailClient, mock_service: MagicMock) -> None:
        messages = mock_service.users().messages()

        client.modify_labels("m1", add=["Label_1"], remove=["INBOX"])

        messages.modify.assert_called_with(
            userId="me",
            id="m1",
            body={"addLabelIds": ["Label_1"], "removeLabelIds": ["INBOX"]},
        )

    def test_modify_labels_on_thread(self, client: GmailClient, mock_service: MagicMock) -> None:
        threads = mock_service.users().threads()

        client.modify_labels("t1", remove=["INBOX"], threads=True)

        threads.modify.assert_called_with(
            userId="me", id="t1", body={"addLabelIds": [], "removeLabelIds": ["INBOX"]}
        )

    def test_trash(self, client: GmailClient, mock_service: MagicMock) -> None:
        messages = mock_service.users().messages()
        client.trash("m1")
        messages.trash.assert_called_with(userId="me", id="m1")

    def test_trash_failure(self, client: GmailClient, mock_service: MagicMock) -> None:
        mock_service.users().messages().trash.return_value.execute.side_effect = Exception("403")
        with pytest.raises(GmailMirrorError, match="Failed to trash m1"):
            client.trash("m1")
