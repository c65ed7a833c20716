"""Tests for flowdesk.integrations (no network)."""

from __future__ import annotations

import json
from unittest.mock import MagicMock
from urllib.error import URLError

import httpx
import pytest
import requests
from github.GithubException import GithubException
from slack_sdk.errors import SlackApiError

from flowdesk.errors import NotFoundError, UpstreamError
from flowdesk.integrations.calendar import CalendarClient, classify_event
from flowdesk.integrations.github import GitHubClient, parse_github_issue_url
from flowdesk.integrations.jira import JiraClient, parse_jira_key_from_url
from flowdesk.integrations.slack import SlackClient
from flowdesk.tasks.service import TaskService


class TestUrlParsers:
    def test_github_issue_url(self):
        assert parse_github_issue_url("https://github.com/acme/webapp/issues/42") == ("acme", "webapp", 42)
        assert parse_github_issue_url("https://github.com/acme/webapp/pull/7/files") == ("acme", "webapp", 7)

    @pytest.mark.parametrize("url", [
        None, "", "https://github.com/acme/webapp", "https://github.com/acme/webapp/tree/42",
        "https://github.com/acme/webapp/issues/abc", "https://github.com/acme/webapp/issues/0",
    ])
    def test_github_rejects(self, url):
        assert parse_github_issue_url(url) is None

    def test_jira_key(self):
        assert parse_jira_key_from_url("https://acme.atlassian.net/browse/PAY-12") == "PAY-12"
        assert parse_jira_key_from_url("https://acme.atlassian.net/rest/api/3/issue/10001") is None
        assert parse_jira_key_from_url(None) is None


class TestJiraClient:
    def _client(self, handler) -> JiraClient:
        return JiraClient(
            "https://acme.atlassian.net/", "dev@acme.io", "token",
            transport=httpx.MockTransport(handler),
        )

    def test_fetch_assigned(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("authorization", "")
            return httpx.Response(200, json={"issues": [{"key": "PAY-12"}]})

        issues = self._client(handler).fetch_assigned()
        assert issues == [{"key": "PAY-12"}]
        assert seen["path"] == "/rest/api/3/search/jql"
        assert "currentUser()" in seen["body"]["jql"]
        assert seen["body"]["maxResults"] == 50
        assert seen["auth"].startswith("Basic ")

    def test_fetch_assigned_error(self):
        client = self._client(lambda request: httpx.Response(500))
        with pytest.raises(UpstreamError):
            client.fetch_assigned()

    def test_fetch_details(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/rest/api/3/issue/PAY-12"
            return httpx.Response(200, json={
                "key": "PAY-12",
                "self": "https://acme.atlassian.net/rest/api/3/issue/10001",
                "fields": {
                    "summary": "Payment webhook retries",
                    "description": {"type": "doc", "content": [
                        {"type": "paragraph", "content": [{"type": "text", "text": "Retry them"}]},
                    ]},
                    "status": {"name": "Done"},
                },
            })

        details = self._client(handler).fetch_details("PAY-12")
        assert details.title == "Payment webhook retries"
        assert details.description == "Retry them"
        assert details.state == "Done"

    def test_fetch_details_not_found(self):
        client = self._client(lambda request: httpx.Response(404))
        with pytest.raises(NotFoundError, match="PAY-99 not found"):
            client.fetch_details("PAY-99")

    def test_fetch_details_server_error(self):
        client = self._client(lambda request: httpx.Response(503))
        with pytest.raises(UpstreamError):
            client.fetch_details("PAY-12")

    def test_non_json_response(self):
        client = self._client(lambda request: httpx.Response(200, text="<html>login</html>"))
        with pytest.raises(UpstreamError, match="non-JSON"):
            client.fetch_assigned()
        with pytest.raises(UpstreamError, match="non-JSON"):
            client.fetch_details("PAY-12")

    def test_connection_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamError):
            self._client(handler).fetch_assigned()


class TestClassifyEvent:
    def _item(self, summary="Design review", start="2024-06-15T10:00:00Z", end="2024-06-15T11:00:00Z", **extra):
        item = {"id": "ev1", "summary": summary, "start": {"dateTime": start}, "end": {"dateTime": end}}
        item.update(extra)
        return item

    def test_meeting(self):
        event = classify_event(self._item())
        assert event.type == "MEETING"
        assert event.title == "Design review"

    def test_out_of_office(self):
        assert classify_event(self._item(eventType="outOfOffice")).type == "BLOCKED"
        assert classify_event(self._item(summary="PTO")).type == "BLOCKED"

    def test_info(self):
        assert classify_event(self._item(summary="Reminder: expenses")).type == "INFO"

    def test_long_meeting_is_blocked(self):
        item = self._item(start="2024-06-15T09:00:00Z", end="2024-06-15T16:00:00Z")
        assert classify_event(item, "09:00", "17:00").type == "BLOCKED"

    def test_busy_title_uses_description(self):
        assert classify_event(self._item(summary="Busy", description="Dentist")).title == "Dentist"
        assert classify_event(self._item(summary="")).title == "Busy"

    def test_all_day_dates(self):
        item = {"id": "ev2", "summary": "Offsite", "start": {"date": "2024-06-15"}, "end": {"date": "2024-06-16"}}
        event = classify_event(item)
        assert event.start == "2024-06-15T00:00:00"
        assert event.type == "BLOCKED"

    def test_incomplete_event(self):
        assert classify_event({"id": "x", "summary": "No times"}) is None


class TestCalendarClient:
    def test_fetch_day_events(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            seen["path"] = request.url.path
            return httpx.Response(200, json={"items": [
                {"id": "ev1", "summary": "Standup",
                 "start": {"dateTime": "2024-06-15T09:30:00+02:00"},
                 "end": {"dateTime": "2024-06-15T09:45:00+02:00"}},
                {"summary": "no id"},
            ]})

        client = CalendarClient("team@acme.io", "key123", transport=httpx.MockTransport(handler))
        events = client.fetch_day_events("2024-06-15", "Europe/Berlin")

        assert [e.title for e in events] == ["Standup"]
        assert seen["path"].endswith("/calendars/team@acme.io/events")
        assert seen["params"]["timeMin"] == "2024-06-15T00:00:00+02:00"
        assert seen["params"]["singleEvents"] == "true"
        assert seen["params"]["timeZone"] == "Europe/Berlin"

    def test_unknown_timezone_uses_utc(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"items": []})

        client = CalendarClient("primary", "k", transport=httpx.MockTransport(handler))
        assert client.fetch_day_events("2024-06-15", "Mars/Olympus") == []
        assert seen["params"]["timeZone"] == "UTC"

    def test_error(self):
        client = CalendarClient("primary", "k", transport=httpx.MockTransport(lambda r: httpx.Response(403)))
        with pytest.raises(UpstreamError):
            client.fetch_day_events("2024-06-15")

    def test_non_json_response(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="Service Unavailable"))
        client = CalendarClient("primary", "k", transport=transport)
        with pytest.raises(UpstreamError, match="non-JSON"):
            client.fetch_day_events("2024-06-15")


class TestSlackClient:
    def _client(self) -> SlackClient:
        client = SlackClient("xoxb-test", user_id="U1", channel_ids=["C1", "C2"])
        client._client = MagicMock()
        return client

    def test_fetch_mentions(self):
        client = self._client()
        client._client.conversations_history.side_effect = [
            {"messages": [
                {"text": "<@U1> can you look?", "ts": "1.1"},
                {"text": "not for you", "ts": "1.2"},
                {"text": "<@U1> joined", "ts": "1.3", "subtype": "channel_join"},
            ]},
            SlackApiError("channel_not_found", {"ok": False, "error": "channel_not_found"}),
        ]
        mentions = client.fetch_mentions("1.0")
        assert [(m.channel_id, m.ts) for m in mentions] == [("C1", "1.1")]
        client._client.conversations_history.assert_any_call(channel="C1", oldest="1.0", limit=100)

    def test_thread_summary(self):
        client = self._client()
        client._client.conversations_replies.return_value = {"messages": [
            {"text": "Can you check?"}, {"text": "  "}, {"text": "On it."},
        ]}
        assert client.thread_summary("C1", "1.1") == "Can you check?\nOn it."

    def test_empty_thread(self):
        client = self._client()
        client._client.conversations_replies.return_value = {"messages": []}
        assert client.thread_summary("C1", "1.1") == "No messages found in this thread."

    def test_thread_error(self):
        client = self._client()
        client._client.conversations_replies.side_effect = SlackApiError("boom", {"ok": False})
        with pytest.raises(UpstreamError):
            client.thread_summary("C1", "1.1")

    def test_unreachable_channel_is_skipped(self):
        client = self._client()
        client._client.conversations_history.side_effect = [
            URLError("timed out"),
            {"messages": [{"text": "<> ping", "ts": "2.1"}]},
        ]
        assert [m.channel_id for m in client.fetch_mentions()] == ["C2"]

    def test_thread_timeout(self):
        client = self._client()
        client._client.conversations_replies.side_effect = TimeoutError("read timed out")
        with pytest.raises(UpstreamError):
            client.thread_summary("C1", "1.1")


class TestGitHubClient:
    def _client(self) -> GitHubClient:
        client = GitHubClient("ghp_test")
        client._gh = MagicMock()
        return client

    def test_fetch_assigned(self):
        client = self._client()
        issue = MagicMock(raw_data={"id": 1, "title": "Bug"})
        client._gh.get_user.return_value.get_issues.return_value = [issue]
        assert client.fetch_assigned() == [{"id": 1, "title": "Bug"}]
        client._gh.get_user.return_value.get_issues.assert_called_once_with(filter="assigned", state="open")

    def test_fetch_details(self):
        client = self._client()
        issue = client._gh.get_repo.return_value.get_issue.return_value
        issue.title, issue.body, issue.html_url, issue.state = "Bug", None, "https://x/1", "closed"
        details = client.fetch_details("acme", "webapp", 1)
        client._gh.get_repo.assert_called_once_with("acme/webapp")
        assert details.state == "closed"
        assert details.description == ""

    def test_error(self):
        client = self._client()
        client._gh.get_repo.side_effect = GithubException(404, {"message": "Not Found"}, None)
        with pytest.raises(UpstreamError):
            client.fetch_details("acme", "webapp", 1)

    def test_connection_failure(self):
        client = self._client()
        client._gh.get_user.side_effect = requests.exceptions.ConnectionError("Max retries exceeded")
        with pytest.raises(UpstreamError):
            client.fetch_assigned()
        client._gh.get_repo.side_effect = requests.exceptions.Timeout("read timed out")
        with pytest.raises(UpstreamError):
            client.fetch_details("acme", "webapp", 1)

    def test_unreachable_github_yields_no_tasks(self, repo):
        client = self._client()
        client._gh.get_user.side_effect = requests.exceptions.ConnectionError("Max retries exceeded")
        assert TaskService(repo, github=client).github_tasks() == []
