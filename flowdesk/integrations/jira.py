"""Jira Cloud REST client (basic auth with an API token)."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

import httpx

from flowdesk.config import DEFAULT_HTTP_TIMEOUT
from flowdesk.errors import NotFoundError, UpstreamError
from flowdesk.models import IssueDetails
from flowdesk.tasks.normalize import normalize_jira_issue

logger = logging.getLogger(__name__)

ASSIGNED_JQL = "assignee = currentUser() AND statusCategory != Done ORDER BY priority DESC"
SEARCH_FIELDS = ["summary", "description", "status", "priority", "duedate"]
JIRA_KEY_RE = re.compile(r"^[A-Z][A-Z0-9]+-\d+$")


def parse_jira_key_from_url(url: str | None) -> str | None:
    """The issue key in the last path segment of a Jira URL, if it looks like one."""
    if not url or not url.strip():
        return None
    parts = [p for p in urlparse(url.strip()).path.split("/") if p]
    if not parts:
        return None
    key = parts[-1]
    return key if JIRA_KEY_RE.match(key) else None


def _json_body(response: httpx.Response, what: str) -> dict:
    try:
        data = response.json()
    except ValueError as e:
        raise UpstreamError(f"{what} returned a non-JSON response") from e
    if not isinstance(data, dict):
        raise UpstreamError(f"{what} returned an unexpected response")
    return data


class JiraClient:
    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(email, api_token),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def fetch_assigned(self) -> list[dict]:
        """Unfinished issues assigned to the current user, highest priority first."""
        try:
            response = self._http.post(
                "/rest/api/3/search/jql",
                json={"jql": ASSIGNED_JQL, "maxResults": 50, "fields": SEARCH_FIELDS},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to fetch assigned Jira issues: {e}") from e
        issues = _json_body(response, "Jira search").get("issues")
        return issues if isinstance(issues, list) else []

    def fetch_details(self, issue_key: str) -> IssueDetails:
        try:
            response = self._http.get(f"/rest/api/3/issue/{issue_key}")
        except httpx.HTTPError as e:
            raise UpstreamError(f"Jira is unavailable: {e}") from e
        if response.status_code == 404:
            raise NotFoundError(f"Jira issue {issue_key} not found. It may have been deleted.")
        if response.is_error:
            raise UpstreamError(
                f"Failed to fetch Jira issue {issue_key}: HTTP {response.status_code}"
            )

        data = _json_body(response, f"Jira issue {issue_key}")
        task = normalize_jira_issue(data)
        status = (data.get("fields") or {}).get("status") or data.get("status")
        if isinstance(status, dict):
            status = status.get("name")
        return IssueDetails(
            title=task.title,
            description=task.description or "",
            url=task.url or "",
            state=str(status) if status else None,
        )

    def close(self) -> None:
        self._http.close()
