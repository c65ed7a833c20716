"""Thin wrapper around PyGithub for the authenticated user's issues."""

from __future__ import annotations

import logging
from itertools import islice
from urllib.parse import urlparse

import requests
from github import Auth, Github
from github.GithubException import GithubException

from flowdesk.config import DEFAULT_HTTP_TIMEOUT
from flowdesk.errors import UpstreamError
from flowdesk.models import IssueDetails

logger = logging.getLogger(__name__)

MAX_ASSIGNED_ISSUES = 50


def parse_github_issue_url(url: str | None) -> tuple[str, str, int] | None:
    """Extract (owner, repo, number) from an issue or pull request URL."""
    if not url or not url.strip():
        return None
    parts = [p for p in urlparse(url.strip()).path.split("/") if p]
    if len(parts) < 4:
        return None
    owner, repo, kind, number = parts[:4]
    if kind not in ("issues", "pull"):
        return None
    try:
        issue_number = int(number)
    except ValueError:
        return None
    if issue_number <= 0:
        return None
    return owner, repo, issue_number


class GitHubClient:
    """Authenticated GitHub client for the token's own user.

    Usage:
        client = GitHubClient(token="ghp_...")
        raw_issues = client.fetch_assigned()
    """

    def __init__(self, token: str, timeout: float = DEFAULT_HTTP_TIMEOUT) -> None:
        self._gh = Github(auth=Auth.Token(token), timeout=int(timeout))

    def fetch_assigned(self) -> list[dict]:
        """Open issues assigned to the authenticated user, as raw API dicts."""
        try:
            issues = self._gh.get_user().get_issues(filter="assigned", state="open")
            return [issue.raw_data for issue in islice(issues, MAX_ASSIGNED_ISSUES)]
        except (GithubException, requests.RequestException) as e:
            raise UpstreamError(f"Failed to fetch assigned GitHub issues: {e}") from e

    def fetch_details(self, owner: str, repo: str, number: int) -> IssueDetails:
        try:
            issue = self._gh.get_repo(f"{owner}/{repo}").get_issue(number)
        except (GithubException, requests.RequestException) as e:
            raise UpstreamError(
                f"Failed to fetch GitHub issue {owner}/{repo}#{number}: {e}"
            ) from e
        return IssueDetails(
            title=issue.title or "Untitled issue",
            description=issue.body or "",
            url=issue.html_url or "",
            state=issue.state,
        )

    def close(self) -> None:
        self._gh.close()
